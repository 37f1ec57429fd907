"""
Reviewsync API
==============

FastAPI read surface. Build with create_app().
"""
