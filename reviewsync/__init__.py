"""
Reviewsync
==========

Multi-source review synchronization: fetch customer reviews from several
providers, reconcile them into one canonical set, and serve it.
"""

__version__ = "1.0.0"
