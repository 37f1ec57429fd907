"""
Reviewsync Storage
==================

Backends:
    PostgresBackend -- psycopg2 pool, one DB transaction per mutation
    InMemoryBackend -- copy-on-commit, development and tests

ReviewStore sits on top and owns id assignment, full-replace and delta writes.
"""

from .backends import StorageBackend, ReviewTransaction, PersistenceError, create_backend
from .memory import InMemoryBackend
from .review_store import ReviewStore
