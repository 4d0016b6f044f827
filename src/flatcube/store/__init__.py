"""
Store module: flat typed buffers with a parallel status bitmap.
"""

from flatcube.store.status import Status
from flatcube.store.in_memory import InMemoryStore, SUPPORTED_DTYPES

__all__ = ["Status", "InMemoryStore", "SUPPORTED_DTYPES"]
