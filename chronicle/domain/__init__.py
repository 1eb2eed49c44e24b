"""
Domain Serialization

JSON-ready forms of every persisted type and the per-narrative store
document.
"""

from .serialization import StoreDocument, dumps

__all__ = [
    'StoreDocument',
    'dumps',
]
