"""
Backing-store drivers.
"""

from manifold.connections.base import Store
from manifold.connections.mongo import MongoStore

__all__ = [
    "Store",
    "MongoStore",
]
