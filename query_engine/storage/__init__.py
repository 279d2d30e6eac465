"""
Persistence interfaces and the in-memory store.
"""

from .base import ExecutionLogStore, QueryStore, RecordStore, SystemStore
from .memory import InMemoryStore, load_systems_file

__all__ = ["SystemStore", "QueryStore", "ExecutionLogStore", "RecordStore", "InMemoryStore", "load_systems_file"]
