"""Job state persistence."""

from .base import JobStore, InMemoryJobStore
from .sql import SqlJobStore
from .models import init_db

__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "SqlJobStore",
    "init_db",
]
