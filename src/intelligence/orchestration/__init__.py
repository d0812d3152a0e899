"""Task graph construction, rate-limited fetching and job scheduling."""

from .fetch_gate import FetchGate
from .graph_builder import build_task_graph, validate_dag
from .retry import RetryPolicy
from .scheduler import JobScheduler

__all__ = [
    "FetchGate",
    "build_task_graph",
    "validate_dag",
    "RetryPolicy",
    "JobScheduler",
]
