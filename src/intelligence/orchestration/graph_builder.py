"""
Task Graph Builder.

Expands one research request into its task DAG:

    fetch_<source> ---> ai_summarize:<source> ---> correlate
          |                                           ^
          +-------------------------------------------+

Every FETCH and AI_SUMMARIZE task is a direct dependency of CORRELATE.
Construction is pure; the scheduler receives the tasks as a value.
"""

from collections import deque
from typing import Iterable, Optional

from ..errors import InvalidRequest
from ..models.content import SourceKey
from ..models.job import FETCH_KINDS, Task, TaskKind, make_task_id
from src.utils.validation import validate_sources


def build_task_graph(
    job_id: str,
    sources: Optional[Iterable[str]] = None,
    include_summaries: bool = True,
) -> list[Task]:
    """
    Build the DAG for one job.

    Args:
        job_id: Owning job
        sources: Requested source keys; None means all known sources
        include_summaries: Add one AI_SUMMARIZE task per source

    Returns:
        Tasks ordered by creation sequence

    Raises:
        InvalidRequest: Empty source set or unknown source key
    """
    selected = validate_sources(sources)

    tasks: list[Task] = []

    def add(kind: TaskKind, source: Optional[SourceKey], dependencies: list[str]) -> Task:
        task = Task(
            job_id=job_id,
            kind=kind,
            source=source.value if source else None,
            seq=len(tasks),
            dependencies=dependencies,
        )
        tasks.append(task)
        return task

    fetch_ids = [add(FETCH_KINDS[source], source, []).task_id for source in selected]

    summary_ids = []
    if include_summaries:
        for source, fetch_id in zip(selected, fetch_ids):
            summary_ids.append(add(TaskKind.AI_SUMMARIZE, source, [fetch_id]).task_id)

    add(TaskKind.CORRELATE, None, fetch_ids + summary_ids)

    validate_dag(tasks)
    return tasks


def validate_dag(tasks: list[Task]) -> None:
    """
    Check task ids are unique, dependencies exist and there is no cycle.

    Raises:
        InvalidRequest: If the graph is malformed
    """
    ids = [t.task_id for t in tasks]
    if len(ids) != len(set(ids)):
        raise InvalidRequest("Duplicate task identity in graph")

    known = set(ids)
    indegree = {t.task_id: 0 for t in tasks}
    dependents: dict[str, list[str]] = {t.task_id: [] for t in tasks}
    for task in tasks:
        for dep in task.dependencies:
            if dep not in known:
                raise InvalidRequest(f"Task {task.task_id} depends on unknown task {dep}")
            indegree[task.task_id] += 1
            dependents[dep].append(task.task_id)

    # Kahn's algorithm: every node must be removable
    queue = deque(tid for tid, degree in indegree.items() if degree == 0)
    visited = 0
    while queue:
        tid = queue.popleft()
        visited += 1
        for child in dependents[tid]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)

    if visited != len(tasks):
        raise InvalidRequest("Task graph contains a cycle")


def dependents_index(tasks: list[Task]) -> dict[str, list[str]]:
    """Reverse adjacency: task id -> ids of tasks that depend on it, in seq order."""
    index: dict[str, list[str]] = {t.task_id: [] for t in tasks}
    for task in sorted(tasks, key=lambda t: t.seq):
        for dep in task.dependencies:
            index[dep].append(task.task_id)
    return index


def correlate_task_id() -> str:
    return make_task_id(TaskKind.CORRELATE)
