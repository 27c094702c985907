# release_conductor/orchestration/sequencer.py
"""
Task eligibility and stage completion.

Pure functions over a stage's task list. Dependencies must point at tasks in
the same list; a dangling edge is an InvalidStateError.
"""

from enum import Enum

from release_conductor.errors import InvalidStateError
from release_conductor.models.enums import DONE_TASK_STATUSES, TaskStatus
from release_conductor.models.records import Task


class BlockReason(Enum):
    """Why a task can or cannot be dispatched right now."""

    EXECUTABLE = "EXECUTABLE"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    ALREADY_SKIPPED = "ALREADY_SKIPPED"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    FAILED = "FAILED"
    PREVIOUS_INCOMPLETE = "PREVIOUS_INCOMPLETE"


_STATUS_REASONS = {
    TaskStatus.COMPLETED: BlockReason.ALREADY_COMPLETED,
    TaskStatus.SKIPPED: BlockReason.ALREADY_SKIPPED,
    TaskStatus.IN_PROGRESS: BlockReason.IN_PROGRESS,
    TaskStatus.AWAITING_CALLBACK: BlockReason.AWAITING_CALLBACK,
    TaskStatus.FAILED: BlockReason.FAILED,
}


def _index(tasks: list[Task]) -> dict[str, Task]:
    return {task.task_id: task for task in tasks}


def dependencies_met(task: Task, by_id: dict[str, Task]) -> bool:
    for dep_id in task.depends_on:
        dep = by_id.get(dep_id)
        if dep is None:
            raise InvalidStateError(
                f"Task {task.task_id} depends on {dep_id}, which is not in its stage"
            )
        if dep.status not in DONE_TASK_STATUSES:
            return False
    return True


def block_reason(task: Task, tasks: list[Task]) -> BlockReason:
    """Classify `task` against the rest of its stage."""
    if task.status in _STATUS_REASONS:
        return _STATUS_REASONS[task.status]
    if not dependencies_met(task, _index(tasks)):
        return BlockReason.PREVIOUS_INCOMPLETE
    return BlockReason.EXECUTABLE


def eligible_tasks(tasks: list[Task]) -> list[Task]:
    """
    Tasks that may be dispatched now.

    A task is eligible iff it is PENDING and every dependency is COMPLETED or
    SKIPPED. Ordered by declared sequence index for deterministic replay.
    """
    by_id = _index(tasks)
    eligible = [
        task
        for task in tasks
        if task.status == TaskStatus.PENDING and dependencies_met(task, by_id)
    ]
    return sorted(eligible, key=lambda t: t.sequence)


def is_stage_complete(tasks: list[Task]) -> bool:
    """True iff every required task is COMPLETED or SKIPPED."""
    return all(task.status in DONE_TASK_STATUSES for task in tasks if task.required)


def failed_required_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if t.required and t.status == TaskStatus.FAILED]


def awaiting_tasks(tasks: list[Task]) -> list[Task]:
    return [t for t in tasks if t.status == TaskStatus.AWAITING_CALLBACK]
