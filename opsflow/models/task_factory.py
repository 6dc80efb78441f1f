"""Task creation factory for opsflow.

Centralizes task creation so every code path (event rules, grey area
follow-ups, manual creation) produces tasks with the same defaults.
"""

import re
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from opsflow.models.task import (
    Task,
    TaskAssignment,
    TaskContext,
    TaskPriority,
    TaskSource,
    TaskStage,
    TaskStatus,
)


def generate_search_terms(*texts: str, extra: Iterable[Optional[str]] = ()) -> List[str]:
    """Build a de-duplicated, order-preserving list of search terms.

    Words shorter than three characters are dropped.
    """
    terms: List[str] = []
    for text in texts:
        terms.extend(w for w in re.split(r"\s+", (text or "").lower()) if len(w) > 2)
    terms.extend(t for t in extra if t)
    return list(dict.fromkeys(terms))


def create_task_base(
    subsidiary_id: str,
    title: str,
    task_type: str,
    description: str = "",
    department_id: Optional[str] = None,
    source: TaskSource = TaskSource.EVENT_GENERATED,
    context: Optional[TaskContext] = None,
    priority: TaskPriority = TaskPriority.MEDIUM,
    assignment: Optional[TaskAssignment] = None,
    due_date: Optional[datetime] = None,
    search_terms: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> Task:
    """Create a task with defaults applied.

    A task with an assignment starts at stage ``assigned``; otherwise it waits
    at ``pending_assignment``. Either way the coarse status is ``pending``.

    Args:
        subsidiary_id: Owning subsidiary (required)
        title: Task title (required)
        task_type: Task type key (required)
        description: Task description
        department_id: Owning department
        source: How the task was created
        context: Creation context
        priority: Priority tier
        assignment: Resolved assignment, if any
        due_date: Deadline
        search_terms: Precomputed search terms (derived from the title if None)
        now: Creation timestamp (defaults to utcnow)

    Returns:
        Task object with defaults applied
    """
    now = now or datetime.utcnow()
    return Task(
        id=str(uuid.uuid4()),
        subsidiary_id=subsidiary_id,
        department_id=department_id,
        title=title,
        description=description,
        task_type=task_type,
        source=source,
        context=context or TaskContext(),
        status=TaskStatus.PENDING,
        stage=TaskStage.ASSIGNED if assignment else TaskStage.PENDING_ASSIGNMENT,
        priority=priority,
        assignment=assignment,
        due_date=due_date,
        search_terms=search_terms if search_terms is not None else generate_search_terms(title),
        created_at=now,
        updated_at=now,
    )
