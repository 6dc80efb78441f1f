"""Repository for Task database operations."""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from opsflow.models.task import Task, TaskStage, TaskStatus
from opsflow.database.models import TaskDB

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, task: Task) -> Task:
        """Create a new task."""
        try:
            task_db = TaskDB.from_pydantic(task)
            self.db.add(task_db)
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Created task {task.id}: {task.title[:50]}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def create_many(self, tasks: List[Task]) -> List[Task]:
        """Create several tasks in one commit; none are stored if any fails."""
        if not tasks:
            return []
        try:
            rows = [TaskDB.from_pydantic(task) for task in tasks]
            self.db.add_all(rows)
            self.db.commit()
            for row in rows:
                self.db.refresh(row)
            logger.debug(f"Created {len(rows)} task(s)")
            return [row.to_pydantic() for row in rows]
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create {len(tasks)} task(s): {type(e).__name__}: {str(e)}")
            raise

    def get(self, task_id: str) -> Optional[Task]:
        """Get task by ID."""
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task_id).first()
        return task_db.to_pydantic() if task_db else None

    def update(self, task: Task) -> Task:
        """Update an existing task."""
        task_db = self.db.query(TaskDB).filter(TaskDB.id == task.id).first()
        if not task_db:
            raise ValueError(f"Task {task.id} not found")

        task_db.apply(task)
        try:
            self.db.commit()
            self.db.refresh(task_db)
            logger.debug(f"Updated task {task.id}: stage={task_db.stage} priority={task_db.priority}")
            return task_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def exists_for_event(self, event_id: str, task_type: str) -> bool:
        """Whether a task of this type was already generated from the event."""
        return self.db.query(TaskDB.id).filter(
            TaskDB.event_id == event_id,
            TaskDB.task_type == task_type,
        ).first() is not None

    def list_for_event(self, event_id: str) -> List[Task]:
        """Get tasks generated from an event, oldest first."""
        tasks_db = self.db.query(TaskDB).filter(TaskDB.event_id == event_id).order_by(TaskDB.created_at).all()
        return [t.to_pydantic() for t in tasks_db]

    def list_for_assignee(self, employee_id: str, open_only: bool = True) -> List[Task]:
        """Get tasks assigned to an employee, soonest due first."""
        query = self.db.query(TaskDB).filter(TaskDB.assignee_id == employee_id)
        if open_only:
            query = query.filter(TaskDB.status.in_(OPEN_STATUSES))
        tasks_db = query.order_by(TaskDB.due_date, desc(TaskDB.created_at)).all()
        return [t.to_pydantic() for t in tasks_db]

    def list_unassigned(self, subsidiary_id: Optional[str] = None,
                        created_before: Optional[datetime] = None) -> List[Task]:
        """Get tasks still waiting at pending_assignment, oldest first."""
        query = self.db.query(TaskDB).filter(
            TaskDB.stage == TaskStage.PENDING_ASSIGNMENT.value,
            TaskDB.status == TaskStatus.PENDING.value,
        )
        if subsidiary_id:
            query = query.filter(TaskDB.subsidiary_id == subsidiary_id)
        if created_before is not None:
            query = query.filter(TaskDB.created_at <= created_before)
        return [t.to_pydantic() for t in query.order_by(TaskDB.created_at).all()]

    def list_overdue(self, now: datetime) -> List[Task]:
        """Get open, not yet escalated tasks whose due date has passed."""
        tasks_db = self.db.query(TaskDB).filter(
            TaskDB.status.in_(OPEN_STATUSES),
            TaskDB.stage != TaskStage.ESCALATED.value,
            TaskDB.due_date.isnot(None),
            TaskDB.due_date < now,
        ).order_by(TaskDB.due_date).all()
        return [t.to_pydantic() for t in tasks_db]
