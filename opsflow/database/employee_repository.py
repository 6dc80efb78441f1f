"""Repository for Employee database operations (the identity directory)."""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import update

from opsflow.models.constants import ACTIVE_EMPLOYMENT_STATUSES
from opsflow.models.employee import Employee
from opsflow.database.models import EmployeeDB

logger = logging.getLogger(__name__)


class EmployeeRepository:
    """Repository for Employee database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, employee_id: str) -> Optional[Employee]:
        """Get employee by ID."""
        employee_db = self.db.query(EmployeeDB).filter(EmployeeDB.id == employee_id).first()
        return employee_db.to_pydantic() if employee_db else None

    def get_by_email(self, email: str) -> Optional[Employee]:
        """Get employee by email (case-insensitive)."""
        employee_db = self.db.query(EmployeeDB).filter(EmployeeDB.email == email.lower()).first()
        return employee_db.to_pydantic() if employee_db else None

    def get_by_external_id(self, external_id: str) -> Optional[Employee]:
        """Get employee by auth-system user ID."""
        employee_db = self.db.query(EmployeeDB).filter(EmployeeDB.external_id == external_id).first()
        return employee_db.to_pydantic() if employee_db else None

    def list_active(self, subsidiary_id: str, department_id: Optional[str] = None) -> List[Employee]:
        """List employees in an active employment state, optionally scoped to a department."""
        query = self.db.query(EmployeeDB).filter(
            EmployeeDB.subsidiary_id == subsidiary_id,
            EmployeeDB.employment_status.in_(ACTIVE_EMPLOYMENT_STATUSES),
        )
        if department_id:
            query = query.filter(EmployeeDB.department_id == department_id)
        return [e.to_pydantic() for e in query.order_by(EmployeeDB.id).all()]

    def create_or_update(self, employee: Employee) -> Employee:
        """Create or update an employee (upsert).

        The workload counter is never overwritten on update; it only moves
        through increment_workload/decrement_workload.
        """
        employee_db = self.db.query(EmployeeDB).filter(EmployeeDB.id == employee.id).first()

        try:
            if employee_db:
                counter = employee_db.active_task_count
                fresh = EmployeeDB.from_pydantic(employee)
                for column in EmployeeDB.__table__.columns.keys():
                    if column not in ("id", "created_at", "updated_at", "active_task_count"):
                        setattr(employee_db, column, getattr(fresh, column))
                employee_db.active_task_count = counter
                action = "Updated"
            else:
                employee_db = EmployeeDB.from_pydantic(employee)
                self.db.add(employee_db)
                action = "Created"
            employee_db.email = employee.email.lower()
            self.db.commit()
            self.db.refresh(employee_db)
            logger.debug(f"{action} employee {employee.id}: {employee.email}")
            return employee_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to save employee {employee.id}: {type(e).__name__}: {str(e)}")
            raise

    def increment_workload(self, employee_id: str, now: Optional[datetime] = None) -> None:
        """Atomically add one active task to an employee's workload."""
        self._adjust_workload(employee_id, 1, now or datetime.utcnow())

    def decrement_workload(self, employee_id: str) -> None:
        """Atomically remove one active task (never below zero)."""
        self._adjust_workload(employee_id, -1, None)

    def _adjust_workload(self, employee_id: str, delta: int, assigned_at: Optional[datetime]) -> None:
        values = {"active_task_count": EmployeeDB.active_task_count + delta}
        if assigned_at is not None:
            values["last_assigned_at"] = assigned_at
        statement = update(EmployeeDB).where(EmployeeDB.id == employee_id)
        if delta < 0:
            statement = statement.where(EmployeeDB.active_task_count > 0)
        try:
            self.db.execute(statement.values(**values))
            self.db.commit()
            logger.debug(f"Adjusted workload of employee {employee_id} by {delta}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to adjust workload of employee {employee_id}: {type(e).__name__}: {str(e)}")
            raise
