"""Repository for GreyArea database operations."""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from opsflow.models.grey_area import GreyArea, TERMINAL_GREY_AREA_STATUSES
from opsflow.database.models import GreyAreaDB

logger = logging.getLogger(__name__)

TERMINAL_VALUES = tuple(s.value for s in TERMINAL_GREY_AREA_STATUSES)


class GreyAreaRepository:
    """Repository for GreyArea database operations.

    A grey area's status and activity log are written in the same commit, so
    the audit trail and its status projection never diverge.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, grey_area: GreyArea) -> GreyArea:
        """Create a new grey area."""
        try:
            grey_area_db = GreyAreaDB.from_pydantic(grey_area)
            self.db.add(grey_area_db)
            self.db.commit()
            self.db.refresh(grey_area_db)
            logger.debug(f"Created grey area {grey_area.id}: {grey_area.title[:50]}")
            return grey_area_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create grey area {grey_area.id}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, grey_area_id: str) -> Optional[GreyArea]:
        """Get grey area by ID."""
        grey_area_db = self.db.query(GreyAreaDB).filter(GreyAreaDB.id == grey_area_id).first()
        return grey_area_db.to_pydantic() if grey_area_db else None

    def update(self, grey_area: GreyArea) -> GreyArea:
        """Persist a grey area's new state (status, log and history together)."""
        grey_area_db = self.db.query(GreyAreaDB).filter(GreyAreaDB.id == grey_area.id).first()
        if not grey_area_db:
            raise ValueError(f"Grey area {grey_area.id} not found")

        grey_area_db.apply(grey_area)
        try:
            self.db.commit()
            self.db.refresh(grey_area_db)
            logger.debug(f"Updated grey area {grey_area.id}: status={grey_area_db.status}")
            return grey_area_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update grey area {grey_area.id}: {type(e).__name__}: {str(e)}")
            raise

    def list_for_assignee(self, employee_id: str, include_closed: bool = False) -> List[GreyArea]:
        """Get grey areas assigned to a reviewer, soonest deadline first."""
        query = self.db.query(GreyAreaDB).filter(GreyAreaDB.assignee_id == employee_id)
        if not include_closed:
            query = query.filter(GreyAreaDB.status.notin_(TERMINAL_VALUES))
        return [g.to_pydantic() for g in query.order_by(GreyAreaDB.resolution_deadline).all()]

    def list_for_subsidiary(self, subsidiary_id: str, status: Optional[str] = None) -> List[GreyArea]:
        """Get grey areas of a subsidiary, newest first."""
        query = self.db.query(GreyAreaDB).filter(GreyAreaDB.subsidiary_id == subsidiary_id)
        if status:
            query = query.filter(GreyAreaDB.status == status)
        return [g.to_pydantic() for g in query.order_by(desc(GreyAreaDB.created_at)).all()]

    def list_by_entity(self, entity_type: str, entity_id: str) -> List[GreyArea]:
        """Get grey areas raised against one entity, newest first."""
        grey_areas_db = self.db.query(GreyAreaDB).filter(
            GreyAreaDB.entity_type == entity_type,
            GreyAreaDB.entity_id == entity_id,
        ).order_by(desc(GreyAreaDB.created_at)).all()
        return [g.to_pydantic() for g in grey_areas_db]

    def list_overdue(self, now: datetime) -> List[GreyArea]:
        """Get open grey areas past their resolution deadline."""
        grey_areas_db = self.db.query(GreyAreaDB).filter(
            GreyAreaDB.status.notin_(TERMINAL_VALUES),
            GreyAreaDB.resolution_deadline < now,
        ).order_by(GreyAreaDB.resolution_deadline).all()
        return [g.to_pydantic() for g in grey_areas_db]
