"""
Audit Trail

Post-commit event emission for every successful mutation.

The component that performed a mutation emits one AuditEvent after its
own commit. Writing the event is best effort: a failed audit write is
logged and never undoes or fails the mutation that produced it.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import AuditLogDB
from ...models.identity import IdentityContext
from ..access import Action, require

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    CAMPAIGN_CREATE = "campaign.create"
    CAMPAIGN_UPDATE = "campaign.update"
    CAMPAIGN_DELETE = "campaign.delete"
    CAMPAIGN_STATUS_CHANGE = "campaign.status_change"
    ASSIGNMENT_CREATE = "assignment.create"
    ASSIGNMENT_DELETE = "assignment.delete"
    IMAGE_UPLOAD = "image.upload"
    IMAGE_REVIEW = "image.review"
    IMAGE_DELETE = "image.delete"


@dataclass
class AuditEvent:
    actor_id: int
    action: AuditAction
    resource_type: str
    resource_id: Optional[int]
    old_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


def _jsonable(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if values is None:
        return None
    out = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[key] = value
    return out


class AuditTrail:
    """Persists audit events to the audit_logs table."""

    def __init__(self, db: Session):
        self.db = db

    def emit(self, event: AuditEvent) -> Optional[AuditLogDB]:
        """Write one event. Returns the row, or None if the write failed."""
        entry = AuditLogDB(
            user_id=event.actor_id,
            action=event.action.value,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            old_values=_jsonable(event.old_value),
            new_values=_jsonable(event.new_value),
            created_at=event.created_at,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                f"Failed to write audit entry {event.action.value} "
                f"{event.resource_type}:{event.resource_id}"
            )
            return None

        logger.info(
            f"Audit: {event.action.value} by user {event.actor_id} "
            f"on {event.resource_type}:{event.resource_id}"
        )
        return entry

    def query(
        self,
        identity: IdentityContext,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogDB]:
        """List audit entries, newest first. Staff only."""
        require(identity, Action.VIEW_AUDIT)

        query = self.db.query(AuditLogDB)
        if user_id is not None:
            query = query.filter(AuditLogDB.user_id == user_id)
        if action:
            query = query.filter(AuditLogDB.action == action)
        if resource_type:
            query = query.filter(AuditLogDB.resource_type == resource_type)
        if resource_id is not None:
            query = query.filter(AuditLogDB.resource_id == resource_id)

        return (
            query.order_by(AuditLogDB.created_at.desc(), AuditLogDB.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
