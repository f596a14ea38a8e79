"""
Audit Log API Routes
Read-only view of the audit trail (staff only).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..auth import get_identity
from ..database import get_db
from ..models.identity import IdentityContext
from ..services.audit import AuditTrail

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_logs(
    user_id: Optional[int] = Query(None, gt=0),
    action: Optional[str] = Query(None, max_length=100),
    resource_type: Optional[str] = Query(None, max_length=50),
    resource_id: Optional[int] = Query(None, gt=0),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Audit entries, newest first."""
    return AuditTrail(db).query(
        identity,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        limit=limit,
        offset=offset,
    )
