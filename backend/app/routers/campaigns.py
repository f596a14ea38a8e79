"""
Campaign API Routes

Campaign lifecycle, status transitions and contractor assignment.
Domain errors raised by the services are translated to HTTP responses by
the exception handlers registered in app.main.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.orm import Session

from ..auth import get_identity
from ..database import get_db
from ..models.db_models import CampaignStatus
from ..models.identity import IdentityContext
from ..services.workflow import AssignmentRegistry, CampaignLifecycleManager


router = APIRouter(prefix="/campaigns", tags=["campaigns"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateCampaignRequest(BaseModel):
    """Request to create a campaign."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    company_id: int = Field(..., gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class UpdateCampaignRequest(BaseModel):
    """Partial update. company_id is accepted only if unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    company_id: Optional[int] = Field(None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StatusChangeRequest(BaseModel):
    status: CampaignStatus


class AssignContractorRequest(BaseModel):
    contractor_id: int = Field(..., gt=0)


class CampaignResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    company_id: int
    status: CampaignStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AssignmentResponse(BaseModel):
    id: int
    campaign_id: int
    contractor_id: int
    assigned_by: int
    assigned_at: Optional[datetime] = None
    contractor_username: Optional[str] = None
    contractor_first_name: Optional[str] = None
    contractor_last_name: Optional[str] = None


class CampaignStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]


class CampaignProgressResponse(BaseModel):
    campaign_id: int
    status: str
    total_images: int
    approved_images: int
    rejected_images: int
    pending_images: int
    progress_percentage: float
    assigned_contractors: int


def _assignment_response(assignment) -> AssignmentResponse:
    contractor = assignment.contractor
    return AssignmentResponse(
        id=assignment.id,
        campaign_id=assignment.campaign_id,
        contractor_id=assignment.contractor_id,
        assigned_by=assignment.assigned_by,
        assigned_at=assignment.assigned_at,
        contractor_username=contractor.username if contractor else None,
        contractor_first_name=contractor.first_name if contractor else None,
        contractor_last_name=contractor.last_name if contractor else None,
    )


# =============================================================================
# COLLECTIONS
# =============================================================================

@router.get("", response_model=List[CampaignResponse])
async def list_campaigns(
    status_filter: Optional[CampaignStatus] = Query(None, alias="status"),
    company_id: Optional[int] = Query(None, gt=0),
    search: Optional[str] = Query(None, max_length=255),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """List campaigns visible to the caller."""
    return CampaignLifecycleManager(db).list(
        identity,
        status=status_filter,
        company_id=company_id,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=CampaignStatsResponse)
async def campaign_stats(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Campaign counts per status (staff only)."""
    return CampaignLifecycleManager(db).stats(identity)


@router.get("/company/{company_id}", response_model=List[CampaignResponse])
async def campaigns_for_company(
    company_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return CampaignLifecycleManager(db).list_by_company(company_id, identity)


@router.get("/contractor/{contractor_id}", response_model=List[CampaignResponse])
async def campaigns_for_contractor(
    contractor_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return CampaignLifecycleManager(db).list_by_contractor(contractor_id, identity)


# =============================================================================
# SINGLE CAMPAIGN
# =============================================================================

@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    request: CreateCampaignRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Create a campaign (staff only). New campaigns start in status 'new'."""
    return CampaignLifecycleManager(db).create(
        identity,
        name=request.name,
        company_id=request.company_id,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
    )


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return CampaignLifecycleManager(db).get(campaign_id, identity)


@router.get("/{campaign_id}/progress", response_model=CampaignProgressResponse)
async def get_campaign_progress(
    campaign_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Image review progress for one campaign."""
    return CampaignLifecycleManager(db).progress(campaign_id, identity)


@router.put("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: int,
    request: UpdateCampaignRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Edit name, description or dates (staff only)."""
    changes = request.model_dump(exclude_unset=True)
    return CampaignLifecycleManager(db).update(campaign_id, changes, identity)


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Delete a campaign without images or assignments (staff only)."""
    CampaignLifecycleManager(db).delete(campaign_id, identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{campaign_id}/status", response_model=CampaignResponse)
async def change_campaign_status(
    campaign_id: int,
    request: StatusChangeRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Move the campaign along its lifecycle (staff only)."""
    return CampaignLifecycleManager(db).change_status(campaign_id, request.status, identity)


# =============================================================================
# CONTRACTOR ASSIGNMENT
# =============================================================================

@router.get("/{campaign_id}/contractors", response_model=List[AssignmentResponse])
async def list_assigned_contractors(
    campaign_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    assignments = AssignmentRegistry(db).list_contractors(campaign_id, identity)
    return [_assignment_response(a) for a in assignments]


@router.post(
    "/{campaign_id}/contractors",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_contractor(
    campaign_id: int,
    request: AssignContractorRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Assign a contractor (staff only). Assigning the same contractor twice is a conflict."""
    assignment = AssignmentRegistry(db).assign(campaign_id, request.contractor_id, identity)
    return _assignment_response(assignment)


@router.delete("/{campaign_id}/contractors/{contractor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_contractor(
    campaign_id: int,
    contractor_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    AssignmentRegistry(db).remove(campaign_id, contractor_id, identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
