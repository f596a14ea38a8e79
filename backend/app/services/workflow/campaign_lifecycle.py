"""
Campaign Lifecycle Manager

Owns campaign rows and their status state machine. Every read and write
goes through the access policy first; collection reads are narrowed by the
caller's scope filter so nobody observes campaigns outside their scope.

AUTHORITY MODEL:
- STAFF: create, update, delete, change status (all tenants)
- CLIENT: read campaigns of their own company
- CONTRACTOR: read campaigns they are assigned to
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from ...models.db_models import (
    CampaignDB, CampaignAssignmentDB, CampaignStatus, CompanyDB, ImageDB, ImageStatus,
)
from ...models.identity import IdentityContext
from ..access import Action, PolicyTarget, ResourceType, list_scope, require, scope_campaigns
from ..audit import AuditTrail, AuditEvent, AuditAction
from .assignment_registry import AssignmentRegistry
from .campaign_state_machine import CampaignStateMachine

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000
EDITABLE_FIELDS = ("name", "description", "start_date", "end_date")

# Clients asking for completed campaigns only see the last month of them
CLIENT_COMPLETED_WINDOW = relativedelta(months=1)


def parse_campaign_status(value: Union[str, CampaignStatus]) -> CampaignStatus:
    try:
        return CampaignStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in CampaignStatus)
        raise ValidationError(f"Status must be one of: {allowed}")


def _snapshot(campaign: CampaignDB) -> Dict[str, Any]:
    return {
        "name": campaign.name,
        "description": campaign.description,
        "company_id": campaign.company_id,
        "status": campaign.status,
        "start_date": campaign.start_date,
        "end_date": campaign.end_date,
        "completed_at": campaign.completed_at,
    }


class CampaignLifecycleManager:
    """
    Campaign CRUD, status transitions and read models.

    Coordinates:
    - Access policy (who may do what)
    - Assignment registry (contractor visibility)
    - Campaign state machine (which transitions exist)
    - Audit trail (post-commit events)
    """

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditTrail] = None,
        assignments: Optional[AssignmentRegistry] = None,
    ):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self.assignments = assignments or AssignmentRegistry(db, self.audit)
        self.state_machine = CampaignStateMachine()

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, campaign_id: int, identity: IdentityContext) -> CampaignDB:
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.READ, self.assignments.target_for(campaign, identity))
        return campaign

    def list(
        self,
        identity: IdentityContext,
        status: Optional[Union[str, CampaignStatus]] = None,
        company_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CampaignDB]:
        """Campaigns visible to the caller; out-of-scope rows are omitted, not reported."""
        query = scope_campaigns(self.db.query(CampaignDB), list_scope(identity))

        if status is not None:
            status = parse_campaign_status(status)
            query = query.filter(CampaignDB.status == status)
            if identity.is_client and status == CampaignStatus.COMPLETED:
                cutoff = datetime.utcnow() - CLIENT_COMPLETED_WINDOW
                query = query.filter(CampaignDB.completed_at >= cutoff)
        if company_id is not None:
            query = query.filter(CampaignDB.company_id == company_id)
        if search:
            # Search is a literal substring; LIKE wildcards in the term are escaped
            term = search.strip().lower()
            term = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{term}%"
            query = query.filter(or_(
                func.lower(CampaignDB.name).like(pattern, escape="\\"),
                func.lower(CampaignDB.description).like(pattern, escape="\\"),
            ))

        return (
            query.order_by(CampaignDB.created_at.desc(), CampaignDB.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_by_company(self, company_id: int, identity: IdentityContext) -> List[CampaignDB]:
        if identity.is_client and identity.company_id != company_id:
            raise Forbidden("Clients can only access campaigns from their own company", out_of_scope=True)
        return self.list(identity, company_id=company_id, limit=None)

    def list_by_contractor(self, contractor_id: int, identity: IdentityContext) -> List[CampaignDB]:
        if identity.is_contractor and identity.user_id != contractor_id:
            raise Forbidden("Contractors can only access their own assigned campaigns", out_of_scope=True)

        query = self.db.query(CampaignDB).join(
            CampaignAssignmentDB, CampaignAssignmentDB.campaign_id == CampaignDB.id
        ).filter(CampaignAssignmentDB.contractor_id == contractor_id)
        query = scope_campaigns(query, list_scope(identity))
        return query.order_by(CampaignAssignmentDB.assigned_at.desc(), CampaignDB.id.desc()).all()

    def stats(self, identity: IdentityContext) -> Dict[str, Any]:
        """Campaign counts per status. Staff only."""
        require(identity, Action.VIEW_STATS, PolicyTarget(ResourceType.CAMPAIGN))

        rows = self.db.query(CampaignDB.status, func.count(CampaignDB.id)).group_by(CampaignDB.status).all()
        by_status = {s.value: 0 for s in CampaignStatus}
        for status, count in rows:
            by_status[status.value] = count
        return {"total": sum(by_status.values()), "by_status": by_status}

    def progress(self, campaign_id: int, identity: IdentityContext) -> Dict[str, Any]:
        """
        Review progress of one campaign.

        Completion is never blocked on unreviewed images; this is how the
        pending count is surfaced to staff instead.
        """
        campaign = self.get(campaign_id, identity)

        rows = self.db.query(ImageDB.status, func.count(ImageDB.id)).filter(
            ImageDB.campaign_id == campaign.id
        ).group_by(ImageDB.status).all()
        counts = {s: 0 for s in ImageStatus}
        for status, count in rows:
            counts[status] = count
        total = sum(counts.values())

        assigned = self.db.query(func.count(CampaignAssignmentDB.id)).filter(
            CampaignAssignmentDB.campaign_id == campaign.id
        ).scalar()

        return {
            "campaign_id": campaign.id,
            "status": campaign.status.value,
            "total_images": total,
            "approved_images": counts[ImageStatus.APPROVED],
            "rejected_images": counts[ImageStatus.REJECTED],
            "pending_images": counts[ImageStatus.PENDING],
            "progress_percentage": round(counts[ImageStatus.APPROVED] / total * 100, 2) if total else 0,
            "assigned_contractors": assigned or 0,
        }

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create(
        self,
        identity: IdentityContext,
        name: str,
        company_id: int,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> CampaignDB:
        """Create a campaign in status NEW. Staff only."""
        require(identity, Action.CREATE, PolicyTarget(ResourceType.CAMPAIGN, company_id=company_id))

        name = self._validate_name(name)
        self._validate_description(description)
        self._validate_dates(start_date, end_date)

        company = self.db.query(CompanyDB).filter(CompanyDB.id == company_id).first()
        if company is None:
            raise NotFound(f"Company {company_id} not found")
        if not company.is_active:
            raise Conflict(f"Company {company_id} is inactive")

        campaign = CampaignDB(
            name=name,
            description=description,
            company_id=company_id,
            status=CampaignStatus.NEW,
            start_date=start_date,
            end_date=end_date,
            created_by=identity.user_id,
        )
        self.db.add(campaign)
        self._commit("create campaign")
        self.db.refresh(campaign)

        logger.info(f"Campaign {campaign.id} created for company {company_id} by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.CAMPAIGN_CREATE,
            resource_type=ResourceType.CAMPAIGN.value,
            resource_id=campaign.id,
            new_value=_snapshot(campaign),
        ))
        return campaign

    def update(self, campaign_id: int, changes: Dict[str, Any], identity: IdentityContext) -> CampaignDB:
        """
        Edit name, description or dates. Staff only.

        The owning company never changes, and status only moves through
        change_status().
        """
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.UPDATE, self.assignments.target_for(campaign, identity))

        changes = dict(changes)
        if "company_id" in changes:
            if changes.pop("company_id") != campaign.company_id:
                raise ValidationError("Campaigns cannot be moved to another company")
        if "status" in changes:
            raise ValidationError("Use the status endpoint to change campaign status")
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown campaign fields: {', '.join(sorted(unknown))}")

        if "name" in changes:
            changes["name"] = self._validate_name(changes["name"])
        if "description" in changes:
            self._validate_description(changes["description"])
        self._validate_dates(
            changes.get("start_date", campaign.start_date),
            changes.get("end_date", campaign.end_date),
        )

        if not changes:
            return campaign

        before = _snapshot(campaign)
        for field_name, value in changes.items():
            setattr(campaign, field_name, value)
        campaign.updated_at = datetime.utcnow()
        self._commit("update campaign")
        self.db.refresh(campaign)

        logger.info(f"Campaign {campaign.id} updated by user {identity.user_id}: {sorted(changes)}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.CAMPAIGN_UPDATE,
            resource_type=ResourceType.CAMPAIGN.value,
            resource_id=campaign.id,
            old_value={k: before[k] for k in changes},
            new_value={k: getattr(campaign, k) for k in changes},
        ))
        return campaign

    def delete(self, campaign_id: int, identity: IdentityContext) -> None:
        """Delete a campaign that has no images and no assignments. Staff only."""
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.DELETE, self.assignments.target_for(campaign, identity))

        image_count = self.db.query(func.count(ImageDB.id)).filter(ImageDB.campaign_id == campaign_id).scalar()
        assignment_count = self.db.query(func.count(CampaignAssignmentDB.id)).filter(
            CampaignAssignmentDB.campaign_id == campaign_id
        ).scalar()
        if image_count or assignment_count:
            raise Conflict(
                f"Campaign {campaign_id} has {image_count} image(s) and "
                f"{assignment_count} assignment(s); remove them before deleting"
            )

        before = _snapshot(campaign)
        self.db.delete(campaign)
        self._commit("delete campaign")

        logger.info(f"Campaign {campaign_id} deleted by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.CAMPAIGN_DELETE,
            resource_type=ResourceType.CAMPAIGN.value,
            resource_id=campaign_id,
            old_value=before,
        ))

    def change_status(
        self,
        campaign_id: int,
        new_status: Union[str, CampaignStatus],
        identity: IdentityContext,
    ) -> CampaignDB:
        """
        Move a campaign along its lifecycle. Staff only.

        The update is guarded on the status that was read, so two
        concurrent transitions cannot both succeed.
        """
        new_status = parse_campaign_status(new_status)
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.CHANGE_STATUS, self.assignments.target_for(campaign, identity))

        from_status = campaign.status
        changes = self.state_machine.transition(from_status, new_status)

        updated = self.db.query(CampaignDB).filter(
            CampaignDB.id == campaign_id,
            CampaignDB.status == from_status,
        ).update(changes, synchronize_session=False)
        if not updated:
            self.db.rollback()
            raise InvalidTransition(f"Campaign {campaign_id} status changed concurrently; reload and retry")
        self._commit("change campaign status")
        self.db.refresh(campaign)

        logger.info(
            f"Campaign {campaign_id} status {from_status.value} -> {new_status.value} by user {identity.user_id}"
        )
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.CAMPAIGN_STATUS_CHANGE,
            resource_type=ResourceType.CAMPAIGN.value,
            resource_id=campaign_id,
            old_value={"status": from_status},
            new_value={"status": new_status, "completed_at": campaign.completed_at},
        ))
        return campaign

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_campaign(self, campaign_id: int) -> CampaignDB:
        campaign = self.db.query(CampaignDB).filter(CampaignDB.id == campaign_id).first()
        if campaign is None:
            raise NotFound(f"Campaign {campaign_id} not found")
        return campaign

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict(f"Could not {operation}: {e.orig}")

    @staticmethod
    def _validate_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Campaign name is required")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError(f"Campaign name must not exceed {NAME_MAX_LENGTH} characters")
        return name

    @staticmethod
    def _validate_description(description: Optional[str]) -> None:
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(f"Description must not exceed {DESCRIPTION_MAX_LENGTH} characters")

    @staticmethod
    def _validate_dates(start_date: Optional[date], end_date: Optional[date]) -> None:
        if start_date and end_date and end_date <= start_date:
            raise ValidationError("End date must be after start date")
