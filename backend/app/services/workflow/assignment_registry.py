"""
Assignment Registry

Owns the contractor <-> campaign relation. An assignment is the only thing
that gives a contractor visibility of a campaign and the right to upload
to it. Assignments are created and removed, never edited.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...errors import Conflict, NotFound
from ...models.db_models import CampaignDB, CampaignAssignmentDB, UserDB, UserRole
from ...models.identity import IdentityContext
from ..access import Action, PolicyTarget, ResourceType, require
from ..audit import AuditTrail, AuditEvent, AuditAction
from .campaign_state_machine import CampaignStateMachine

logger = logging.getLogger(__name__)


class AssignmentRegistry:
    """Create, remove and look up campaign assignments."""

    def __init__(self, db: Session, audit: Optional[AuditTrail] = None):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self.state_machine = CampaignStateMachine()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def is_assigned(self, campaign_id: int, contractor_id: int) -> bool:
        """Pure lookup: does an assignment exist for this pair?"""
        found = self.db.query(CampaignAssignmentDB.id).filter(
            CampaignAssignmentDB.campaign_id == campaign_id,
            CampaignAssignmentDB.contractor_id == contractor_id,
        ).first()
        return found is not None

    def target_for(
        self,
        campaign: CampaignDB,
        identity: IdentityContext,
        resource_type: ResourceType = ResourceType.CAMPAIGN,
        **extra,
    ) -> PolicyTarget:
        """Collect the campaign state the policy needs for this caller."""
        assigned = identity.is_contractor and self.is_assigned(campaign.id, identity.user_id)
        return PolicyTarget(
            resource_type=resource_type,
            company_id=campaign.company_id,
            campaign_status=campaign.status,
            is_assigned=assigned,
            **extra,
        )

    def list_contractors(self, campaign_id: int, identity: IdentityContext) -> List[CampaignAssignmentDB]:
        """Assignments of a campaign, with the contractor row loaded."""
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.READ, self.target_for(campaign, identity, ResourceType.ASSIGNMENT))

        return (
            self.db.query(CampaignAssignmentDB)
            .options(joinedload(CampaignAssignmentDB.contractor))
            .filter(CampaignAssignmentDB.campaign_id == campaign_id)
            .order_by(CampaignAssignmentDB.assigned_at, CampaignAssignmentDB.id)
            .all()
        )

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def assign(self, campaign_id: int, contractor_id: int, identity: IdentityContext) -> CampaignAssignmentDB:
        """
        Assign a contractor to a campaign.

        Not idempotent: assigning the same pair twice fails with Conflict.
        """
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.ASSIGN, self.target_for(campaign, identity, ResourceType.ASSIGNMENT))

        if not self.state_machine.accepts_assignments(campaign.status):
            raise Conflict(f"Cannot assign contractors to {campaign.status.value} campaigns")

        contractor = self.db.query(UserDB).filter(UserDB.id == contractor_id).first()
        if contractor is None or contractor.role != UserRole.CONTRACTOR or not contractor.is_active:
            raise NotFound(f"Active contractor {contractor_id} not found")

        if self.is_assigned(campaign_id, contractor_id):
            raise Conflict(f"Contractor {contractor_id} is already assigned to campaign {campaign_id}")

        assignment = CampaignAssignmentDB(
            campaign_id=campaign_id,
            contractor_id=contractor_id,
            assigned_by=identity.user_id,
        )
        self.db.add(assignment)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent identical assign
            self.db.rollback()
            raise Conflict(f"Contractor {contractor_id} is already assigned to campaign {campaign_id}")
        self.db.refresh(assignment)

        logger.info(f"Contractor {contractor_id} assigned to campaign {campaign_id} by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.ASSIGNMENT_CREATE,
            resource_type=ResourceType.ASSIGNMENT.value,
            resource_id=assignment.id,
            new_value={"campaign_id": campaign_id, "contractor_id": contractor_id},
        ))
        return assignment

    def remove(self, campaign_id: int, contractor_id: int, identity: IdentityContext) -> None:
        """
        Remove an assignment.

        Images the contractor already uploaded stay on the campaign.
        """
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.UNASSIGN, self.target_for(campaign, identity, ResourceType.ASSIGNMENT))

        assignment = self.db.query(CampaignAssignmentDB).filter(
            CampaignAssignmentDB.campaign_id == campaign_id,
            CampaignAssignmentDB.contractor_id == contractor_id,
        ).first()
        if assignment is None:
            raise NotFound(f"Contractor {contractor_id} is not assigned to campaign {campaign_id}")
        assignment_id = assignment.id

        deleted = self.db.query(CampaignAssignmentDB).filter(
            CampaignAssignmentDB.id == assignment_id
        ).delete(synchronize_session=False)
        if not deleted:
            self.db.rollback()
            raise NotFound(f"Contractor {contractor_id} is not assigned to campaign {campaign_id}")
        self.db.commit()
        self.db.expire_all()

        logger.info(f"Contractor {contractor_id} removed from campaign {campaign_id} by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.ASSIGNMENT_DELETE,
            resource_type=ResourceType.ASSIGNMENT.value,
            resource_id=assignment_id,
            old_value={"campaign_id": campaign_id, "contractor_id": contractor_id},
        ))

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_campaign(self, campaign_id: int) -> CampaignDB:
        campaign = self.db.query(CampaignDB).filter(CampaignDB.id == campaign_id).first()
        if campaign is None:
            raise NotFound(f"Campaign {campaign_id} not found")
        return campaign
