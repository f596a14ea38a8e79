"""
Image Review Pipeline

Owns proof-of-work images: upload by assigned contractors, review by
staff, scoped listing for everyone else.

Every submission is kept. Rejection never deletes or resets a row; the
contractor uploads a replacement, so the campaign shows the full history
of what was submitted and how it was judged.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import Conflict, InvalidTransition, NotFound
from ...models.db_models import CampaignDB, ImageDB, ImageStatus
from ...models.identity import IdentityContext
from ..access import Action, PolicyTarget, ResourceType, list_scope, require, scope_images
from ..audit import AuditTrail, AuditEvent, AuditAction
from ..storage import FileStore, StoredFile
from .assignment_registry import AssignmentRegistry
from .image_state_machine import ImageReviewStateMachine, parse_image_status

logger = logging.getLogger(__name__)


class ImageReviewPipeline:
    """Upload, review, list and delete campaign images."""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditTrail] = None,
        assignments: Optional[AssignmentRegistry] = None,
        file_store: Optional[FileStore] = None,
    ):
        self.db = db
        self.audit = audit or AuditTrail(db)
        self.assignments = assignments or AssignmentRegistry(db, self.audit)
        self.file_store = file_store or FileStore()
        self.state_machine = ImageReviewStateMachine()

    # =========================================================================
    # UPLOAD & REVIEW
    # =========================================================================

    def authorize_upload(self, campaign_id: int, identity: IdentityContext) -> CampaignDB:
        """Check that the caller may upload to the campaign before any file is stored."""
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.UPLOAD_IMAGE, self.assignments.target_for(campaign, identity, ResourceType.IMAGE))
        return campaign

    def upload(self, campaign_id: int, stored_file: StoredFile, identity: IdentityContext) -> ImageDB:
        """
        Record a new pending image for a campaign.

        Only a contractor assigned to an in-progress campaign may upload.
        A refused upload removes the already-stored file.
        """
        try:
            # Rechecked here; the campaign may have moved on since the file was stored
            self.authorize_upload(campaign_id, identity)
        except Exception:
            self.file_store.delete(stored_file.filename)
            raise

        image = ImageDB(
            campaign_id=campaign_id,
            uploaded_by=identity.user_id,
            filename=stored_file.filename,
            original_filename=stored_file.original_filename,
            file_path=stored_file.path,
            file_size=stored_file.size,
            mime_type=stored_file.mime_type,
            status=ImageStatus.PENDING,
        )
        self.db.add(image)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            self.file_store.delete(stored_file.filename)
            raise Conflict(f"Could not record image: {e.orig}")
        self.db.refresh(image)

        logger.info(f"Image {image.id} uploaded to campaign {campaign_id} by contractor {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.IMAGE_UPLOAD,
            resource_type=ResourceType.IMAGE.value,
            resource_id=image.id,
            new_value={"campaign_id": campaign_id, "filename": image.filename, "status": image.status},
        ))
        return image

    def review(
        self,
        image_id: int,
        decision: Union[str, ImageStatus],
        identity: IdentityContext,
        reason: Optional[str] = None,
    ) -> ImageDB:
        """
        Approve or reject a pending image. Staff only.

        Not idempotent: reviewing an already-reviewed image fails with
        InvalidTransition, including when two reviews race.
        """
        image = self._get_image(image_id)
        campaign = self._get_campaign(image.campaign_id)
        require(identity, Action.REVIEW_IMAGE, self.assignments.target_for(
            campaign, identity, ResourceType.IMAGE, image_status=image.status,
        ))

        from_status = image.status
        changes = self.state_machine.review(from_status, decision, identity.user_id, reason)

        updated = self.db.query(ImageDB).filter(
            ImageDB.id == image_id,
            ImageDB.status == ImageStatus.PENDING,
        ).update(changes, synchronize_session=False)
        if not updated:
            self.db.rollback()
            raise InvalidTransition(f"Image {image_id} was already reviewed")
        self.db.commit()
        self.db.refresh(image)

        logger.info(f"Image {image_id} {image.status.value} by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.IMAGE_REVIEW,
            resource_type=ResourceType.IMAGE.value,
            resource_id=image_id,
            old_value={"status": from_status},
            new_value={"status": image.status, "rejection_reason": image.rejection_reason},
        ))
        return image

    def delete(self, image_id: int, identity: IdentityContext) -> None:
        """Delete a pending image and its file. Staff only; reviewed images are history."""
        image = self._get_image(image_id)
        campaign = self._get_campaign(image.campaign_id)
        require(identity, Action.DELETE_IMAGE, self.assignments.target_for(
            campaign, identity, ResourceType.IMAGE, image_status=image.status,
        ))
        campaign_id = campaign.id
        filename = image.filename

        deleted = self.db.query(ImageDB).filter(
            ImageDB.id == image_id,
            ImageDB.status == ImageStatus.PENDING,
        ).delete(synchronize_session=False)
        if not deleted:
            self.db.rollback()
            raise Conflict(f"Image {image_id} was reviewed and can no longer be deleted")
        self.db.commit()
        self.db.expire_all()
        self.file_store.delete(filename)

        logger.info(f"Image {image_id} deleted by user {identity.user_id}")
        self.audit.emit(AuditEvent(
            actor_id=identity.user_id,
            action=AuditAction.IMAGE_DELETE,
            resource_type=ResourceType.IMAGE.value,
            resource_id=image_id,
            old_value={"campaign_id": campaign_id, "filename": filename},
        ))

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, image_id: int, identity: IdentityContext) -> ImageDB:
        image = self._get_image(image_id)
        campaign = self._get_campaign(image.campaign_id)
        require(identity, Action.READ, self.assignments.target_for(campaign, identity, ResourceType.IMAGE))
        return image

    def file_path(self, image_id: int, identity: IdentityContext) -> str:
        return self.get(image_id, identity).file_path

    def list(
        self,
        identity: IdentityContext,
        campaign_id: Optional[int] = None,
        status: Optional[Union[str, ImageStatus]] = None,
        uploaded_by: Optional[int] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> List[ImageDB]:
        """Images visible to the caller, oldest first."""
        query = scope_images(self.db.query(ImageDB), list_scope(identity))
        if campaign_id is not None:
            query = query.filter(ImageDB.campaign_id == campaign_id)
        if status is not None:
            query = query.filter(ImageDB.status == parse_image_status(status))
        if uploaded_by is not None:
            query = query.filter(ImageDB.uploaded_by == uploaded_by)

        return (
            query.order_by(ImageDB.uploaded_at, ImageDB.id)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_for_campaign(self, campaign_id: int, identity: IdentityContext) -> List[ImageDB]:
        """
        Every image on one campaign.

        Assigned contractors see all of them, not just their own uploads,
        so review feedback is visible to the whole crew.
        """
        campaign = self._get_campaign(campaign_id)
        require(identity, Action.READ, self.assignments.target_for(campaign, identity, ResourceType.IMAGE))

        return (
            self.db.query(ImageDB)
            .filter(ImageDB.campaign_id == campaign_id)
            .order_by(ImageDB.uploaded_at, ImageDB.id)
            .all()
        )

    def list_pending(self, identity: IdentityContext) -> List[ImageDB]:
        """Staff review queue."""
        require(identity, Action.REVIEW_IMAGE, PolicyTarget(ResourceType.IMAGE))
        return (
            self.db.query(ImageDB)
            .filter(ImageDB.status == ImageStatus.PENDING)
            .order_by(ImageDB.uploaded_at, ImageDB.id)
            .all()
        )

    def stats(self, identity: IdentityContext, campaign_id: Optional[int] = None) -> Dict[str, Any]:
        """Image counts per review status. Staff only."""
        require(identity, Action.VIEW_STATS, PolicyTarget(ResourceType.IMAGE))

        query = self.db.query(ImageDB.status, func.count(ImageDB.id))
        if campaign_id is not None:
            query = query.filter(ImageDB.campaign_id == campaign_id)
        counts = {s.value: 0 for s in ImageStatus}
        for status, count in query.group_by(ImageDB.status).all():
            counts[status.value] = count
        return {"total": sum(counts.values()), **counts}

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_image(self, image_id: int) -> ImageDB:
        image = self.db.query(ImageDB).filter(ImageDB.id == image_id).first()
        if image is None:
            raise NotFound(f"Image {image_id} not found")
        return image

    def _get_campaign(self, campaign_id: int) -> CampaignDB:
        campaign = self.db.query(CampaignDB).filter(CampaignDB.id == campaign_id).first()
        if campaign is None:
            raise NotFound(f"Campaign {campaign_id} not found")
        return campaign
