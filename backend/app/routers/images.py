"""
Image API Routes

Proof-of-work image upload, review queue and scoped listing.
"""
import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..auth import get_identity
from ..database import get_db
from ..errors import NotFound
from ..models.db_models import ImageStatus
from ..models.identity import IdentityContext
from ..services.storage import FileStore
from ..services.workflow import ImageReviewPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


def get_file_store() -> FileStore:
    """Storage dependency; overridden in tests to point at a temp dir."""
    return FileStore()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ReviewRequest(BaseModel):
    """Review decision. Rejections must carry a reason."""
    status: str = Field(..., description="'approved' or 'rejected'")
    rejection_reason: Optional[str] = Field(None, max_length=1000)


class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    campaign_id: int
    uploaded_by: int
    filename: str
    original_filename: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    status: ImageStatus
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    uploaded_at: Optional[datetime] = None


class ImageStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[ImageResponse])
async def list_images(
    campaign_id: Optional[int] = Query(None, gt=0),
    status_filter: Optional[str] = Query(None, alias="status"),
    uploaded_by: Optional[int] = Query(None, gt=0),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """List images visible to the caller."""
    return ImageReviewPipeline(db).list(
        identity,
        campaign_id=campaign_id,
        status=status_filter,
        uploaded_by=uploaded_by,
        limit=limit,
        offset=offset,
    )


@router.get("/pending", response_model=List[ImageResponse])
async def list_pending_images(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Staff review queue."""
    return ImageReviewPipeline(db).list_pending(identity)


@router.get("/stats", response_model=ImageStatsResponse)
async def image_stats(
    campaign_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return ImageReviewPipeline(db).stats(identity, campaign_id=campaign_id)


@router.get("/campaign/{campaign_id}", response_model=List[ImageResponse])
async def list_campaign_images(
    campaign_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return ImageReviewPipeline(db).list_for_campaign(campaign_id, identity)


@router.post(
    "/upload/{campaign_id}",
    response_model=ImageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_image(
    campaign_id: int,
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
    file_store: FileStore = Depends(get_file_store),
):
    """
    Upload a proof-of-work image.
    Only contractors assigned to an in-progress campaign may upload.
    """
    pipeline = ImageReviewPipeline(db, file_store=file_store)
    # Refused callers never reach the disk
    pipeline.authorize_upload(campaign_id, identity)
    stored = file_store.save(image.file, image.filename, image.content_type)
    return pipeline.upload(campaign_id, stored, identity)


@router.get("/{image_id}", response_model=ImageResponse)
async def get_image(
    image_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    return ImageReviewPipeline(db).get(image_id, identity)


@router.get("/{image_id}/file")
async def get_image_file(
    image_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Stream the stored image, subject to the same visibility as the metadata."""
    image = ImageReviewPipeline(db).get(image_id, identity)
    if not os.path.isfile(image.file_path):
        logger.warning(f"Stored file missing for image {image_id}: {image.file_path}")
        raise NotFound(f"File for image {image_id} not found")
    return FileResponse(image.file_path, media_type=image.mime_type)


@router.put("/{image_id}/review", response_model=ImageResponse)
async def review_image(
    image_id: int,
    request: ReviewRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
):
    """Approve or reject a pending image (staff only)."""
    return ImageReviewPipeline(db).review(
        image_id, request.status, identity, reason=request.rejection_reason,
    )


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_identity),
    file_store: FileStore = Depends(get_file_store),
):
    """Delete a pending image (staff only)."""
    ImageReviewPipeline(db, file_store=file_store).delete(image_id, identity)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
