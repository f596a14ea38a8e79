"""
Campaign Workflow Services

Campaign lifecycle and image review, coupled through contractor
assignments and guarded by the access policy.

- CampaignStateMachine: NEW → IN_PROGRESS → COMPLETED, any non-terminal → CANCELLED
- ImageReviewStateMachine: PENDING → APPROVED | REJECTED
- AssignmentRegistry: contractor ↔ campaign relation
- CampaignLifecycleManager: campaign CRUD, transitions, read models
- ImageReviewPipeline: upload, review, scoped listing
"""

from .campaign_state_machine import CampaignStateMachine
from .image_state_machine import ImageReviewStateMachine
from .assignment_registry import AssignmentRegistry
from .campaign_lifecycle import CampaignLifecycleManager
from .image_review import ImageReviewPipeline

__all__ = [
    'CampaignStateMachine',
    'ImageReviewStateMachine',
    'AssignmentRegistry',
    'CampaignLifecycleManager',
    'ImageReviewPipeline',
]
