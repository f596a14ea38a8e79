"""
Image Review State Machine

    PENDING → APPROVED
    PENDING → REJECTED

Both outcomes are terminal for the row. A rejected submission is
superseded by uploading a new image, never by resetting the old one.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from ...errors import InvalidTransition, ValidationError
from ...models.db_models import ImageStatus


def parse_image_status(value: Union[str, ImageStatus]) -> ImageStatus:
    try:
        return ImageStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ImageStatus)
        raise ValidationError(f"Status must be one of: {allowed}")


class ImageReviewStateMachine:
    """
    Review transitions and the column invariants that go with them.

    rejection_reason exists only on rejected rows; reviewed_by and
    reviewed_at are always written together with the new status.
    """

    # (current_state, decision) -> new_state
    TRANSITIONS = {
        (ImageStatus.PENDING, ImageStatus.APPROVED): ImageStatus.APPROVED,
        (ImageStatus.PENDING, ImageStatus.REJECTED): ImageStatus.REJECTED,
    }

    def parse_decision(self, decision: Union[str, ImageStatus]) -> ImageStatus:
        """Accept only 'approved' or 'rejected'."""
        try:
            parsed = ImageStatus(decision)
        except ValueError:
            parsed = None
        if parsed is None or parsed == ImageStatus.PENDING:
            raise ValidationError("Review decision must be 'approved' or 'rejected'")
        return parsed

    def can_transition(self, current_state: ImageStatus, decision: ImageStatus) -> Tuple[bool, Optional[str]]:
        if (current_state, decision) not in self.TRANSITIONS:
            return False, f"Image is already {current_state.value}; upload a new image to resubmit"
        return True, None

    def is_terminal(self, state: ImageStatus) -> bool:
        return state != ImageStatus.PENDING

    def review(
        self,
        current_state: ImageStatus,
        decision: Union[str, ImageStatus],
        reviewer_id: int,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Compute the column updates for a review decision.

        Raises:
            ValidationError: bad decision value, or rejection without reason
            InvalidTransition: image already reviewed (checked before the reason)
        """
        decision = self.parse_decision(decision)

        allowed, error = self.can_transition(current_state, decision)
        if not allowed:
            raise InvalidTransition(error)

        if decision == ImageStatus.REJECTED:
            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("Rejection reason is required when rejecting an image")
        else:
            reason = None

        return {
            "status": self.TRANSITIONS[(current_state, decision)],
            "rejection_reason": reason,
            "reviewed_by": reviewer_id,
            "reviewed_at": now or datetime.utcnow(),
        }
