"""
Campaign Lifecycle State Machine

    NEW ──► IN_PROGRESS ──► COMPLETED
     │           │
     └───────────┴────────► CANCELLED

COMPLETED and CANCELLED are terminal. Entering COMPLETED stamps
completed_at; no other state carries it.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ...errors import InvalidTransition
from ...models.db_models import CampaignStatus


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATE_CONFIG = {
    CampaignStatus.NEW: {
        "description": "Campaign created, not yet started",
        # Contractors need not be assigned before work starts
        "allowed_transitions": [CampaignStatus.IN_PROGRESS, CampaignStatus.CANCELLED],
        "accepts_assignments": True,
    },
    CampaignStatus.IN_PROGRESS: {
        "description": "Contractors are executing and uploading proof of work",
        "allowed_transitions": [CampaignStatus.COMPLETED, CampaignStatus.CANCELLED],
        "accepts_assignments": True,
    },
    CampaignStatus.COMPLETED: {
        "description": "Work finished and signed off by staff",
        "allowed_transitions": [],  # Terminal state
        "accepts_assignments": False,
    },
    CampaignStatus.CANCELLED: {
        "description": "Campaign abandoned",
        "allowed_transitions": [],  # Terminal state
        "accepts_assignments": False,
    },
}


# =============================================================================
# STATE MACHINE
# =============================================================================

class CampaignStateMachine:
    """
    Deterministic campaign status transitions.

    Who may trigger a transition is decided by the access policy; this
    class only knows which transitions exist.
    """

    def get_state_config(self, state: CampaignStatus) -> Dict[str, Any]:
        """Get configuration for a state."""
        return STATE_CONFIG.get(state, {})

    def can_transition(
        self,
        from_state: CampaignStatus,
        to_state: CampaignStatus,
    ) -> Tuple[bool, str]:
        """
        Check if a state transition is allowed.

        Returns (allowed, reason)
        """
        if self.is_terminal_state(from_state):
            return False, f"Campaign is {from_state.value}; no further transitions are permitted"

        if to_state in self.get_next_states(from_state):
            return True, "Transition allowed"

        return False, f"Invalid status transition from {from_state.value} to {to_state.value}"

    def transition(
        self,
        from_state: CampaignStatus,
        to_state: CampaignStatus,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Compute the column updates for a transition.

        Raises InvalidTransition if the transition does not exist.
        """
        allowed, reason = self.can_transition(from_state, to_state)
        if not allowed:
            raise InvalidTransition(reason)

        now = now or datetime.utcnow()
        changes = {"status": to_state, "updated_at": now}
        if to_state == CampaignStatus.COMPLETED:
            changes["completed_at"] = now
        return changes

    def is_terminal_state(self, state: CampaignStatus) -> bool:
        """Check if a state is terminal (no further transitions)."""
        config = self.get_state_config(state)
        return len(config.get("allowed_transitions", [])) == 0

    def get_next_states(self, state: CampaignStatus) -> List[CampaignStatus]:
        """Get possible next states from current state."""
        config = self.get_state_config(state)
        return config.get("allowed_transitions", [])

    def accepts_assignments(self, state: CampaignStatus) -> bool:
        return self.get_state_config(state).get("accepts_assignments", False)
