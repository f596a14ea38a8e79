"""
Campaign Engine - Domain Errors

Every service raises one of these kinds. The transport layer (app.main)
maps them to HTTP status codes; nothing inside the services recovers from
them silently.
"""


class CampaignEngineError(Exception):
    """Base class for all domain errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Forbidden(CampaignEngineError):
    """Caller lacks permission for the action on this target.

    ``out_of_scope`` is True when the target lies outside anything the
    caller may see at all (foreign tenant, unassigned campaign), as opposed
    to a target the caller can see but not modify.
    """

    kind = "forbidden"

    def __init__(self, message: str, out_of_scope: bool = False):
        super().__init__(message)
        self.out_of_scope = out_of_scope


class NotFound(CampaignEngineError):
    """Target or referenced entity does not exist."""

    kind = "not_found"


class Conflict(CampaignEngineError):
    """Uniqueness or state invariant violated."""

    kind = "conflict"


class InvalidTransition(Conflict):
    """State-machine transition not permitted from the current state."""

    kind = "invalid_transition"


class ValidationError(CampaignEngineError):
    """Caller-supplied value fails a domain rule."""

    kind = "validation_error"
