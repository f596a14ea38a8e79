"""
Turn policy decisions into domain errors at the service boundary.
"""
from typing import Optional, Type

from ...errors import Conflict, Forbidden
from ...models.identity import IdentityContext
from .policy import Action, Decision, Denial, PolicyTarget, can


def require(
    identity: IdentityContext,
    action: Action,
    target: Optional[PolicyTarget] = None,
    state_error: Type[Conflict] = Conflict,
) -> Decision:
    """
    Evaluate the policy and raise when it denies.

    Role and scope denials become Forbidden (scope denials flagged
    out_of_scope). State denials become ``state_error``.
    """
    decision = can(identity, action, target)
    if decision.allowed:
        return decision
    if decision.denial == Denial.STATE:
        raise state_error(decision.reason)
    raise Forbidden(decision.reason, out_of_scope=decision.denial == Denial.SCOPE)
