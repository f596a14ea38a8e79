"""
Access Policy Evaluator

Pure decision function over (identity, action, target). It never touches
the database and never raises: callers fetch the minimal state needed
(campaign company/status, assignment existence, image status) and pass it
in as a PolicyTarget.

Precedence: the caller's role selects exactly one rule; anything a rule
does not explicitly allow is denied.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from ...models.db_models import UserRole, CampaignStatus, ImageStatus
from ...models.identity import IdentityContext


# =============================================================================
# VOCABULARY
# =============================================================================

class Action(str, Enum):
    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CHANGE_STATUS = "change_status"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    UPLOAD_IMAGE = "upload_image"
    REVIEW_IMAGE = "review_image"
    DELETE_IMAGE = "delete_image"
    VIEW_STATS = "view_stats"
    VIEW_AUDIT = "view_audit"


class ResourceType(str, Enum):
    CAMPAIGN = "campaign"
    IMAGE = "image"
    ASSIGNMENT = "assignment"
    AUDIT_LOG = "audit_log"


class Denial(str, Enum):
    """Why a request was refused."""
    ROLE = "role"      # the role may never do this
    SCOPE = "scope"    # target lies outside what the caller may see
    STATE = "state"    # permitted in principle, blocked by workflow state


class ScopeKind(str, Enum):
    UNRESTRICTED = "unrestricted"
    COMPANY = "company"
    ASSIGNED = "assigned"
    NOTHING = "nothing"


READ_ACTIONS = frozenset({Action.READ, Action.LIST})
VISIBLE_RESOURCES = frozenset({ResourceType.CAMPAIGN, ResourceType.IMAGE, ResourceType.ASSIGNMENT})


@dataclass(frozen=True)
class ScopeFilter:
    """Predicate narrowing a list query to the rows an identity may see."""
    kind: ScopeKind
    company_id: Optional[int] = None
    contractor_id: Optional[int] = None

    @classmethod
    def unrestricted(cls) -> ScopeFilter:
        return cls(ScopeKind.UNRESTRICTED)

    @classmethod
    def company(cls, company_id: int) -> ScopeFilter:
        return cls(ScopeKind.COMPANY, company_id=company_id)

    @classmethod
    def assigned(cls, contractor_id: int) -> ScopeFilter:
        return cls(ScopeKind.ASSIGNED, contractor_id=contractor_id)

    @classmethod
    def nothing(cls) -> ScopeFilter:
        return cls(ScopeKind.NOTHING)


@dataclass(frozen=True)
class PolicyTarget:
    """
    Minimal state about the target, fetched by the caller.

    company_id / campaign_status / is_assigned describe the campaign the
    target belongs to (the campaign itself, or the campaign of an image or
    assignment). image_status is only meaningful for image targets.
    """
    resource_type: ResourceType
    company_id: Optional[int] = None
    campaign_status: Optional[CampaignStatus] = None
    is_assigned: bool = False
    image_status: Optional[ImageStatus] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    denial: Optional[Denial] = None
    scope: Optional[ScopeFilter] = None

    @classmethod
    def allow(cls, reason: str, scope: Optional[ScopeFilter] = None) -> Decision:
        return cls(True, reason, None, scope)

    @classmethod
    def deny(cls, denial: Denial, reason: str, scope: Optional[ScopeFilter] = None) -> Decision:
        return cls(False, reason, denial, scope)


# =============================================================================
# ROLE RULES
# =============================================================================

def _staff_rule(identity: IdentityContext, action: Action, target: Optional[PolicyTarget]) -> Decision:
    # Staff manage every tenant; the only gate is workflow state
    if action == Action.LIST:
        return Decision.allow("Staff see all tenants", ScopeFilter.unrestricted())

    # Proof of work comes from the assigned contractors only
    if action == Action.UPLOAD_IMAGE:
        return Decision.deny(Denial.ROLE, "Only assigned contractors can upload images")

    if action == Action.DELETE_IMAGE and target is not None:
        if target.image_status not in (None, ImageStatus.PENDING):
            return Decision.deny(Denial.STATE, "Only pending images can be deleted")

    return Decision.allow("Staff may act on all tenants")


def _client_rule(identity: IdentityContext, action: Action, target: Optional[PolicyTarget]) -> Decision:
    # Tenant check precedes the role check so foreign resources stay invisible
    if target is not None and target.company_id is not None and target.company_id != identity.company_id:
        return Decision.deny(Denial.SCOPE, "Clients can only access their own company's campaigns")

    if action not in READ_ACTIONS:
        return Decision.deny(Denial.ROLE, f"Clients cannot {action.value}")

    if action == Action.LIST:
        return Decision.allow("Clients see their own company", ScopeFilter.company(identity.company_id))

    if target is None or target.resource_type not in VISIBLE_RESOURCES:
        return Decision.deny(Denial.ROLE, "Clients can only read campaigns and images")

    return Decision.allow("Same-company read")


def _contractor_rule(identity: IdentityContext, action: Action, target: Optional[PolicyTarget]) -> Decision:
    if action == Action.LIST:
        return Decision.allow("Contractors see assigned campaigns", ScopeFilter.assigned(identity.user_id))

    # Unassigned campaigns are out of scope whatever the action
    if target is not None and target.company_id is not None and not target.is_assigned:
        return Decision.deny(Denial.SCOPE, "You are not assigned to this campaign")

    if action == Action.READ:
        if target is None or target.resource_type not in VISIBLE_RESOURCES:
            return Decision.deny(Denial.ROLE, "Contractors can only read campaigns and images")
        if not target.is_assigned:
            return Decision.deny(Denial.SCOPE, "You are not assigned to this campaign")
        return Decision.allow("Assigned contractor read")

    if action == Action.UPLOAD_IMAGE:
        if target is None or not target.is_assigned:
            return Decision.deny(Denial.SCOPE, "You are not assigned to this campaign")
        if target.campaign_status != CampaignStatus.IN_PROGRESS:
            return Decision.deny(
                Denial.STATE,
                "Images can only be uploaded to campaigns that are in progress",
            )
        return Decision.allow("Assigned contractor upload")

    return Decision.deny(Denial.ROLE, f"Contractors cannot {action.value}")


RoleRule = Callable[[IdentityContext, Action, Optional[PolicyTarget]], Decision]

ROLE_RULES: Dict[UserRole, RoleRule] = {
    UserRole.STAFF: _staff_rule,
    UserRole.CLIENT: _client_rule,
    UserRole.CONTRACTOR: _contractor_rule,
}


def check_role_rules(rules: Dict[UserRole, RoleRule]) -> None:
    """Every role must be handled by exactly one rule."""
    missing = set(UserRole) - set(rules)
    if missing:
        raise RuntimeError(f"No access rule for roles: {sorted(r.value for r in missing)}")


check_role_rules(ROLE_RULES)


# =============================================================================
# EVALUATOR
# =============================================================================

def can(
    identity: IdentityContext,
    action: Action,
    target: Optional[PolicyTarget] = None,
) -> Decision:
    """
    Decide whether identity may perform action on target.

    For Action.LIST the target is ignored and the decision carries the
    ScopeFilter to apply to the collection query.
    """
    rule = ROLE_RULES.get(identity.role)
    if rule is None:
        return Decision.deny(Denial.ROLE, f"Unknown role: {identity.role}", ScopeFilter.nothing())
    return rule(identity, action, target)


def list_scope(identity: IdentityContext) -> ScopeFilter:
    """Shortcut for the scope filter of a collection query."""
    decision = can(identity, Action.LIST)
    return decision.scope if decision.allowed and decision.scope else ScopeFilter.nothing()
