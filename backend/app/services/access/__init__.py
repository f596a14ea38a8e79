"""
Access Control

Role/tenant policy evaluation and the query filters derived from it.
"""

from .policy import (
    Action, ResourceType, Denial, ScopeKind, ScopeFilter,
    PolicyTarget, Decision, can, list_scope,
)
from .scoping import scope_campaigns, scope_images
from .guard import require

__all__ = [
    'Action',
    'ResourceType',
    'Denial',
    'ScopeKind',
    'ScopeFilter',
    'PolicyTarget',
    'Decision',
    'can',
    'list_scope',
    'scope_campaigns',
    'scope_images',
    'require',
]
