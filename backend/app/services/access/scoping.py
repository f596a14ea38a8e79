"""
Query Filters

Translate a ScopeFilter from the policy evaluator into SQLAlchemy criteria
so that collection queries never return rows outside the caller's scope.
"""
from sqlalchemy import exists, and_, false
from sqlalchemy.orm import Query

from ...models.db_models import CampaignDB, CampaignAssignmentDB, ImageDB
from .policy import ScopeFilter, ScopeKind


def _assigned_clause(campaign_id_column, contractor_id: int):
    return exists().where(and_(
        CampaignAssignmentDB.campaign_id == campaign_id_column,
        CampaignAssignmentDB.contractor_id == contractor_id,
    ))


def scope_campaigns(query: Query, scope: ScopeFilter) -> Query:
    """Narrow a CampaignDB query."""
    if scope.kind == ScopeKind.UNRESTRICTED:
        return query
    if scope.kind == ScopeKind.COMPANY:
        return query.filter(CampaignDB.company_id == scope.company_id)
    if scope.kind == ScopeKind.ASSIGNED:
        return query.filter(_assigned_clause(CampaignDB.id, scope.contractor_id))
    return query.filter(false())


def scope_images(query: Query, scope: ScopeFilter) -> Query:
    """
    Narrow an ImageDB query.

    Contractors see every image on a campaign they are assigned to, not
    only their own uploads.
    """
    if scope.kind == ScopeKind.UNRESTRICTED:
        return query
    if scope.kind == ScopeKind.COMPANY:
        company_campaigns = exists().where(and_(
            CampaignDB.id == ImageDB.campaign_id,
            CampaignDB.company_id == scope.company_id,
        ))
        return query.filter(company_campaigns)
    if scope.kind == ScopeKind.ASSIGNED:
        return query.filter(_assigned_clause(ImageDB.campaign_id, scope.contractor_id))
    return query.filter(false())
