"""Campaign Engine - Data Models"""
from .db_models import (
    # Enums
    UserRole, CampaignStatus, ImageStatus,
    # Tables
    CompanyDB, UserDB, CampaignDB, CampaignAssignmentDB, ImageDB, AuditLogDB,
)
from .identity import IdentityContext

__all__ = [
    "UserRole", "CampaignStatus", "ImageStatus",
    "CompanyDB", "UserDB", "CampaignDB", "CampaignAssignmentDB", "ImageDB", "AuditLogDB",
    "IdentityContext",
]
