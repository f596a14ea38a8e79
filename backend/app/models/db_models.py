"""
Campaign Engine - SQLAlchemy ORM Models
Relational tables for tenants, users, campaigns, assignments, images and audit
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, JSON, Boolean, ForeignKey,
    UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Closed set of caller roles."""
    STAFF = "staff"
    CLIENT = "client"
    CONTRACTOR = "contractor"


class CampaignStatus(str, Enum):
    """States in the campaign lifecycle."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ImageStatus(str, Enum):
    """States in the image review pipeline."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _value_enum(enum_cls, name):
    # Persist the lowercase value ("in_progress"), not the member name
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# TENANTS & USERS (read-only to the workflow core)
# =============================================================================

class CompanyDB(Base):
    """Tenant boundary."""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    campaigns = relationship("CampaignDB", back_populates="company")


class UserDB(Base):
    """User account. ``company_id`` is set for clients only."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(_value_enum(UserRole, "user_role"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# CAMPAIGN LIFECYCLE
# =============================================================================

class CampaignDB(Base):
    """
    Campaign commissioned by a company.

    completed_at is set if and only if status == completed.
    company_id never changes after creation.
    """
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(
        _value_enum(CampaignStatus, "campaign_status"),
        nullable=False,
        default=CampaignStatus.NEW,
        index=True,
    )
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("CompanyDB", back_populates="campaigns")
    assignments = relationship("CampaignAssignmentDB", back_populates="campaign")
    images = relationship("ImageDB", back_populates="campaign")


class CampaignAssignmentDB(Base):
    """Grants one contractor visibility of and upload access to one campaign."""
    __tablename__ = "campaign_assignments"
    __table_args__ = (
        UniqueConstraint("campaign_id", "contractor_id", name="uq_campaign_contractor"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="RESTRICT"), nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("CampaignDB", back_populates="assignments")
    contractor = relationship("UserDB", foreign_keys=[contractor_id])


# =============================================================================
# IMAGE REVIEW
# =============================================================================

class ImageDB(Base):
    """
    Proof-of-work image uploaded by an assigned contractor.

    A rejected image is superseded by a new row, never reset to pending.
    rejection_reason is only set while status == rejected.
    reviewed_by / reviewed_at are written together.
    """
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="RESTRICT"), nullable=False, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)

    status = Column(
        _value_enum(ImageStatus, "image_status"),
        nullable=False,
        default=ImageStatus.PENDING,
        index=True,
    )
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    uploaded_at = Column(DateTime, default=datetime.utcnow)

    campaign = relationship("CampaignDB", back_populates="images")


# =============================================================================
# AUDIT TRAIL
# =============================================================================

class AuditLogDB(Base):
    """Append-only record of every committed mutation."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
