"""
Campaign Engine - Identity Context

Immutable per-request value produced by the authentication boundary and
consumed by every service. Services trust it completely.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .db_models import UserRole
from ..errors import ValidationError


@dataclass(frozen=True)
class IdentityContext:
    """Who is calling: user id, role, and (for clients) their company."""
    user_id: int
    role: UserRole
    company_id: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.role, UserRole):
            try:
                object.__setattr__(self, "role", UserRole(self.role))
            except ValueError:
                raise ValidationError(f"Unknown role: {self.role}")
        if self.role == UserRole.CLIENT and self.company_id is None:
            raise ValidationError("Client users must be associated with a company")
        # Staff and contractors are company-agnostic
        if self.role != UserRole.CLIENT and self.company_id is not None:
            object.__setattr__(self, "company_id", None)

    @property
    def is_staff(self) -> bool:
        return self.role == UserRole.STAFF

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_contractor(self) -> bool:
        return self.role == UserRole.CONTRACTOR

    @classmethod
    def staff(cls, user_id: int) -> IdentityContext:
        return cls(user_id=user_id, role=UserRole.STAFF)

    @classmethod
    def client(cls, user_id: int, company_id: int) -> IdentityContext:
        return cls(user_id=user_id, role=UserRole.CLIENT, company_id=company_id)

    @classmethod
    def contractor(cls, user_id: int) -> IdentityContext:
        return cls(user_id=user_id, role=UserRole.CONTRACTOR)

    @classmethod
    def from_user(cls, user) -> IdentityContext:
        """Build from a UserDB row."""
        return cls(user_id=user.id, role=user.role, company_id=user.company_id)
