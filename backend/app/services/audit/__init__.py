"""
Audit Trail Services

Post-commit event emission and staff-only audit log queries.
"""

from .trail import AuditTrail, AuditEvent, AuditAction

__all__ = [
    'AuditTrail',
    'AuditEvent',
    'AuditAction',
]
