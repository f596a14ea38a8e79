"""Campaign Engine - API Routers"""
from .auth import router as auth_router
from .campaigns import router as campaigns_router
from .images import router as images_router
from .audit import router as audit_router

__all__ = [
    "auth_router",
    "campaigns_router",
    "images_router",
    "audit_router",
]
