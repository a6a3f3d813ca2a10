"""Routers package."""

from .auth import router as auth_router
from .comptable import router as comptable_router
from .files import router as files_router

__all__ = [
    "auth_router",
    "comptable_router",
    "files_router",
]
