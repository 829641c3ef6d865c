"""
Route package initialization.
"""
from .auth import router as auth_router
from .community import router as community_router
from .listings import router as listings_router
from .users import router as users_router

__all__ = ["auth_router", "community_router", "listings_router", "users_router"]
