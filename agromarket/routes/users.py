"""
Public user profile endpoint.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..context import AppContext, get_context
from ..database import user_projection
from ..errors import NotFoundError
from ..models import UserOut
from ..security import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    _: Dict[str, Any] = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Contact details of a user, e.g. a listing's seller."""
    try:
        user = ctx.db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return UserOut(**user_projection(user))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
