"""
Registration, login and current-user endpoints.
"""
import logging
import sqlite3
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..context import AppContext, get_context
from ..database import user_projection
from ..errors import ConflictError, ValidationError
from ..models import AuthResponse, LoginBody, RegisterBody, UserOut
from ..security import create_token, get_current_user, hash_password, verify_password

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

INVALID_CREDENTIALS = "Invalid credentials"


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterBody, ctx: AppContext = Depends(get_context)):
    """Create an account and return a token for it."""
    try:
        if ctx.db.get_user_by_email(body.email):
            raise ConflictError("User with this email already exists")

        try:
            user = ctx.db.create_user(
                name=body.name,
                email=body.email,
                password_hash=hash_password(body.password),
                phone=body.phone,
            )
        except sqlite3.IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError("User with this email already exists")

        logger.info(f"Registered user {user['id']}")
        return AuthResponse(
            message="User registered successfully",
            token=create_token(user["id"], ctx.config),
            user=UserOut(**user_projection(user)),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during user registration: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginBody, ctx: AppContext = Depends(get_context)):
    """Exchange email and password for a token.

    Unknown email and wrong password produce the same response.
    """
    try:
        user = ctx.db.get_user_by_email(body.email)
        if user is None or not verify_password(user["password_hash"], body.password):
            raise ValidationError(INVALID_CREDENTIALS)

        return AuthResponse(
            message="Logged in successfully",
            token=create_token(user["id"], ctx.config),
            user=UserOut(**user_projection(user)),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during user login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/me", response_model=UserOut)
async def me(user: Dict[str, Any] = Depends(get_current_user)):
    return UserOut(**user_projection(user))
