"""
Auth API Endpoints
==================

Signup (first admin / self-registration), login, token refresh,
setup status and dev credentials.
"""

import logging
from typing import Dict, Any

from email_validator import validate_email, EmailNotValidError
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .auth import (
    AuthContext, SetupError, SetupInProgressError, AlreadySetupError,
    DEV_ADMIN, MIN_PASSWORD_LENGTH, MAX_PASSWORD_BYTES,
    get_auth_service, get_setup_status, register_user, seed_dev_data,
    issue_tokens, decode_token, is_password_too_long,
    require_auth,
)
from .config import get_settings
from .db import User, get_db
from .permissions import effective_permissions
from .schemas import SignupRequest, LoginRequest, RefreshTokenRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "profileImageUrl": user.profile_image_url,
        "lastActiveAt": user.last_active_at.isoformat() if user.last_active_at else None,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def _setup_error_detail(e: SetupError) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": str(e)}
    if isinstance(e, SetupInProgressError):
        detail["retryAfter"] = e.retry_after
    if isinstance(e, AlreadySetupError):
        detail["error"] = "An admin user already exists. Please log in instead."
        detail["alreadySetup"] = True
    return detail


def validate_credentials(email: str, password: str) -> None:
    """Raise 400 for a malformed email or weak/overlong password"""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise HTTPException(status_code=400, detail="Invalid email format")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if is_password_too_long(password):
        raise HTTPException(
            status_code=400,
            detail=f"Password too long (max {MAX_PASSWORD_BYTES} bytes)"
        )


@router.post("/signup", status_code=201)
async def signup(request: SignupRequest, db: Session = Depends(get_db)):
    """
    Create an account.

    The first account becomes admin and closes open signup; later
    accounts need signup enabled and get DEFAULT_USER_ROLE.
    """
    if not request.email or not request.password or not request.name:
        raise HTTPException(status_code=400, detail="Email, password, and name are required")

    validate_credentials(request.email, request.password)

    try:
        outcome = register_user(db, request.email, request.password, request.name)
    except SetupError as e:
        logger.info(f"Signup rejected: {type(e).__name__}")
        raise HTTPException(status_code=e.status_code, detail=_setup_error_detail(e))
    except Exception:
        logger.exception("Signup failed")
        raise HTTPException(status_code=500, detail="An unexpected error occurred. Please try again.")

    user = outcome["user"]
    logger.info(f"User created: {user.id} (role: {user.role})")

    return {
        "success": True,
        "user": user_to_dict(user),
        "isFirstUser": outcome["isFirstUser"],
        "message": (
            "Admin account created successfully! You can now log in."
            if user.role == "admin"
            else "Account created successfully! You can now log in."
        ),
        **issue_tokens(user),
    }


@router.post("/login")
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email + password for JWT tokens"""
    if not request.email or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    if is_password_too_long(request.password):
        raise HTTPException(
            status_code=400,
            detail=f"Password too long (max {MAX_PASSWORD_BYTES} bytes)"
        )

    auth = get_auth_service(db).authenticate_user(request.email, request.password)
    if not auth:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    user = db.query(User).filter(User.id == auth.user_id).first()
    return {"user": user_to_dict(user), **issue_tokens(user)}


@router.post("/refresh")
async def refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    """New token pair from a refresh token"""
    payload = decode_token(request.refresh_token, expected_type="refresh") if request.refresh_token else None
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = db.query(User).filter(User.id == payload.get("sub")).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return issue_tokens(user)


@router.get("/status")
async def auth_status(db: Session = Depends(get_db)):
    """Setup state for the registration page"""
    try:
        status = get_setup_status(db)
    except Exception:
        logger.exception("Auth status check failed")
        # Default to first-user mode so initial setup stays possible
        return {
            "hasUsers": False,
            "signupEnabled": True,
            "isFirstUser": True,
            "setupInProgress": False,
            "dbReady": False,
            "_error": "Status check failed, defaulting to first-user mode",
        }

    return {"hasUsers": not status["isFirstUser"], **status}


@router.get("/me")
async def auth_me(auth: AuthContext = Depends(require_auth)):
    """Current user with effective permissions"""
    return {
        "id": auth.user_id,
        "email": auth.email,
        "name": auth.name,
        "role": auth.role,
        "isAdmin": auth.is_admin,
        "groupIds": auth.group_ids,
        "permissions": effective_permissions(auth.role, auth.group_permissions),
    }


@router.get("/dev-credentials")
async def dev_credentials(db: Session = Depends(get_db)):
    """Dev admin credentials for pre-filling the login form (IS_DEV only)"""
    if not get_settings().is_dev:
        raise HTTPException(status_code=404, detail="Not available in production")

    seed_dev_data(db)
    return {
        "isDevMode": True,
        "credentials": {"email": DEV_ADMIN["email"], "password": DEV_ADMIN["password"]},
    }
