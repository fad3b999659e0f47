"""
Authentication & Onboarding
===========================

JWT bearer authentication plus the first-run setup flow.

Roles:
- admin: full access, manages users and groups
- user: regular access (role defaults + group grants)
- pending: no access until an admin promotes the account

Onboarding:
1. The very first account becomes admin and closes open signup
   (ENABLE_SIGNUP=false). A process-wide lock serializes this step.
2. Later self-registrations require ENABLE_SIGNUP=true and get
   DEFAULT_USER_ROLE.
3. IS_DEV=true seeds a dev admin and treats unauthenticated requests
   as that admin.
"""

import time
import logging
import threading
from typing import Optional, List, Dict, Any, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import jwt
from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import User, Setting, Group, UserGroup, ActivityLog, UserRole
from .db.session import get_db
from .permissions import (
    PermissionTree, PermissionDeniedError,
    check_permission, combine_permissions,
)

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

SIGNUP_SETTING_KEY = "ENABLE_SIGNUP"
MIN_PASSWORD_LENGTH = 8

DEV_ADMIN = {
    "email": "admin-dev@case.dev",
    "password": "password",
    "name": "Dev Admin",
}


# =============================================================================
# ERRORS
# =============================================================================

class SetupError(Exception):
    """Base class for onboarding failures"""
    status_code = 400


class SetupInProgressError(SetupError):
    """Another request is creating the first admin"""
    status_code = 503
    retry_after = 2


class AlreadySetupError(SetupError):
    """First admin already exists"""
    status_code = 409


class SignupDisabledError(SetupError):
    """Self-registration is closed"""
    status_code = 403


class UserExistsError(SetupError):
    """Email already registered"""
    status_code = 400


# =============================================================================
# PASSWORD HASHING
# =============================================================================

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """False for accounts without a password and for over-long input"""
    if not hashed_password or is_password_too_long(plain_password):
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Stored password hash is unreadable: {e}")
        return False


def get_password_hash(password: str) -> str:
    if is_password_too_long(password):
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
    return pwd_context.hash(password)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# =============================================================================
# TOKENS
# =============================================================================

def _encode_token(user: User, token_type: str, lifetime: timedelta) -> str:
    claims = {
        "sub": user.id,
        "role": user.role,
        "type": token_type,
        "exp": datetime.utcnow() + lifetime,
    }
    return jwt.encode(claims, get_settings().jwt_secret_key, algorithm=JWT_ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> Optional[dict]:
    """Claims of a valid, unexpired token of the expected type; otherwise None"""
    try:
        claims = jwt.decode(token, get_settings().jwt_secret_key, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Rejected {expected_type} token: {e}")
        return None
    return claims if claims.get("type") == expected_type else None


def issue_tokens(user: User) -> Dict[str, str]:
    """Access + refresh pair returned by signup, login and refresh"""
    settings = get_settings()
    return {
        "access_token": _encode_token(user, "access", timedelta(minutes=settings.jwt_access_token_expire_minutes)),
        "refresh_token": _encode_token(user, "refresh", timedelta(days=settings.jwt_refresh_token_expire_days)),
        "token_type": "bearer",
    }


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authorization context for a request"""
    user_id: str
    email: str
    name: str
    role: str
    group_ids: List[str] = field(default_factory=list)
    group_permissions: Optional[PermissionTree] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_pending(self) -> bool:
        return self.role == UserRole.PENDING.value

    def has_permission(self, key: str) -> bool:
        """Role defaults OR group grants (most permissive wins)"""
        return check_permission(self.role, self.group_permissions, key)

    def require_permission(self, key: str) -> None:
        if not self.has_permission(key):
            raise PermissionDeniedError(key)


# =============================================================================
# AUTH SERVICE
# =============================================================================

class AuthService:
    """Authentication and authorization over the SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def get_user_groups(self, user_id: str) -> List[Group]:
        return (
            self.db.query(Group)
            .join(UserGroup, UserGroup.group_id == Group.id)
            .filter(UserGroup.user_id == user_id)
            .all()
        )

    def get_group_permissions(self, user_id: str) -> Optional[PermissionTree]:
        """Merged permissions of all the user's groups, or None without groups"""
        groups = self.get_user_groups(user_id)
        return combine_permissions([g.permissions or {} for g in groups])

    def get_auth_context(self, user_id: str) -> Optional[AuthContext]:
        """Build auth context for a user id"""
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        return self._context_for(user)

    def _context_for(self, user: User) -> AuthContext:
        groups = self.get_user_groups(user.id)
        return AuthContext(
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            group_ids=[g.id for g in groups],
            group_permissions=combine_permissions([g.permissions or {} for g in groups]),
        )

    def authenticate_user(self, email: str, password: str) -> Optional[AuthContext]:
        """Authenticate user with email and password"""
        user = self.db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or not verify_password(password, user.password_hash):
            return None

        user.last_active_at = datetime.utcnow()
        self.db.commit()
        return self._context_for(user)

    def require_permission(self, auth: AuthContext, key: str) -> None:
        auth.require_permission(key)


def get_auth_service(db: Session) -> AuthService:
    return AuthService(db)


def log_activity(
    db: Session,
    user_id: Optional[str],
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Append an audit entry (caller commits)"""
    db.add(ActivityLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or {},
    ))


# =============================================================================
# SETTINGS STORE
# =============================================================================

def get_setting(db: Session, key: str) -> Optional[str]:
    row = db.query(Setting).filter(Setting.key == key).first()
    return row.value if row else None


def set_setting(db: Session, key: str, value: str) -> None:
    row = db.query(Setting).filter(Setting.key == key).first()
    if row:
        row.value = value
    else:
        db.add(Setting(key=key, value=value))


def is_signup_enabled(db: Session) -> bool:
    value = get_setting(db, SIGNUP_SETTING_KEY)
    if value is None:
        return get_settings().enable_signup_default
    return value == "true"


# =============================================================================
# ONBOARDING / SETUP
# =============================================================================

_setup_lock = threading.Lock()


def is_setup_in_progress() -> bool:
    return _setup_lock.locked()


def check_has_users(db: Session, attempts: int = 3, base_delay: float = 0.1) -> bool:
    """
    True when at least one user exists.

    Retries with exponential backoff; the database may still be
    initializing on a cold start.
    """
    for attempt in range(attempts):
        try:
            return db.query(User.id).first() is not None
        except SQLAlchemyError as e:
            db.rollback()
            if attempt == attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"User check failed (attempt {attempt + 1}/{attempts}), retrying in {delay}s: {e}")
            time.sleep(delay)
    return False


def get_setup_status(db: Session) -> Dict[str, bool]:
    """Setup state for the registration page"""
    try:
        has_users = check_has_users(db)
        signup_enabled = is_signup_enabled(db)
        db_ready = True
    except SQLAlchemyError as e:
        logger.error(f"Setup status check failed: {e}")
        has_users = False
        signup_enabled = True
        db_ready = False

    return {
        "isFirstUser": not has_users,
        "signupEnabled": signup_enabled,
        "setupInProgress": is_setup_in_progress(),
        "dbReady": db_ready,
    }


def _insert_user(db: Session, email: str, password: str, name: str, role: str) -> User:
    user = User(
        email=normalize_email(email),
        name=name.strip(),
        password_hash=get_password_hash(password),
        role=role,
        last_active_at=datetime.utcnow(),
    )
    db.add(user)
    db.flush()
    return user


def create_first_admin(db: Session, email: str, password: str, name: str) -> User:
    """
    Create the first (admin) account and close open signup.

    Raises SetupInProgressError if another request holds the setup lock,
    AlreadySetupError if an account already exists.
    """
    if not _setup_lock.acquire(blocking=False):
        raise SetupInProgressError("Setup in progress, please retry")

    try:
        if check_has_users(db):
            raise AlreadySetupError("Admin account already exists")

        user = _insert_user(db, email, password, name, UserRole.ADMIN.value)
        set_setting(db, SIGNUP_SETTING_KEY, "false")
        log_activity(db, user.id, "setup.first_admin", "user", user.id)
        db.commit()
        db.refresh(user)
        logger.info(f"First admin created: {user.id}")
        return user
    except Exception:
        db.rollback()
        raise
    finally:
        _setup_lock.release()


def create_regular_user(db: Session, email: str, password: str, name: str) -> User:
    """Self-registration when signup is open"""
    if not is_signup_enabled(db):
        raise SignupDisabledError("Signup is currently disabled. Contact an administrator.")

    if db.query(User).filter(User.email == normalize_email(email)).first():
        raise UserExistsError("Email already registered")

    role = get_settings().default_user_role
    if role not in (r.value for r in UserRole):
        role = UserRole.USER.value

    user = _insert_user(db, email, password, name, role)
    log_activity(db, user.id, "user.signup", "user", user.id)
    db.commit()
    db.refresh(user)
    return user


def register_user(db: Session, email: str, password: str, name: str) -> Dict[str, Any]:
    """Signup entry point: first admin or regular user"""
    if is_setup_in_progress():
        raise SetupInProgressError("Setup in progress, please retry")

    if not check_has_users(db):
        user = create_first_admin(db, email, password, name)
        return {"user": user, "isFirstUser": True}

    user = create_regular_user(db, email, password, name)
    return {"user": user, "isFirstUser": False}


def seed_dev_data(db: Session) -> Optional[User]:
    """Create the dev admin once when IS_DEV=true"""
    if not get_settings().is_dev:
        return None

    existing = db.query(User).filter(User.email == DEV_ADMIN["email"]).first()
    if existing:
        return existing

    user = _insert_user(db, DEV_ADMIN["email"], DEV_ADMIN["password"], DEV_ADMIN["name"], UserRole.ADMIN.value)
    if get_setting(db, SIGNUP_SETTING_KEY) is None:
        set_setting(db, SIGNUP_SETTING_KEY, "true")
    db.commit()
    db.refresh(user)
    logger.info(f"Seeded dev admin {DEV_ADMIN['email']}")
    return user


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Optional[AuthContext]:
    """
    Resolve the caller from `Authorization: Bearer <jwt>`.

    Without a token, dev mode acts as the dev admin; otherwise anonymous.
    """
    auth_service = get_auth_service(db)

    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        payload = decode_token(token)
        if not payload:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        auth = auth_service.get_auth_context(payload.get("sub"))
        if not auth:
            raise HTTPException(status_code=401, detail="User not found")
        return auth

    if get_settings().is_dev:
        dev_user = seed_dev_data(db)
        if dev_user:
            return auth_service.get_auth_context(dev_user.id)

    return None


async def require_auth(
    auth: Optional[AuthContext] = Depends(get_current_user)
) -> AuthContext:
    """Require authenticated user"""
    if not auth:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return auth


async def require_admin(
    auth: AuthContext = Depends(require_auth)
) -> AuthContext:
    """Require admin role"""
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth


def require_permission(key: str) -> Callable:
    """
    Dependency factory for a permission key.

    Usage:
        @router.get("/vaults")
        async def list_vaults(auth: AuthContext = Depends(require_permission("vaults.read"))):
            ...
    """
    async def dependency(auth: AuthContext = Depends(require_auth)) -> AuthContext:
        if not auth.has_permission(key):
            raise HTTPException(status_code=403, detail=f"Permission denied: {key}")
        return auth

    return dependency
