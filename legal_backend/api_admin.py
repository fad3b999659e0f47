"""
Admin API Endpoints
===================

User management, signup toggle, permission catalogue and groups.
Every route requires the admin role.
"""

import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .api_auth import user_to_dict, validate_credentials
from .auth import (
    AuthContext, SIGNUP_SETTING_KEY, require_admin, normalize_email,
    get_password_hash, is_signup_enabled, set_setting, log_activity,
)
from .db import User, Group, UserGroup, UserRole, get_db
from .permissions import ROLE_PERMISSIONS, PERMISSION_DESCRIPTIONS, validate_permission_tree
from .schemas import (
    AddUserRequest, UpdateRoleRequest, SignupSettingRequest,
    CreateGroupRequest, UpdateGroupRequest, GroupMemberRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"])

VALID_ROLES = [r.value for r in UserRole]


def group_to_dict(group: Group, member_count: int = 0) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "permissions": group.permissions or {},
        "memberCount": member_count,
        "createdBy": group.created_by,
        "createdAt": group.created_at.isoformat() if group.created_at else None,
        "updatedAt": group.updated_at.isoformat() if group.updated_at else None,
    }


def _get_group_or_404(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


# =============================================================================
# USERS
# =============================================================================

@router.get("/users")
async def list_users(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = db.query(User).order_by(User.created_at.desc()).all()
    return {"users": [user_to_dict(u) for u in users]}


@router.post("/users/add")
async def add_user(
    request: AddUserRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create a user with an explicit role (bypasses onboarding rules)"""
    if not request.email or not request.password or not request.name:
        raise HTTPException(status_code=400, detail="Email, password, and name are required")
    if request.role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    validate_credentials(request.email, request.password)

    email = normalize_email(request.email)
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already in use")

    try:
        user = User(
            email=email,
            name=request.name.strip(),
            password_hash=get_password_hash(request.password),
            role=request.role,
        )
        db.add(user)
        db.flush()
        log_activity(db, auth.user_id, "user.add", "user", user.id, {"role": request.role})
        db.commit()
        db.refresh(user)
    except Exception:
        db.rollback()
        logger.exception("Failed to add user")
        raise HTTPException(status_code=500, detail="Failed to add user")

    logger.info(f"Admin {auth.user_id} added user {user.id} as {user.role}")
    return {"success": True, "user": user_to_dict(user)}


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    request: UpdateRoleRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if request.role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    if user_id == auth.user_id and request.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=400, detail="Cannot change your own admin role")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.role = request.role
    log_activity(db, auth.user_id, "user.role", "user", user_id, {"role": request.role})
    db.commit()
    return {"success": True, "role": request.role}


@router.get("/permissions")
async def get_permission_catalogue(auth: AuthContext = Depends(require_admin)):
    """Role defaults and human-readable descriptions"""
    return {"defaults": ROLE_PERMISSIONS, "descriptions": PERMISSION_DESCRIPTIONS}


@router.get("/settings/signup")
async def get_signup_setting(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"enabled": is_signup_enabled(db)}


@router.put("/settings/signup")
async def update_signup_setting(
    request: SignupSettingRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if request.enabled is None:
        raise HTTPException(status_code=400, detail="enabled is required")

    set_setting(db, SIGNUP_SETTING_KEY, "true" if request.enabled else "false")
    log_activity(db, auth.user_id, "settings.signup", "setting", SIGNUP_SETTING_KEY,
                 {"enabled": request.enabled})
    db.commit()
    return {"success": True, "enabled": request.enabled}


# =============================================================================
# GROUPS
# =============================================================================

@router.get("/groups")
async def list_groups(
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    groups = db.query(Group).order_by(Group.name).all()
    result = []
    for group in groups:
        count = db.query(UserGroup).filter(UserGroup.group_id == group.id).count()
        result.append(group_to_dict(group, count))
    return {"groups": result}


@router.post("/groups", status_code=201)
async def create_group(
    request: CreateGroupRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not request.name or request.permissions is None:
        raise HTTPException(status_code=400, detail="Name and permissions are required")
    if not validate_permission_tree(request.permissions):
        raise HTTPException(status_code=400, detail="Invalid permissions")

    group = Group(
        name=request.name.strip(),
        description=request.description,
        permissions=request.permissions,
        created_by=auth.user_id,
    )
    try:
        db.add(group)
        db.commit()
        db.refresh(group)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Group name already exists")

    logger.info(f"Group created: {group.id} ({group.name})")
    return {"success": True, "groupId": group.id}


@router.patch("/groups/{group_id}")
async def update_group(
    group_id: str,
    request: UpdateGroupRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    group = _get_group_or_404(db, group_id)

    if request.permissions is None and request.name is None and request.description is None:
        raise HTTPException(status_code=400, detail="Permissions are required")

    if request.permissions is not None:
        if not validate_permission_tree(request.permissions):
            raise HTTPException(status_code=400, detail="Invalid permissions")
        group.permissions = request.permissions
    if request.name is not None:
        group.name = request.name.strip()
    if request.description is not None:
        group.description = request.description

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Group name already exists")
    return {"success": True}


@router.delete("/groups/{group_id}")
async def delete_group(
    group_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    group = _get_group_or_404(db, group_id)
    db.query(UserGroup).filter(UserGroup.group_id == group_id).delete()
    db.delete(group)
    db.commit()
    logger.info(f"Group deleted: {group_id}")
    return {"success": True}


@router.post("/groups/{group_id}/members")
async def add_group_member(
    group_id: str,
    request: GroupMemberRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _get_group_or_404(db, group_id)
    if not request.user_id:
        raise HTTPException(status_code=400, detail="userId required")
    if not db.query(User).filter(User.id == request.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")

    existing = db.query(UserGroup).filter(
        UserGroup.group_id == group_id,
        UserGroup.user_id == request.user_id,
    ).first()
    if not existing:
        db.add(UserGroup(user_id=request.user_id, group_id=group_id))
        db.commit()
    return {"success": True}


@router.delete("/groups/{group_id}/members")
async def remove_group_member(
    group_id: str,
    user_id: str = Query(None, alias="userId"),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not user_id:
        raise HTTPException(status_code=400, detail="userId required")

    db.query(UserGroup).filter(
        UserGroup.group_id == group_id,
        UserGroup.user_id == user_id,
    ).delete()
    db.commit()
    return {"success": True}
