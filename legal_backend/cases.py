"""
Case Access & Numbering
=======================

Visibility rules:
- admin: every case
- creator: always
- organization: every authenticated user
- private: users in allowed_user_ids, or members of allowed_group_ids
- team: members of allowed_group_ids

Case numbers are sequential per year: YYYY-NNN.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .auth import AuthContext
from .db.models import Case, CaseVisibility

logger = logging.getLogger(__name__)


def can_access_case(auth: AuthContext, case: Case) -> bool:
    """Check if the caller can see a case"""
    if auth.is_admin:
        return True

    if case.user_id == auth.user_id:
        return True

    visibility = case.visibility or CaseVisibility.PRIVATE.value
    allowed_users = case.allowed_user_ids or []
    allowed_groups = set(case.allowed_group_ids or [])
    in_allowed_group = bool(allowed_groups & set(auth.group_ids))

    if visibility == CaseVisibility.ORGANIZATION.value:
        return True

    if visibility == CaseVisibility.PRIVATE.value:
        return auth.user_id in allowed_users or in_allowed_group

    if visibility == CaseVisibility.TEAM.value:
        return in_allowed_group

    return False


def get_accessible_cases(auth: AuthContext, db: Session) -> List[Case]:
    """All cases visible to the caller, newest first"""
    cases = db.query(Case).order_by(Case.created_at.desc()).all()
    return [c for c in cases if can_access_case(auth, c)]


def generate_case_number(db: Session, year: Optional[int] = None) -> str:
    """Next case number for the year, e.g. 2025-007"""
    year = year or datetime.utcnow().year
    prefix = f"{year}-"
    count = db.query(Case).filter(Case.case_number.like(f"{prefix}%")).count()
    return f"{prefix}{count + 1:03d}"
