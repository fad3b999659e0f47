"""
Permission Model
================

Hierarchical boolean permissions, addressed with dot notation
("vaults.create", "ocr.evaluate").

Sources of permissions:
- Role defaults: admin and user get everything, pending gets nothing.
  Unknown roles fall back to pending.
- Groups: each group stores a (possibly partial) permission tree.
  A user's group trees are merged with boolean OR, so the most
  permissive value wins.

Effective permission = role value OR group value. When the merged
group tree does not mention a key, the role value alone decides.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PermissionTree = Dict[str, Any]


# =============================================================================
# PERMISSION TREE
# =============================================================================

PERMISSION_SCHEMA: Dict[str, List[str]] = {
    "workspace": ["models", "knowledge", "prompts", "tools"],
    "chat": ["file_upload", "delete", "edit", "temporary"],
    "vaults": ["create", "read", "update", "delete", "upload", "download", "search"],
    "ocr": ["create", "read", "evaluate", "download"],
    "transcription": ["create", "read", "streaming", "download"],
    "chat_ai": ["use", "change_model", "change_settings"],
    "tts": ["use", "download"],
}


def _uniform_tree(value: bool) -> PermissionTree:
    return {section: {key: value for key in keys} for section, keys in PERMISSION_SCHEMA.items()}


ADMIN_PERMISSIONS: PermissionTree = _uniform_tree(True)
DEFAULT_USER_PERMISSIONS: PermissionTree = _uniform_tree(True)
PENDING_PERMISSIONS: PermissionTree = _uniform_tree(False)

ROLE_PERMISSIONS: Dict[str, PermissionTree] = {
    "admin": ADMIN_PERMISSIONS,
    "user": DEFAULT_USER_PERMISSIONS,
    "pending": PENDING_PERMISSIONS,
}

PERMISSION_DESCRIPTIONS: Dict[str, str] = {
    "vaults.create": "Create new vaults",
    "vaults.read": "View vaults and files",
    "vaults.upload": "Upload files to vaults",
    "vaults.download": "Download files from vaults",
    "vaults.search": "Use semantic search",
    "ocr.create": "Submit OCR jobs",
    "ocr.read": "View OCR results",
    "ocr.evaluate": "Use visual evaluation tools",
    "transcription.create": "Submit transcription jobs",
    "transcription.streaming": "Use live transcription",
    "chat_ai.use": "Use AI chat",
    "chat_ai.change_model": "Select different AI models",
    "tts.use": "Generate text-to-speech",
}


class PermissionDeniedError(Exception):
    """Raised when a user lacks a permission key"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Permission denied: {key}")


# =============================================================================
# LOOKUPS
# =============================================================================

def get_permissions(role: Optional[str]) -> PermissionTree:
    """Role default tree; unknown roles get the pending tree"""
    return ROLE_PERMISSIONS.get(role or "", PENDING_PERMISSIONS)


def lookup(tree: Optional[PermissionTree], key: str) -> Optional[Any]:
    """Walk a dotted key through a tree. Returns None when any segment is missing."""
    if tree is None:
        return None
    current: Any = tree
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def has_permission(role: Optional[str], key: str) -> bool:
    """Role-only check"""
    return bool(lookup(get_permissions(role), key))


def combine_permissions(trees: List[PermissionTree]) -> Optional[PermissionTree]:
    """
    Merge group permission trees, most permissive wins.

    Nested dicts merge recursively; leaves combine with boolean OR.
    Returns None for an empty list (user is in no groups).
    """
    if not trees:
        return None

    def merge(left: Any, right: Any) -> Any:
        if isinstance(left, dict) and isinstance(right, dict):
            merged = dict(left)
            for key, value in right.items():
                merged[key] = merge(merged[key], value) if key in merged else copy.deepcopy(value)
            return merged
        if isinstance(left, dict) or isinstance(right, dict):
            # Shape mismatch: keep the subtree
            return copy.deepcopy(left if isinstance(left, dict) else right)
        return bool(left) or bool(right)

    result: PermissionTree = {}
    for tree in trees:
        result = merge(result, tree or {})
    return result


def check_permission(role: Optional[str], group_permissions: Optional[PermissionTree], key: str) -> bool:
    """
    Effective permission from role defaults plus merged group permissions.
    """
    role_value = has_permission(role, key)

    if group_permissions is None:
        return role_value

    group_value = lookup(group_permissions, key)
    if group_value is None:
        return role_value

    return role_value or bool(group_value)


def effective_permissions(role: Optional[str], group_permissions: Optional[PermissionTree]) -> PermissionTree:
    """Full resolved tree for a user (used by /api/auth/me)"""
    return {
        section: {
            key: check_permission(role, group_permissions, f"{section}.{key}")
            for key in keys
        }
        for section, keys in PERMISSION_SCHEMA.items()
    }


def validate_permission_tree(tree: Any) -> bool:
    """A group tree may only contain known sections/keys with boolean leaves"""
    if not isinstance(tree, dict):
        return False
    for section, values in tree.items():
        if section not in PERMISSION_SCHEMA or not isinstance(values, dict):
            return False
        for key, value in values.items():
            if key not in PERMISSION_SCHEMA[section] or not isinstance(value, bool):
                return False
    return True
