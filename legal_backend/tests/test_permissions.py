"""
Permission Model Tests
======================

Role defaults, group merging and effective-permission resolution.
"""

import pytest

from legal_backend.permissions import (
    PERMISSION_SCHEMA,
    check_permission,
    combine_permissions,
    effective_permissions,
    get_permissions,
    has_permission,
    lookup,
    validate_permission_tree,
)


class TestRoleDefaults:
    def test_admin_and_user_have_everything(self):
        for role in ("admin", "user"):
            for section, keys in PERMISSION_SCHEMA.items():
                for key in keys:
                    assert has_permission(role, f"{section}.{key}")

    def test_pending_has_nothing(self):
        assert not has_permission("pending", "vaults.read")
        assert not has_permission("pending", "chat_ai.use")

    def test_unknown_role_falls_back_to_pending(self):
        assert get_permissions("superuser") == get_permissions("pending")
        assert not has_permission(None, "ocr.create")

    def test_unknown_key_is_denied(self):
        assert not has_permission("admin", "vaults.teleport")
        assert not has_permission("admin", "nonexistent")


class TestLookup:
    def test_walks_dotted_key(self):
        assert lookup({"a": {"b": True}}, "a.b") is True

    def test_missing_segment_returns_none(self):
        assert lookup({"a": {"b": True}}, "a.c") is None
        assert lookup({"a": True}, "a.b") is None
        assert lookup(None, "a.b") is None


class TestCombine:
    def test_empty_list_is_none(self):
        assert combine_permissions([]) is None

    def test_most_permissive_wins(self):
        merged = combine_permissions([
            {"vaults": {"read": False, "create": True}},
            {"vaults": {"read": True}},
        ])
        assert merged == {"vaults": {"read": True, "create": True}}

    def test_disjoint_sections_are_kept(self):
        merged = combine_permissions([{"ocr": {"read": True}}, {"tts": {"use": False}}])
        assert merged == {"ocr": {"read": True}, "tts": {"use": False}}


class TestEffectivePermission:
    def test_group_grants_pending_user(self):
        groups = {"vaults": {"read": True}}
        assert check_permission("pending", groups, "vaults.read")
        assert not check_permission("pending", groups, "vaults.create")

    def test_group_false_does_not_revoke_role_default(self):
        groups = {"vaults": {"read": False}}
        assert check_permission("user", groups, "vaults.read")

    def test_no_groups_uses_role(self):
        assert check_permission("user", None, "tts.use")
        assert not check_permission("pending", None, "tts.use")

    def test_effective_tree_covers_schema(self):
        tree = effective_permissions("pending", {"chat_ai": {"use": True}})
        assert set(tree) == set(PERMISSION_SCHEMA)
        assert tree["chat_ai"]["use"] is True
        assert tree["chat_ai"]["change_model"] is False


class TestValidateTree:
    def test_accepts_partial_known_tree(self):
        assert validate_permission_tree({"vaults": {"read": True}})

    @pytest.mark.parametrize("tree", [
        None,
        [],
        {"bogus": {"read": True}},
        {"vaults": {"teleport": True}},
        {"vaults": {"read": "yes"}},
        {"vaults": True},
    ])
    def test_rejects_invalid(self, tree):
        assert not validate_permission_tree(tree)
