"""Unit tests for auth/visibility.py -- the visibility decision function.

Covers:
- can_access() for every tier x role combination
- password tier exact-match semantics, including None == None
- unknown tiers deny
- role_at_least() ordering reader < editor < admin
"""

import pytest

from auth.visibility import ROLES, VISIBILITY_TIERS, can_access, is_admin, is_editor, role_at_least

ALL_ROLES = [None, *ROLES]


class TestCanAccessRoleTiers:
    @pytest.mark.parametrize("role", ALL_ROLES)
    def test_public_always_allows(self, role):
        assert can_access("public", role, None, None) is True

    @pytest.mark.parametrize("role,expected", [(None, False), ("reader", True), ("editor", True), ("admin", True)])
    def test_logged_requires_any_role(self, role, expected):
        assert can_access("logged", role, None, None) is expected

    @pytest.mark.parametrize("role,expected", [(None, False), ("reader", False), ("editor", True), ("admin", True)])
    def test_editor_tier(self, role, expected):
        assert can_access("editor", role, None, None) is expected

    @pytest.mark.parametrize("role,expected", [(None, False), ("reader", False), ("editor", False), ("admin", True)])
    def test_admin_tier_only_admin(self, role, expected):
        assert can_access("admin", role, None, None) is expected

    def test_empty_role_is_not_logged_in(self):
        assert can_access("logged", "", None, None) is False


class TestCanAccessPasswordTier:
    def test_matching_password_allows(self):
        assert can_access("password", None, "s3cret", "s3cret") is True

    def test_mismatch_denies_even_for_admin(self):
        """Role is irrelevant on the password tier."""
        assert can_access("password", "admin", "wrong", "s3cret") is False

    def test_missing_provided_password_denies(self):
        assert can_access("password", "reader", None, "s3cret") is False

    def test_comparison_is_case_sensitive(self):
        assert can_access("password", None, "S3CRET", "s3cret") is False

    def test_none_equals_none_allows(self):
        """No stored password and none supplied: current behavior authorizes."""
        assert can_access("password", None, None, None) is True


class TestCanAccessTotality:
    @pytest.mark.parametrize("tier", ["", "private", "PUBLIC", None])
    def test_unknown_tier_denies(self, tier):
        assert can_access(tier, "admin", "x", "x") is False

    def test_deterministic_over_full_grid(self):
        for tier in VISIBILITY_TIERS:
            for role in ALL_ROLES:
                first = can_access(tier, role, "p", "p")
                assert isinstance(first, bool)
                assert can_access(tier, role, "p", "p") is first


class TestRoleHelpers:
    def test_is_editor(self):
        assert is_editor("editor") and is_editor("admin")
        assert not is_editor("reader") and not is_editor(None)

    def test_is_admin(self):
        assert is_admin("admin")
        assert not is_admin("editor")

    @pytest.mark.parametrize(
        "role,minimum,expected",
        [
            ("reader", "reader", True),
            ("reader", "editor", False),
            ("editor", "reader", True),
            ("editor", "admin", False),
            ("admin", "editor", True),
            (None, "reader", False),
            ("admin", "superuser", False),
        ],
    )
    def test_role_at_least(self, role, minimum, expected):
        assert role_at_least(role, minimum) is expected
