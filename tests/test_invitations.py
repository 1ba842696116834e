"""Unit tests for auth/invitations.py and the invitation half of auth/store.py.

Covers:
- create_invitation(): active, unique token, default 7-day ttl, role check
- validate_invitation(): consumed / expired / unknown all invalid; ttl=0
- redeem_invitation(): single use, role inherited, duplicate username rollback
- sweep_invitations(): deletes expired unconsumed rows only
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import DuplicateUsername, InvalidOrExpiredInvitation
from auth.invitations import create_invitation, redeem_invitation, sweep_invitations, validate_invitation
from auth.models import User
from auth.tokens import authenticate, hash_password

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestCreateInvitation:
    def test_new_invitation_is_active(self, user_store):
        inv = create_invitation(user_store, "editor", ttl=timedelta(days=7), now=NOW)
        assert inv.consumed is False
        assert inv.expires_at == NOW + timedelta(days=7)
        assert validate_invitation(user_store, inv.token, now=NOW) is not None

    def test_default_ttl_is_seven_days(self, user_store):
        inv = create_invitation(user_store, "reader", now=NOW)
        assert inv.expires_at == NOW + timedelta(days=7)

    def test_tokens_are_unique(self, user_store):
        tokens = {create_invitation(user_store, "reader", now=NOW).token for _ in range(20)}
        assert len(tokens) == 20

    def test_unknown_role_rejected(self, user_store):
        with pytest.raises(ValueError):
            create_invitation(user_store, "superuser", now=NOW)


class TestValidateInvitation:
    def test_unknown_token(self, user_store):
        assert validate_invitation(user_store, "no-such-token", now=NOW) is None

    def test_empty_token(self, user_store):
        assert validate_invitation(user_store, "", now=NOW) is None

    def test_zero_ttl_is_immediately_invalid(self, user_store):
        inv = create_invitation(user_store, "reader", ttl=timedelta(0), now=NOW)
        assert validate_invitation(user_store, inv.token, now=NOW) is None

    def test_invalid_at_and_after_expiry(self, user_store):
        inv = create_invitation(user_store, "reader", ttl=timedelta(days=1), now=NOW)
        assert validate_invitation(user_store, inv.token, now=inv.expires_at - timedelta(seconds=1)) is not None
        assert validate_invitation(user_store, inv.token, now=inv.expires_at) is None
        assert validate_invitation(user_store, inv.token, now=inv.expires_at + timedelta(days=1)) is None

    def test_consumed_is_invalid(self, user_store):
        inv = create_invitation(user_store, "reader", now=NOW)
        redeem_invitation(user_store, inv.token, "bob", "pw-bob-1", now=NOW)
        assert validate_invitation(user_store, inv.token, now=NOW) is None


class TestRedeemInvitation:
    def test_creates_account_with_invitation_role(self, user_store):
        inv = create_invitation(user_store, "editor", now=NOW)
        principal = redeem_invitation(user_store, inv.token, "carol", "pw-carol-1", display_name="Carol", now=NOW)
        assert principal.role == "editor"
        user = user_store.get_by_id(principal.user_id)
        assert user.username == "carol"
        assert user.role == "editor"
        assert user.display_name == "Carol"
        assert authenticate(user_store, "carol", "pw-carol-1").user.id == principal.user_id

    def test_display_name_defaults_to_username(self, user_store):
        inv = create_invitation(user_store, "reader", now=NOW)
        principal = redeem_invitation(user_store, inv.token, "dave", "pw-dave-1", now=NOW)
        assert user_store.get_by_id(principal.user_id).display_name == "dave"

    def test_second_redemption_fails(self, user_store):
        inv = create_invitation(user_store, "reader", now=NOW)
        redeem_invitation(user_store, inv.token, "erin", "pw-erin-1", now=NOW)
        with pytest.raises(InvalidOrExpiredInvitation):
            redeem_invitation(user_store, inv.token, "frank", "pw-frank-1", now=NOW)
        assert user_store.get_by_username("frank") is None

    def test_expired_cannot_be_redeemed(self, user_store):
        inv = create_invitation(user_store, "reader", ttl=timedelta(hours=1), now=NOW)
        with pytest.raises(InvalidOrExpiredInvitation):
            redeem_invitation(user_store, inv.token, "gina", "pw-gina-1", now=NOW + timedelta(hours=2))
        assert user_store.get_by_username("gina") is None

    def test_store_rejects_expired_even_without_precheck(self, user_store):
        """The transactional consume re-checks expiry itself."""
        inv = create_invitation(user_store, "reader", ttl=timedelta(hours=1), now=NOW)
        user = User(username="hank", role="reader", hashed_password=hash_password("pw"))
        with pytest.raises(InvalidOrExpiredInvitation):
            user_store.redeem_invitation(inv.token, user, now=NOW + timedelta(hours=2))

    def test_duplicate_username_leaves_invitation_active(self, user_store):
        user_store.create_user(User(username="taken", role="reader", hashed_password=hash_password("pw")))
        inv = create_invitation(user_store, "editor", now=NOW)
        with pytest.raises(DuplicateUsername):
            redeem_invitation(user_store, inv.token, "taken", "pw-new-1", now=NOW)
        assert validate_invitation(user_store, inv.token, now=NOW) is not None
        principal = redeem_invitation(user_store, inv.token, "fresh", "pw-new-1", now=NOW)
        assert principal.role == "editor"


class TestSweepInvitations:
    def test_removes_only_expired_unconsumed(self, user_store):
        expired = create_invitation(user_store, "reader", ttl=timedelta(days=1), now=NOW - timedelta(days=10))
        active = create_invitation(user_store, "reader", ttl=timedelta(days=7), now=NOW)
        consumed = create_invitation(user_store, "reader", ttl=timedelta(days=1), now=NOW - timedelta(days=10))
        redeem_invitation(user_store, consumed.token, "ivan", "pw-ivan-1", now=NOW - timedelta(days=10))

        assert sweep_invitations(user_store, now=NOW) == 1

        assert user_store.get_invitation(expired.token) is None
        assert user_store.get_invitation(active.token) is not None
        kept = user_store.get_invitation(consumed.token)
        assert kept is not None and kept.consumed is True

    def test_sweep_is_idempotent(self, user_store):
        create_invitation(user_store, "reader", ttl=timedelta(days=1), now=NOW - timedelta(days=10))
        assert sweep_invitations(user_store, now=NOW) == 1
        assert sweep_invitations(user_store, now=NOW) == 0
