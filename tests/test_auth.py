"""Tests for signed session tokens."""

from datetime import datetime, timedelta, timezone

from api.auth import UserRole, create_session_token, verify_session_token


class TestSessionTokens:
    """Tests for token creation and verification."""

    def test_round_trip(self):
        token = create_session_token("alice", UserRole.ADMIN)
        session = verify_session_token(token)

        assert session.username == "alice"
        assert session.role == UserRole.ADMIN
        assert session.is_admin
        assert session.expires_at - session.issued_at == 8 * 3600

    def test_staff_is_not_admin(self):
        session = verify_session_token(create_session_token("bob", UserRole.STAFF))
        assert not session.is_admin

    def test_expired_token_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=9)
        assert verify_session_token(create_session_token("alice", UserRole.ADMIN, now=issued)) is None

    def test_tampered_payload_rejected(self):
        token = create_session_token("bob", UserRole.STAFF)
        admin_payload = create_session_token("bob", UserRole.ADMIN).split(".")[0]
        forged = f"{admin_payload}.{token.split('.')[1]}"

        assert verify_session_token(forged) is None

    def test_malformed_tokens(self):
        assert verify_session_token("") is None
        assert verify_session_token("a.b.c") is None
        assert verify_session_token("no-dot") is None
