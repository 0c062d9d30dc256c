"""Tests for OTP issuing and verification."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from src.models import OTPCode, User
from src.models.mixins import utcnow
from src.services.auth import AuthService
from src.services.credential_store import CredentialStore
from src.services.errors import AuthError
from src.services.otp_service import OTPService, generate_otp

EMAIL = "rider@example.com"

# Not exactly six ASCII digits
MALFORMED_CODES = (
    "12345",
    "1234567",
    "1" * 17,
    "abcdef",
    "12 456",
    "123456\n",
    " 123456",
    "١٢٣٤٥٦",
)


@pytest.fixture
def otp_service(db, notifier, settings):
    return OTPService(db, notifier, settings)


def wrong_code(code: str) -> str:
    return "100000" if code != "100000" else "100001"


def assert_code(exc_info, code: str, status_code: int = 400):
    assert exc_info.value.code == code
    assert exc_info.value.status_code == status_code


class TestGenerateOtp:
    """Tests for the code generator."""

    def test_codes_are_six_digits_in_range(self):
        for _ in range(200):
            code = generate_otp()
            assert len(code) == 6
            assert 100000 <= int(code) <= 999999

    def test_bounds_reachable(self):
        with patch("src.services.otp_service.secrets.randbelow", return_value=0):
            assert generate_otp() == "100000"
        with patch("src.services.otp_service.secrets.randbelow", return_value=899999):
            assert generate_otp() == "999999"


class TestIssue:
    """Tests for OTPService.generate."""

    def test_creates_unverified_user_without_password(self, db, otp_service):
        result = otp_service.generate("Rider@Example.com")

        assert result.email == EMAIL
        assert result.delivered is True
        user = db.query(User).filter(User.email == EMAIL).one()
        assert user.verified is False
        assert user.password_hash is None

    def test_stores_hash_not_plaintext(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)

        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        assert row.hashed_otp != code
        assert row.attempts == 0
        assert row.used_at is None
        lifetime = row.expires_at - row.created_at
        assert timedelta(minutes=9) < lifetime <= timedelta(minutes=10, seconds=1)

    def test_regenerate_replaces_active_code(self, db, otp_service):
        otp_service.generate(EMAIL)
        otp_service.generate(EMAIL)

        rows = db.query(OTPCode).filter(OTPCode.email == EMAIL).all()
        assert len(rows) == 1
        assert db.query(User).filter(User.email == EMAIL).count() == 1

    def test_regenerate_keeps_used_codes(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        otp_service.verify(EMAIL, notifier.last_code(EMAIL))
        otp_service.generate(EMAIL)

        assert db.query(OTPCode).filter(OTPCode.email == EMAIL).count() == 2

    def test_notifier_failure_is_reported_not_raised(self, db, otp_service, notifier):
        notifier.fail = True
        result = otp_service.generate(EMAIL)

        assert result.delivered is False
        assert result.message == "OTP generated but email delivery may be delayed"
        assert db.query(OTPCode).filter(OTPCode.email == EMAIL).count() == 1

    def test_invalid_email(self, otp_service):
        for email in (None, "", "rider", "rider@example", "ri der@example.com"):
            with pytest.raises(AuthError) as exc_info:
                otp_service.generate(email)
            assert_code(exc_info, "INVALID_EMAIL")

    def test_duplicate_insert_race(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        user_id = db.query(User).filter(User.email == EMAIL).one().id
        find_user = CredentialStore.find_user_by_email
        lookups = []

        # The first lookup misses, as if a concurrent request created the user after it
        def miss_first(store, email):
            lookups.append(email)
            return None if len(lookups) == 1 else find_user(store, email)

        with patch.object(
            CredentialStore, "find_user_by_email", autospec=True, side_effect=miss_first
        ):
            result = otp_service.generate(EMAIL)

        assert result.delivered is True
        assert len(lookups) == 2
        users = db.query(User).filter(User.email == EMAIL).all()
        assert [user.id for user in users] == [user_id]
        assert db.query(OTPCode).filter(OTPCode.email == EMAIL).count() == 1
        assert otp_service.verify(EMAIL, notifier.last_code(EMAIL)).user.id == user_id

    def test_store_failure_rolls_back(self, db, otp_service):
        with patch.object(CredentialStore, "create_otp_code", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                otp_service.generate(EMAIL)

        # The lazily created user went with the failed transaction
        assert db.query(User).filter(User.email == EMAIL).count() == 0


class TestVerify:
    """Tests for OTPService.verify."""

    def test_success_verifies_user_and_opens_session(self, db, otp_service, notifier, settings):
        otp_service.generate(EMAIL)
        issued = otp_service.verify(EMAIL, notifier.last_code(EMAIL))

        assert issued.user.verified is True
        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        assert row.used_at is not None

        user = AuthService(db, settings).authenticate(issued.token)
        assert user.email == EMAIL

    def test_verify_normalizes_email(self, otp_service, notifier):
        otp_service.generate(EMAIL)
        issued = otp_service.verify("  RIDER@example.com", notifier.last_code(EMAIL))
        assert issued.user.email == EMAIL

    def test_wrong_code_counts_attempts(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)

        for remaining in (4, 3, 2, 1):
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, wrong_code(code))
            assert_code(exc_info, "INVALID_OTP")
            assert exc_info.value.extra == {"attemptsRemaining": remaining}

        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        assert row.attempts == 4
        assert row.used_at is None

    def test_fifth_failure_burns_code(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)

        for _ in range(4):
            with pytest.raises(AuthError):
                otp_service.verify(EMAIL, wrong_code(code))

        with pytest.raises(AuthError) as exc_info:
            otp_service.verify(EMAIL, wrong_code(code))
        assert_code(exc_info, "TOO_MANY_ATTEMPTS")

        # The correct code no longer works
        with pytest.raises(AuthError) as exc_info:
            otp_service.verify(EMAIL, code)
        assert exc_info.value.code in ("OTP_NOT_FOUND", "TOO_MANY_ATTEMPTS")

        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        assert row.used_at is not None
        assert db.query(User).filter(User.email == EMAIL).one().verified is False

    def test_code_at_cap_is_burned_before_comparison(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)
        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        row.attempts = 5
        db.commit()

        with pytest.raises(AuthError) as exc_info:
            otp_service.verify(EMAIL, code)
        assert_code(exc_info, "TOO_MANY_ATTEMPTS")

        db.refresh(row)
        assert row.used_at is not None

    def test_expired_code_is_not_found(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        row.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(AuthError) as exc_info:
            otp_service.verify(EMAIL, notifier.last_code(EMAIL))
        assert_code(exc_info, "OTP_NOT_FOUND", 404)

    def test_expiry_race_after_selection(self, db, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)
        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        row.expires_at = utcnow() - timedelta(seconds=1)

        # Selection returns the row even though it expired in between
        with patch.object(CredentialStore, "find_latest_active_otp", return_value=row):
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, code)
        assert_code(exc_info, "OTP_EXPIRED")

    def test_concurrent_consumption_is_not_found(self, otp_service, notifier):
        otp_service.generate(EMAIL)
        code = notifier.last_code(EMAIL)

        with patch.object(CredentialStore, "mark_otp_used", return_value=False):
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, code)
        assert_code(exc_info, "OTP_NOT_FOUND", 404)

    def test_format_checked_before_lookup(self, otp_service):
        for otp in MALFORMED_CODES:
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, otp)
            assert_code(exc_info, "INVALID_OTP_FORMAT")

    def test_format_error_does_not_consume_attempt(self, db, otp_service):
        otp_service.generate(EMAIL)
        for otp in MALFORMED_CODES:
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, otp)
            assert_code(exc_info, "INVALID_OTP_FORMAT")

        row = db.query(OTPCode).filter(OTPCode.email == EMAIL).one()
        assert row.attempts == 0

    def test_missing_fields(self, otp_service):
        with pytest.raises(AuthError) as exc_info:
            otp_service.verify(EMAIL, None)
        assert_code(exc_info, "MISSING_FIELDS")

    def test_first_code_fails_after_regeneration(self, otp_service, notifier):
        otp_service.generate(EMAIL)
        first = notifier.last_code(EMAIL)
        otp_service.generate(EMAIL)
        second = notifier.last_code(EMAIL)

        if first != second:
            with pytest.raises(AuthError) as exc_info:
                otp_service.verify(EMAIL, first)
            assert exc_info.value.code in ("INVALID_OTP", "OTP_NOT_FOUND")

        assert otp_service.verify(EMAIL, second).token
