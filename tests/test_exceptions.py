"""
Tests for exception classes.

Covers every exception type, its typed attributes and its HTTP mapping.
"""

from uuid import uuid4

import pytest

from tarot_api.exceptions import (
    AccountNotFoundError,
    ConflictError,
    ForbiddenError,
    QuotaExceededError,
    TarotError,
    UnauthorizedError,
    UpstreamError,
    UpstreamNotConfiguredError,
    UpstreamTimeoutError,
    ValidationError,
)


class TestTarotError:
    """Tests for base TarotError."""

    def test_tarot_error_is_exception(self):
        """TarotError is a subclass of Exception."""
        assert issubclass(TarotError, Exception)

    def test_tarot_error_can_be_raised(self):
        """TarotError can be raised and caught."""
        with pytest.raises(TarotError):
            raise TarotError("test error")

    def test_message_attribute(self):
        exc = TarotError("boom")
        assert exc.message == "boom"
        assert str(exc) == "boom"

    def test_defaults_to_internal_error(self):
        assert TarotError.status_code == 500
        assert TarotError.error_code == "internal_error"


class TestValidationError:
    """Tests for ValidationError."""

    def test_field_attribute(self):
        exc = ValidationError("amount must be a non-zero number", field="amount")
        assert exc.field == "amount"
        assert "non-zero" in str(exc)

    def test_field_optional(self):
        assert ValidationError("bad").field is None

    def test_http_mapping(self):
        assert ValidationError.status_code == 400
        assert ValidationError.error_code == "validation_error"


class TestAccountNotFoundError:
    """Tests for AccountNotFoundError."""

    def test_key_attribute(self):
        account_id = uuid4()
        exc = AccountNotFoundError(account_id)
        assert exc.key == account_id
        assert str(account_id) in str(exc)

    def test_accepts_string_key(self):
        exc = AccountNotFoundError("+84901234567")
        assert "+84901234567" in str(exc)

    def test_http_mapping(self):
        assert AccountNotFoundError.status_code == 404
        assert AccountNotFoundError.error_code == "not_found"


class TestConflictError:
    """Tests for ConflictError."""

    def test_attributes(self):
        exc = ConflictError("username", "alice")
        assert exc.field == "username"
        assert exc.value == "alice"
        assert "username already exists: alice" in str(exc)

    def test_http_mapping(self):
        assert ConflictError.status_code == 400


class TestQuotaExceededError:
    """Tests for QuotaExceededError."""

    def test_attributes(self):
        exc = QuotaExceededError(limit=50, used=50)
        assert exc.limit == 50
        assert exc.used == 50

    def test_message_format(self):
        exc = QuotaExceededError(limit=10, used=12)
        assert "10" in str(exc)
        assert "12" in str(exc)

    def test_http_mapping(self):
        assert QuotaExceededError.status_code == 429
        assert QuotaExceededError.error_code == "quota_exceeded"


class TestAuthErrors:
    """Tests for UnauthorizedError and ForbiddenError."""

    def test_unauthorized_mapping(self):
        assert UnauthorizedError("Missing token").status_code == 401
        assert UnauthorizedError.error_code == "unauthorized"

    def test_forbidden_mapping(self):
        assert ForbiddenError("Account has expired").status_code == 403
        assert ForbiddenError.error_code == "forbidden"


class TestUpstreamErrors:
    """Tests for the upstream error family."""

    def test_upstream_error_mapping(self):
        assert UpstreamError.status_code == 500
        assert UpstreamError.error_code == "upstream_error"

    def test_timeout_is_upstream_error(self):
        exc = UpstreamTimeoutError(timeout_seconds=60.0)
        assert isinstance(exc, UpstreamError)
        assert exc.timeout_seconds == 60.0
        assert exc.status_code == 500
        assert exc.error_code == "upstream_timeout"
        assert "60.0" in str(exc)

    def test_not_configured_is_service_unavailable(self):
        exc = UpstreamNotConfiguredError()
        assert isinstance(exc, UpstreamError)
        assert exc.status_code == 503
        assert exc.error_code == "upstream_not_configured"

    @pytest.mark.parametrize(
        "exc",
        [
            ValidationError("x"),
            UnauthorizedError("x"),
            ForbiddenError("x"),
            AccountNotFoundError("x"),
            ConflictError("username", "x"),
            QuotaExceededError(1, 1),
            UpstreamError("x"),
        ],
    )
    def test_all_are_tarot_errors(self, exc):
        assert isinstance(exc, TarotError)
