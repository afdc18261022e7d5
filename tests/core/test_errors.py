"""Tests for opsync.core.errors module."""

import asyncio

import pytest

from opsync.core.errors import (
    KIND_CONFIG,
    ApiError,
    EnhancedError,
    ErrorContext,
    ErrorKind,
    NetworkError,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    ServerError,
    ValidationError,
    classify,
    default_message,
    default_retryable,
    is_retryable,
    log_level_for,
)


class HttpError(Exception):
    """Exception shaped like an HTTP client error."""

    def __init__(self, status_code, message=""):
        super().__init__(message)
        self.status_code = status_code


class Response:
    def __init__(self, status_code):
        self.status_code = status_code


class HostileStr:
    """Value whose inspection raises."""

    def __str__(self):
        raise RuntimeError("no str for you")

    def __repr__(self):
        raise RuntimeError("no repr either")

    @property
    def message(self):
        raise RuntimeError("no message")


class TestErrorKind:
    """Test ErrorKind enum and per-kind defaults."""

    def test_closed_set(self):
        assert len(ErrorKind) == 7
        assert set(KIND_CONFIG) == set(ErrorKind)

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT_ERROR, ErrorKind.SERVER_ERROR, ErrorKind.API_ERROR],
    )
    def test_retryable_kinds(self, kind):
        assert default_retryable(kind) is True

    @pytest.mark.parametrize(
        "kind", [ErrorKind.VALIDATION_ERROR, ErrorKind.NOT_FOUND, ErrorKind.UNKNOWN]
    )
    def test_non_retryable_kinds(self, kind):
        assert default_retryable(kind) is False

    def test_log_levels(self):
        """Log level follows severity of the kind."""
        assert log_level_for(ErrorKind.SERVER_ERROR) == "error"
        assert log_level_for(ErrorKind.NETWORK_ERROR) == "warning"
        assert log_level_for(ErrorKind.VALIDATION_ERROR) == "info"

    def test_every_kind_has_message(self):
        assert all(default_message(kind) for kind in ErrorKind)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_merge_adds_details(self):
        ctx = ErrorContext(domain="team", operation="load_team", details={"a": 1})
        merged = ctx.merge(b=2)
        assert merged.details == {"a": 1, "b": 2}
        assert merged.domain == "team"
        assert ctx.details == {"a": 1}

    def test_to_dict_skips_empty_fields(self):
        data = ErrorContext().to_dict()
        assert "timestamp" in data
        assert "domain" not in data
        assert "details" not in data


class TestEnhancedError:
    """Test the classified error envelope."""

    def test_retryable_defaults_from_kind(self):
        assert EnhancedError(ErrorKind.SERVER_ERROR, "down").retryable is True
        assert EnhancedError(ErrorKind.NOT_FOUND, "gone").retryable is False

    def test_explicit_retryable_wins(self):
        assert EnhancedError(ErrorKind.SERVER_ERROR, "x", retryable=False).retryable is False

    def test_is_exception_with_cause(self):
        original = ConnectionError("reset")
        error = EnhancedError(ErrorKind.NETWORK_ERROR, "reset", original_error=original)
        assert isinstance(error, Exception)
        assert error.__cause__ is original

    def test_to_dict(self):
        error = EnhancedError(
            ErrorKind.API_ERROR,
            "refused",
            context=ErrorContext(domain="goal"),
            original_error={"status": 409},
        )
        data = error.to_dict()
        assert data["code"] == "API_ERROR"
        assert data["retryable"] is True
        assert data["context"]["domain"] == "goal"
        assert "409" in data["original_error"]


class TestOperationErrors:
    """Test raisable operation errors."""

    @pytest.mark.parametrize(
        ("cls", "kind", "retryable"),
        [
            (ValidationError, ErrorKind.VALIDATION_ERROR, False),
            (NotFoundError, ErrorKind.NOT_FOUND, False),
            (ServerError, ErrorKind.SERVER_ERROR, True),
            (NetworkError, ErrorKind.NETWORK_ERROR, True),
            (OperationTimeoutError, ErrorKind.TIMEOUT_ERROR, True),
            (ApiError, ErrorKind.API_ERROR, True),
        ],
    )
    def test_kind_and_retryable(self, cls, kind, retryable):
        error = cls("failed")
        assert error.kind is kind
        assert error.retryable is retryable
        assert isinstance(error, OperationError)

    def test_retryable_override(self):
        assert ServerError("maintenance", retryable=False).retryable is False


class TestClassify:
    """Test classify() resolution order and totality."""

    def test_enhanced_error_passes_through(self):
        error = EnhancedError(ErrorKind.NOT_FOUND, "gone", context=ErrorContext(operation="x"))
        assert classify(error, ErrorContext(operation="y")) is error

    def test_enhanced_error_gets_missing_context(self):
        error = EnhancedError(ErrorKind.NOT_FOUND, "gone")
        classified = classify(error, ErrorContext(domain="team", operation="load_team"))
        assert classified.context.operation == "load_team"
        assert classified.code is ErrorKind.NOT_FOUND

    def test_operation_error(self):
        error = classify(NotFoundError("team 7 not found"))
        assert error.code is ErrorKind.NOT_FOUND
        assert error.message == "team 7 not found"

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (400, ErrorKind.VALIDATION_ERROR),
            (422, ErrorKind.VALIDATION_ERROR),
            (404, ErrorKind.NOT_FOUND),
            (410, ErrorKind.NOT_FOUND),
            (408, ErrorKind.TIMEOUT_ERROR),
            (500, ErrorKind.SERVER_ERROR),
            (503, ErrorKind.SERVER_ERROR),
            (401, ErrorKind.API_ERROR),
            (409, ErrorKind.API_ERROR),
        ],
    )
    def test_status_codes(self, status, kind):
        assert classify(HttpError(status)).code is kind

    def test_status_on_mapping(self):
        assert classify({"statusCode": 503, "message": "down"}).code is ErrorKind.SERVER_ERROR

    def test_status_on_response(self):
        raw = Exception("boom")
        raw.response = Response(404)
        assert classify(raw).code is ErrorKind.NOT_FOUND

    def test_status_beats_exception_type(self):
        """A status code is more specific than a generic exception type."""
        raw = ValueError("bad")
        raw.status_code = 503
        assert classify(raw).code is ErrorKind.SERVER_ERROR

    @pytest.mark.parametrize(
        ("raw", "kind"),
        [
            (TimeoutError(), ErrorKind.TIMEOUT_ERROR),
            (asyncio.TimeoutError(), ErrorKind.TIMEOUT_ERROR),
            (ConnectionResetError("reset"), ErrorKind.NETWORK_ERROR),
            (ValueError("bad id"), ErrorKind.VALIDATION_ERROR),
            (TypeError("bad type"), ErrorKind.VALIDATION_ERROR),
            (KeyError("id"), ErrorKind.NOT_FOUND),
        ],
    )
    def test_exception_types(self, raw, kind):
        assert classify(raw).code is kind

    @pytest.mark.parametrize(
        ("text", "kind"),
        [
            ("Request timed out", ErrorKind.TIMEOUT_ERROR),
            ("Failed to fetch", ErrorKind.NETWORK_ERROR),
            ("team 7 not found", ErrorKind.NOT_FOUND),
            ("Invalid team name", ErrorKind.VALIDATION_ERROR),
            ("Internal Server Error", ErrorKind.SERVER_ERROR),
        ],
    )
    def test_message_shapes(self, text, kind):
        assert classify(text).code is kind
        assert classify(RuntimeError(text)).code is kind

    def test_unknown_is_not_retryable(self):
        error = classify(object())
        assert error.code is ErrorKind.UNKNOWN
        assert error.retryable is False
        assert error.message == default_message(ErrorKind.UNKNOWN)

    def test_hostile_input_is_unknown(self):
        """Values that raise while inspected still classify."""
        raw = HostileStr()
        error = classify(raw)
        assert error.code is ErrorKind.UNKNOWN
        assert error.retryable is False
        assert error.original_error is raw
        assert "unreprable" in error.to_dict()["original_error"]

    def test_original_error_is_kept(self):
        raw = ConnectionError("reset")
        assert classify(raw).original_error is raw

    def test_message_override(self):
        assert classify(ValueError("x"), message="Check the name").message == "Check the name"

    def test_context_is_attached(self):
        ctx = ErrorContext(domain="team", operation="rename_team")
        assert classify("boom", ctx).context is ctx


class TestIsRetryable:
    def test_classified_errors(self):
        assert is_retryable(ConnectionError()) is True
        assert is_retryable(ValueError()) is False
        assert is_retryable(ServerError("x")) is True
