"""Unit tests for error normalisation and MIME resolution."""
import pytest

from asset_sink.errors import (
    BackendProtocolError,
    InvalidArgumentError,
    NotFoundError,
    ServiceUnavailableError,
    wrap_error,
)
from asset_sink.mime import content_type_for, is_textual, resolve_content_type


def test_sink_errors_pass_through():
    err = NotFoundError("a.json")
    assert wrap_error(err) is err


def test_exceptions_are_wrapped_and_chained():
    cause = ConnectionResetError("socket closed")
    wrapped = wrap_error(cause)
    assert isinstance(wrapped, BackendProtocolError)
    assert wrapped.message == "socket closed"
    assert wrapped.__cause__ is cause


def test_plain_data_errors_are_normalised():
    wrapped = wrap_error({"message": "quota exceeded", "errors": [{"reason": "rateLimit"}]})
    assert wrapped.message == "quota exceeded"
    assert wrapped.data == [{"reason": "rateLimit"}]

    single = wrap_error({"error": "bad gateway", "data": "upstream"})
    assert single.message == "bad gateway"
    assert single.data == ["upstream"]


def test_strings_and_none_are_normalised():
    assert wrap_error("boom").message == "boom"
    assert isinstance(wrap_error(None), BackendProtocolError)


def test_service_unavailable_carries_key_and_attempts():
    cause = BackendProtocolError("timeout")
    err = ServiceUnavailableError("a.json", 3, cause)
    assert err.key == "a.json"
    assert err.attempts == 3
    assert err.data == [cause]
    assert "after 3 attempts" in str(err)


def test_invalid_argument_is_a_value_error():
    assert issubclass(InvalidArgumentError, ValueError)


@pytest.mark.parametrize(
    "token, expected",
    [
        ("json", "application/json"),
        (".css", "text/css"),
        ("JS", "application/javascript"),
        ("png", "image/png"),
    ],
)
def test_resolve_content_type(token, expected):
    assert resolve_content_type(token) == expected


def test_unknown_types_do_not_resolve():
    assert resolve_content_type("fake") is None
    assert resolve_content_type("") is None
    with pytest.raises(InvalidArgumentError):
        content_type_for("fake")


@pytest.mark.parametrize(
    "content_type, expected",
    [
        ("text/css", True),
        ("text/plain; charset=utf-8", True),
        ("application/json", True),
        ("application/ld+json", True),
        ("image/svg+xml", True),
        ("image/png", False),
        ("application/octet-stream", False),
        (None, False),
    ],
)
def test_is_textual(content_type, expected):
    assert is_textual(content_type) is expected
