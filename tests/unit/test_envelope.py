"""Tests for reply classification."""

import pytest

from agavelink.core.envelope import (
    AuthMessage,
    RequestState,
    classify_auth_message,
    classify_envelope,
    lookup,
    lookup_str,
    parse_document,
)
from agavelink.core.guides import RequestKind, TaskGuide

PLAIN = TaskGuide("plain", RequestKind.GET, "/x")
TOKEN = TaskGuide("tok", RequestKind.POST, "/token", token_format=True)


class TestStatusEnvelope:
    def test_success(self):
        state, doc = classify_envelope(PLAIN, b'{"status": "success", "result": [1]}')
        assert state == RequestState.GOOD
        assert doc == {"status": "success", "result": [1]}

    def test_error(self):
        state, doc = classify_envelope(PLAIN, b'{"status": "error", "message": "nope"}')
        assert state == RequestState.FAIL
        assert lookup(doc, "message") == "nope"

    @pytest.mark.parametrize("body", [b"", b"<html>bad gateway</html>", b"[1, 2]", b'{"status": "odd"}', b"\xff\xfe"])
    def test_unrecognized_shapes_are_no_connect(self, body):
        state, _doc = classify_envelope(PLAIN, body)
        assert state == RequestState.NO_CONNECT


class TestTokenDocument:
    def test_access_token_is_good(self):
        state, _doc = classify_envelope(TOKEN, b'{"access_token": "a", "refresh_token": "r"}')
        assert state == RequestState.GOOD

    def test_oauth_error_is_fail(self):
        state, _doc = classify_envelope(TOKEN, b'{"error": "invalid_grant"}')
        assert state == RequestState.FAIL

    def test_status_envelope_is_not_a_token(self):
        state, _doc = classify_envelope(TOKEN, b'{"status": "success"}')
        assert state == RequestState.NO_CONNECT


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Application not found", AuthMessage.NO_SUCH_CLIENT),
        ("  application NOT found ", AuthMessage.NO_SUCH_CLIENT),
        ("Login failed.Please recheck the username and password and try again.", AuthMessage.BAD_CREDENTIALS),
        ("Invalid Credentials", AuthMessage.BAD_CREDENTIALS),
        ("Service unavailable", AuthMessage.UNRECOGNIZED),
        (None, AuthMessage.UNRECOGNIZED),
        (42, AuthMessage.UNRECOGNIZED),
    ],
)
def test_auth_messages(message, expected):
    assert classify_auth_message(message) == expected


def test_lookup_helpers():
    doc = {"result": {"consumerKey": "ck", "n": 3}}
    assert lookup(doc, "result", "consumerKey") == "ck"
    assert lookup(doc, "result", "missing", "deeper") is None
    assert lookup(None, "result") is None
    assert lookup_str(doc, "result", "n") == ""
    assert parse_document(b'"just a string"') is None
