"""Translation of raw reply bodies into request outcomes.

All knowledge of the remote service's reply shapes and error texts lives
here; the rest of the engine only sees RequestState and AuthMessage.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from agavelink.core.guides import TaskGuide


class RequestState(StrEnum):
    GOOD = "good"
    FAIL = "fail"
    NO_CONNECT = "no_connect"


class AuthMessage(StrEnum):
    NO_SUCH_CLIENT = "no_such_client"
    BAD_CREDENTIALS = "bad_credentials"
    UNRECOGNIZED = "unrecognized"


_NO_SUCH_CLIENT_TEXTS = frozenset(
    {
        "application not found",
        "no such client",
    }
)
_BAD_CREDENTIALS_TEXTS = frozenset(
    {
        "login failed.please recheck the username and password and try again.",
        "login failed. please recheck the username and password and try again.",
        "invalid credentials",
    }
)


def parse_document(body: bytes) -> dict[str, Any] | None:
    """Decode a JSON object body; None when it is not one."""
    try:
        doc = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return doc if isinstance(doc, dict) else None


def classify_document(guide: TaskGuide, doc: dict[str, Any] | None) -> RequestState:
    """Map a decoded reply to GOOD / FAIL / NO_CONNECT.

    Token endpoints answer with an OAuth document; everything else uses the
    ``{"status": "success" | "error", "message": ..., "result": ...}`` envelope.
    Any shape not recognized is NO_CONNECT.
    """
    if doc is None:
        return RequestState.NO_CONNECT

    if guide.token_format:
        if doc.get("access_token"):
            return RequestState.GOOD
        if "error" in doc:
            return RequestState.FAIL
        return RequestState.NO_CONNECT

    status = doc.get("status")
    if status == "success":
        return RequestState.GOOD
    if status == "error":
        return RequestState.FAIL
    return RequestState.NO_CONNECT


def classify_envelope(guide: TaskGuide, body: bytes) -> tuple[RequestState, dict[str, Any] | None]:
    doc = parse_document(body)
    return classify_document(guide, doc), doc


def classify_auth_message(message: Any) -> AuthMessage:
    """Recognize the server texts the login flow branches on."""
    if not isinstance(message, str):
        return AuthMessage.UNRECOGNIZED
    norm = message.strip().lower()
    if norm in _NO_SUCH_CLIENT_TEXTS:
        return AuthMessage.NO_SUCH_CLIENT
    if norm in _BAD_CREDENTIALS_TEXTS:
        return AuthMessage.BAD_CREDENTIALS
    return AuthMessage.UNRECOGNIZED


def lookup(doc: dict[str, Any] | None, *path: str) -> Any:
    """Walk nested keys, returning None on the first missing step."""
    current: Any = doc
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def lookup_str(doc: dict[str, Any] | None, *path: str) -> str:
    value = lookup(doc, *path)
    return value if isinstance(value, str) else ""
