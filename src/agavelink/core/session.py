"""Authentication session state.

Only the auth state machine writes to an AuthSession. Every terminal
failure, logout or shutdown goes through ``clear()`` so the fields are
never left half reset.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, fields

from agavelink.core.guides import AuthHeaderKind


def basic_header(user: str, secret: str) -> str:
    raw = f"{user}:{secret}".encode("latin-1")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def bearer_header(token: str) -> str:
    return f"Bearer {token}"


@dataclass
class AuthSession:
    username: str = ""
    # Held only while a login flow is running.
    password: str = ""
    client_key: str = ""
    client_secret: str = ""

    password_header: str = ""
    client_header: str = ""

    access_token: str = ""
    refresh_token: str = ""
    token_header: str = ""

    authenticated: bool = False
    auth_in_progress: bool = False

    def clear(self) -> None:
        blank = AuthSession()
        for f in fields(self):
            setattr(self, f.name, getattr(blank, f.name))

    def header_for(self, kind: AuthHeaderKind) -> str | None:
        """Authorization header value for a guide's header kind.

        Returns None when the kind sends no header; an empty string means the
        header is required but the session holds no material for it.
        """
        if kind == AuthHeaderKind.PASSWORD:
            return self.password_header
        if kind == AuthHeaderKind.CLIENT:
            return self.client_header
        if kind == AuthHeaderKind.TOKEN:
            return self.token_header
        return None

    def has_revocable_token(self) -> bool:
        return bool(self.client_header) and bool(self.access_token)
