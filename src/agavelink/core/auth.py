"""Multi-step login protocol.

Login is one external reply (``fullAuth``) backed by a chain of internal
requests, each one issued from the completion of the previous:

    authStep1  GET    /clients/v2/<client>   is there a client registration?
    authStep1a DELETE /clients/v2/<client>   drop the stale registration
    authStep2  POST   /clients/v2/           register a fresh client
    authStep3  POST   /token                 password grant -> bearer token

A "no such client" answer to step 1 skips step 1a. The internal replies are
never handed to the caller; only the final state reaches the ``fullAuth``
reply, through the parent link.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from agavelink.core.dispatcher import RequestDispatcher, TransportOutcome
from agavelink.core.envelope import (
    AuthMessage,
    RequestState,
    classify_auth_message,
    classify_envelope,
    lookup,
    lookup_str,
)
from agavelink.core.events import EVENT_AUTH_STATE_CHANGED, get_event_bus, report_fatal
from agavelink.core.logging import get_logger
from agavelink.core.replies import TaskReply, forward_to_parent
from agavelink.core.session import AuthSession, basic_header, bearer_header

_LOGGER = get_logger(__name__)

Transition = Callable[[TaskReply, RequestState, dict[str, Any] | None], None]


class AuthStateMachine:
    """Drives login, token refresh and revocation against one AuthSession."""

    def __init__(self, dispatcher: RequestDispatcher, session: AuthSession) -> None:
        self._dispatcher = dispatcher
        self._session = session
        self._transitions: dict[str, Transition] = {
            "authStep1": self._on_check_client,
            "authStep1a": self._on_remove_client,
            "authStep2": self._on_register_client,
            "authStep3": self._on_password_grant,
            "authRefresh": self._on_refresh,
            "authRevoke": self._on_revoke,
        }
        dispatcher.set_internal_handler(self.handle_internal)

    @property
    def session(self) -> AuthSession:
        return self._session

    def perform_auth(self, username: str, password: str) -> TaskReply | None:
        """Start the login flow.

        Returns:
            The ``fullAuth`` reply, or None if a login is running, the
            session is already authenticated, or the first step was refused
        """
        if self._session.auth_in_progress or self._session.authenticated:
            return None

        self._session.username = username
        self._session.password = password
        self._session.password_header = basic_header(username, password)

        parent = TaskReply(self._dispatcher.registry.lookup("fullAuth"))
        if self._dispatcher.dispatch("authStep1", parent=parent) is None:
            self._session.clear()
            return None

        self._session.auth_in_progress = True
        parent.add_param("uname", username)
        _LOGGER.info(f"login started for {username}")
        return parent

    def refresh_auth(self) -> TaskReply | None:
        """Exchange the refresh token for a new token pair."""
        if not self._session.authenticated or not self._session.refresh_token:
            return None

        parent = TaskReply(self._dispatcher.registry.lookup("refreshAuth"))
        step = self._dispatcher.dispatch("authRefresh", body_params=(self._session.refresh_token,), parent=parent)
        if step is None:
            return None
        return parent

    def revoke(self) -> TaskReply | None:
        """Revoke the access token; the session is cleared when it completes."""
        if not self._session.has_revocable_token():
            return None
        return self._dispatcher.dispatch("authRevoke", body_params=(self._session.access_token,))

    def clear_session(self) -> None:
        was_authenticated = self._session.authenticated
        self._session.clear()
        if was_authenticated:
            get_event_bus().publish(EVENT_AUTH_STATE_CHANGED, {"authenticated": False})

    def handle_internal(self, reply: TaskReply, outcome: TransportOutcome) -> RequestState:
        """Completion entry point for every internal guide."""
        transition = self._transitions.get(reply.task_id)
        if transition is None:
            report_fatal("Non-existent internal request requested", task_id=reply.task_id)
            forward_to_parent(reply, RequestState.NO_CONNECT)
            return RequestState.NO_CONNECT

        if outcome.error is not None:
            state, doc = RequestState.NO_CONNECT, None
        else:
            state, doc = classify_envelope(reply.guide, outcome.body)

        _LOGGER.verbose(f"{reply.task_id} -> {state.value}")
        transition(reply, state, doc)
        return state

    def _terminate(self, reply: TaskReply, state: RequestState) -> None:
        self.clear_session()
        forward_to_parent(reply, state)

    def _advance(self, reply: TaskReply, task_id: str, body_params: tuple[str, ...] = ()) -> None:
        if self._dispatcher.dispatch(task_id, body_params=body_params, parent=reply.parent) is None:
            self._terminate(reply, RequestState.NO_CONNECT)

    def _on_check_client(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        if state == RequestState.GOOD:
            self._advance(reply, "authStep1a")
            return

        message = classify_auth_message(lookup(doc, "message"))
        if message == AuthMessage.NO_SUCH_CLIENT:
            self._advance(reply, "authStep2")
        elif message == AuthMessage.BAD_CREDENTIALS:
            self._terminate(reply, RequestState.FAIL)
        else:
            self._terminate(reply, RequestState.NO_CONNECT)

    def _on_remove_client(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        if state == RequestState.GOOD:
            self._advance(reply, "authStep2")
        else:
            self._terminate(reply, state)

    def _on_register_client(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        if state != RequestState.GOOD:
            self._terminate(reply, state)
            return

        key = lookup_str(doc, "result", "consumerKey")
        secret = lookup_str(doc, "result", "consumerSecret")
        if not key or not secret:
            report_fatal("Client success does not yield client auth data.")
            self._terminate(reply, RequestState.NO_CONNECT)
            return

        session = self._session
        session.client_key = key
        session.client_secret = secret
        session.client_header = basic_header(key, secret)
        self._advance(reply, "authStep3", (session.username, session.password))

    def _on_password_grant(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        if state != RequestState.GOOD:
            self._terminate(reply, state)
            return
        if self._dispatcher.shutting_down:
            self._abandon_for_shutdown(reply, doc)
            return

        if not self._store_tokens(doc):
            self._terminate(reply, RequestState.FAIL)
            return

        session = self._session
        session.authenticated = True
        session.auth_in_progress = False
        session.password = ""
        session.password_header = ""
        get_event_bus().publish(EVENT_AUTH_STATE_CHANGED, {"authenticated": True})
        _LOGGER.info("Login success.")
        forward_to_parent(reply, RequestState.GOOD, session.username)

    def _on_refresh(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        # TODO: decide when refreshes are triggered (expiry timer or 401 replay); only explicit calls for now.
        if state != RequestState.GOOD:
            self._terminate(reply, state)
            return
        if self._dispatcher.shutting_down:
            self._abandon_for_shutdown(reply, doc)
            return
        if not self._store_tokens(doc):
            self._terminate(reply, RequestState.FAIL)
            return
        _LOGGER.verbose("access token refreshed")
        forward_to_parent(reply, RequestState.GOOD)

    def _on_revoke(self, reply: TaskReply, state: RequestState, doc: dict[str, Any] | None) -> None:
        _LOGGER.verbose("Auth revoke procedure complete")
        self.clear_session()

    def _store_tokens(self, doc: dict[str, Any] | None) -> bool:
        access = lookup_str(doc, "access_token")
        refresh = lookup_str(doc, "refresh_token")
        if not access or not refresh:
            return False
        self._session.access_token = access
        self._session.refresh_token = refresh
        self._session.token_header = bearer_header(access)
        return True

    def _abandon_for_shutdown(self, reply: TaskReply, doc: dict[str, Any] | None) -> None:
        """Drop tokens issued after shutdown began, revoking them while a client header exists."""
        access = lookup_str(doc, "access_token")
        if access and self._session.client_header:
            self._dispatcher.dispatch("authRevoke", body_params=(access,))
        _LOGGER.verbose(f"{reply.task_id} completed during shutdown; token discarded")
        self._terminate(reply, RequestState.NO_CONNECT)
