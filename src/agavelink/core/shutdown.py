"""Shutdown: revoke credentials, refuse new work, wait for the drain."""

from __future__ import annotations

from agavelink.core.auth import AuthStateMachine
from agavelink.core.dispatcher import RequestDispatcher
from agavelink.core.envelope import RequestState
from agavelink.core.logging import get_logger
from agavelink.core.pending import PendingCounter
from agavelink.core.replies import TaskReply

_LOGGER = get_logger(__name__)


class ShutdownCoordinator:
    def __init__(self, dispatcher: RequestDispatcher, auth: AuthStateMachine, counter: PendingCounter) -> None:
        self._dispatcher = dispatcher
        self._auth = auth
        self._counter = counter
        self._wait_reply: TaskReply | None = None

    @property
    def in_progress(self) -> bool:
        return self._wait_reply is not None

    def close_session(self) -> TaskReply:
        """Enter shutdown mode.

        Every request except the token revocation is refused from here on. A
        login still running is ended with NO_CONNECT by its next step, and a
        token it obtained meanwhile is revoked rather than kept.
        The returned ``waitAll`` reply resolves GOOD once no request is in
        flight any more (the revocation included). Calling again returns the
        same reply.
        """
        if self._wait_reply is not None:
            return self._wait_reply

        wait = TaskReply(self._dispatcher.registry.lookup("waitAll"))
        self._wait_reply = wait
        self._dispatcher.shutting_down = True

        if self._auth.revoke() is not None:
            _LOGGER.verbose("Closing all connections sequence begins")
        elif self._auth.session.auth_in_progress:
            # The login chain clears the session at its next completion.
            _LOGGER.verbose("Login in progress: abandoned at its next step")
        else:
            _LOGGER.verbose("Not logged in: quick shutdown")
            self._auth.clear_session()

        if self._counter.count == 0:
            wait.resolve(RequestState.GOOD)
        else:
            self._counter.call_on_next_drain(lambda: wait.resolve(RequestState.GOOD))
        return wait
