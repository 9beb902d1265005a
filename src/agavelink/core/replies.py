"""Task replies: caller-visible handles for in-flight and completed requests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any

from agavelink.core.envelope import RequestState
from agavelink.core.guides import TaskGuide
from agavelink.core.logging import get_logger

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ReplyResult:
    state: RequestState
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.state == RequestState.GOOD


class TaskReply:
    """Handle for one request.

    The reply resolves exactly once with a ReplyResult. ``await reply``
    suspends until then. ``parent`` links an internal sub-request to the
    external reply it works for; it is only used to forward the final
    result and does not keep the parent alive or counted.

    Callers may attach parameters (a multimap of name -> values) to keep
    call context next to the result.
    """

    def __init__(self, guide: TaskGuide, parent: TaskReply | None = None) -> None:
        self.guide = guide
        self.parent = parent
        self.params: dict[str, list[str]] = {}
        self._future: asyncio.Future[ReplyResult] = asyncio.get_running_loop().create_future()

    def __repr__(self) -> str:
        state = self._future.result().state.value if self.done() else "pending"
        return f"<TaskReply {self.guide.task_id} {state}>"

    @property
    def task_id(self) -> str:
        return self.guide.task_id

    def add_param(self, name: str, value: str) -> None:
        self.params.setdefault(name, []).append(value)

    def add_params(self, values: dict[str, list[str]]) -> None:
        for name, vals in values.items():
            for v in vals:
                self.add_param(name, v)

    def get_param(self, name: str, default: str = "") -> str:
        vals = self.params.get(name)
        return vals[0] if vals else default

    def get_params(self, name: str) -> list[str]:
        return list(self.params.get(name, []))

    def resolve(self, state: RequestState, payload: Any = None) -> bool:
        """Deliver the terminal result. Later calls are ignored.

        Returns:
            True if this call delivered the result
        """
        if self._future.done():
            _LOGGER.debug(f"reply {self.task_id} already resolved; dropping {state.value}")
            return False
        self._future.set_result(ReplyResult(state=state, payload=payload))
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> ReplyResult:
        """Terminal result; raises asyncio.InvalidStateError while pending."""
        return self._future.result()

    def add_done_callback(self, callback: Callable[[TaskReply], None]) -> None:
        self._future.add_done_callback(lambda _f: callback(self))

    async def wait(self) -> ReplyResult:
        return await asyncio.shield(self._future)

    def __await__(self) -> Generator[Any, None, ReplyResult]:
        return self.wait().__await__()


def forward_to_parent(reply: TaskReply, state: RequestState, payload: Any = None) -> None:
    """Resolve the reply's parent, if it has one."""
    if reply.parent is None:
        return
    reply.parent.resolve(state, payload)
