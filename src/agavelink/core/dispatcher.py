"""Request dispatcher: turns a task guide plus parameters into a transport call.

``dispatch`` never blocks. It either refuses (returns None, nothing is sent,
the pending counter is untouched) or schedules the HTTP call on the running
event loop and hands back a TaskReply at once. Completions run on the same
loop, one at a time, which is what keeps the session, the counter and the
working directory free of locking.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

import httpx

from agavelink.core.diagnostics import EVENT_OPERATION_END, EVENT_OPERATION_START, emit_diag
from agavelink.core.envelope import RequestState, classify_envelope, lookup
from agavelink.core.errors import TemplateError
from agavelink.core.events import report_fatal
from agavelink.core.guides import AuthHeaderKind, RequestKind, TaskGuide, TaskGuideRegistry
from agavelink.core.logging import get_logger
from agavelink.core.models import FileMetaData, RemoteJobData
from agavelink.core.pending import PendingCounter
from agavelink.core.replies import ReplyResult, TaskReply, forward_to_parent
from agavelink.core.session import AuthSession

_LOGGER = get_logger(__name__)

COMPONENT = "dispatcher"
REVOKE_TASK_ID = "authRevoke"
UPLOAD_FIELD = "fileToUpload"
DEFAULT_BUFFER_NAME = "JSON"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True)
class TransportOutcome:
    """What came back from one transport call."""

    status_code: int | None = None
    body: bytes = b""
    error: str | None = None
    saved_to: Path | None = None

    @property
    def http_ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


InternalHandler = Callable[[TaskReply, TransportOutcome], RequestState]


@dataclass
class _PreparedCall:
    guide: TaskGuide
    url: str
    headers: dict[str, str]
    content: bytes | None = None
    upload_name: str | None = None
    upload_data: IO[bytes] | bytes | None = None
    download_to: Path | None = None

    def release(self) -> None:
        if self.upload_data is not None and not isinstance(self.upload_data, bytes):
            self.upload_data.close()


def _duration_ms(t0: float, t1: float) -> int:
    ms = int((t1 - t0) * 1000.0)
    return 0 if ms < 0 else ms


def _listing_payload(doc: dict[str, Any] | None) -> list[FileMetaData]:
    items = lookup(doc, "result")
    if not isinstance(items, list):
        return []
    return [FileMetaData.from_agave(item) for item in items if isinstance(item, dict)]


def _job_list_payload(doc: dict[str, Any] | None) -> list[RemoteJobData]:
    items = lookup(doc, "result")
    if not isinstance(items, list):
        return []
    return [RemoteJobData.from_agave(item) for item in items if isinstance(item, dict)]


def _job_payload(doc: dict[str, Any] | None) -> RemoteJobData | None:
    item = lookup(doc, "result")
    return RemoteJobData.from_agave(item) if isinstance(item, dict) else None


_PAYLOAD_PARSERS: dict[str, Callable[[dict[str, Any] | None], Any]] = {
    "dirListing": _listing_payload,
    "getJobList": _job_list_payload,
    "getJobDetails": _job_payload,
    "agaveAppStart": _job_payload,
    "stopJob": _job_payload,
}


def external_payload(guide: TaskGuide, state: RequestState, doc: dict[str, Any] | None) -> Any:
    """Caller-facing payload: parsed objects on success, the server message otherwise."""
    if state != RequestState.GOOD:
        return lookup(doc, "message")
    parser = _PAYLOAD_PARSERS.get(guide.task_id)
    if parser is not None:
        return parser(doc)
    return lookup(doc, "result")


class RequestDispatcher:
    """Builds and issues transport calls under auth and shutdown gating."""

    def __init__(
        self,
        registry: TaskGuideRegistry,
        session: AuthSession,
        counter: PendingCounter,
        client: httpx.AsyncClient,
        tenant_url: str,
    ) -> None:
        self._registry = registry
        self._session = session
        self._counter = counter
        self._client = client
        self._tenant_url = tenant_url.rstrip("/")
        self._internal_handler: InternalHandler | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self.shutting_down = False

    @property
    def registry(self) -> TaskGuideRegistry:
        return self._registry

    def set_internal_handler(self, handler: InternalHandler) -> None:
        """Route completions of internal guides to ``handler``."""
        self._internal_handler = handler

    def dispatch(
        self,
        task_id: str,
        url_params: Sequence[str] = (),
        body_params: Sequence[str] = (),
        *,
        parent: TaskReply | None = None,
        buffer: bytes | None = None,
        file_name: str | None = None,
    ) -> TaskReply | None:
        """Issue one request.

        Args:
            task_id: Guide id
            url_params: Positional values for the guide's URL template
            body_params: Positional values for the body template; for file
                uploads and downloads the single value is the local path
            parent: External reply the result should be forwarded to
            buffer: Bytes to send for buffer uploads
            file_name: Multipart filename for buffer uploads

        Returns:
            The new reply, or None if the request was refused
        """
        if self.shutting_down and task_id != REVOKE_TASK_ID:
            _LOGGER.verbose(f"Rejecting request given during shutdown: {task_id}")
            return None

        guide = self._registry.lookup(task_id)

        if guide.header == AuthHeaderKind.TOKEN and not self._session.authenticated:
            _LOGGER.verbose(f"Rejecting {task_id}: not authenticated")
            return None

        call = self._prepare(guide, url_params, body_params, buffer, file_name)
        if call is None:
            return None

        self._counter.increment()
        reply = TaskReply(guide, parent=parent)
        task = asyncio.get_running_loop().create_task(self._run(reply, call))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        emit_diag(
            EVENT_OPERATION_START,
            component=COMPONENT,
            operation=task_id,
            data={"task_id": task_id, "kind": guide.kind.value, "pending": self._counter.count},
        )
        return reply

    def _prepare(
        self,
        guide: TaskGuide,
        url_params: Sequence[str],
        body_params: Sequence[str],
        buffer: bytes | None,
        file_name: str | None,
    ) -> _PreparedCall | None:
        if guide.kind in (RequestKind.NONE, RequestKind.APP):
            report_fatal("Non-existent request type requested", task_id=guide.task_id)
            return None

        url = self._tenant_url + guide.build_url(url_params)

        headers: dict[str, str] = {}
        auth = self._session.header_for(guide.header)
        if auth is not None:
            if auth == "":
                report_fatal("Authorization header required but has no data in it", task_id=guide.task_id)
                return None
            headers["Authorization"] = auth

        call = _PreparedCall(guide=guide, url=url, headers=headers)
        kind = guide.kind

        if kind in (RequestKind.POST, RequestKind.PUT):
            call.content = guide.build_body(body_params).encode("utf-8")
            if kind == RequestKind.POST:
                headers["Content-Type"] = FORM_CONTENT_TYPE
        elif kind == RequestKind.UPLOAD:
            local = self._single_path(guide, body_params)
            try:
                call.upload_data = open(local, "rb")  # noqa: SIM115
            except OSError as e:
                _LOGGER.warning(f"Cannot open {local} for upload: {e}")
                return None
            call.upload_name = local.name
        elif kind == RequestKind.DOWNLOAD:
            local = self._single_path(guide, body_params)
            if local.exists():
                _LOGGER.warning(f"Refusing to overwrite existing file: {local}")
                return None
            call.download_to = local
        elif kind == RequestKind.BUFFER_UPLOAD:
            call.upload_data = buffer if buffer is not None else b""
            call.upload_name = file_name or DEFAULT_BUFFER_NAME

        return call

    @staticmethod
    def _single_path(guide: TaskGuide, body_params: Sequence[str]) -> Path:
        if len(body_params) != 1:
            raise TemplateError(f"'{guide.task_id}' expects exactly one local path, got {len(body_params)}")
        return Path(body_params[0])

    async def _run(self, reply: TaskReply, call: _PreparedCall) -> None:
        t0 = time.monotonic()
        outcome = TransportOutcome()
        try:
            try:
                outcome = await self._perform(call)
            finally:
                call.release()

            if reply.guide.internal:
                if self._internal_handler is None:
                    report_fatal("Internal task completed with no handler", task_id=reply.task_id)
                    forward_to_parent(reply, RequestState.NO_CONNECT)
                    reply.resolve(RequestState.NO_CONNECT)
                else:
                    reply.resolve(self._internal_handler(reply, outcome))
            else:
                self._complete_external(reply, outcome)
        except Exception as e:
            report_fatal(f"Request handling failed: {type(e).__name__}: {e}", task_id=reply.task_id)
            forward_to_parent(reply, RequestState.NO_CONNECT)
            reply.resolve(RequestState.NO_CONNECT)
        finally:
            self._counter.decrement()

        result: ReplyResult | None = reply.result() if reply.done() else None
        emit_diag(
            EVENT_OPERATION_END,
            component=COMPONENT,
            operation=reply.task_id,
            data={
                "task_id": reply.task_id,
                "status_code": outcome.status_code,
                "state": result.state.value if result else None,
                "duration_ms": _duration_ms(t0, time.monotonic()),
                "pending": self._counter.count,
            },
        )

    async def _perform(self, call: _PreparedCall) -> TransportOutcome:
        kind = call.guide.kind
        _LOGGER.verbose(f"{kind.value.upper()} {call.url}")
        try:
            if call.download_to is not None:
                return await self._download(call, call.download_to)

            if kind in (RequestKind.GET, RequestKind.BUFFER_DOWNLOAD):
                resp = await self._client.get(call.url, headers=call.headers)
            elif kind == RequestKind.DELETE:
                resp = await self._client.delete(call.url, headers=call.headers)
            elif kind == RequestKind.PUT:
                resp = await self._client.put(call.url, headers=call.headers, content=call.content)
            elif kind == RequestKind.POST:
                resp = await self._client.post(call.url, headers=call.headers, content=call.content)
            else:
                files = {UPLOAD_FIELD: (call.upload_name, call.upload_data, "application/octet-stream")}
                resp = await self._client.post(call.url, headers=call.headers, files=files)
        except (httpx.HTTPError, OSError) as e:
            _LOGGER.warning(f"{call.guide.task_id} transport failure: {type(e).__name__}: {e}")
            return TransportOutcome(error=f"{type(e).__name__}: {e}")

        return TransportOutcome(status_code=resp.status_code, body=resp.content)

    async def _download(self, call: _PreparedCall, dest: Path) -> TransportOutcome:
        async with self._client.stream("GET", call.url, headers=call.headers) as resp:
            if not 200 <= resp.status_code < 300:
                body = await resp.aread()
                return TransportOutcome(status_code=resp.status_code, body=body)
            # Raises FileExistsError (a transport failure) if the file appeared since dispatch.
            fh = open(dest, "xb")  # noqa: SIM115
            try:
                with fh:
                    async for chunk in resp.aiter_bytes():
                        fh.write(chunk)
            except BaseException:
                # Only a partial file created by this call is removed.
                with contextlib.suppress(OSError):
                    dest.unlink()
                raise
        return TransportOutcome(status_code=resp.status_code, saved_to=dest)

    def _complete_external(self, reply: TaskReply, outcome: TransportOutcome) -> None:
        guide = reply.guide
        if outcome.error is not None:
            reply.resolve(RequestState.NO_CONNECT, outcome.error)
            return

        if guide.kind == RequestKind.DOWNLOAD and outcome.saved_to is not None:
            reply.resolve(RequestState.GOOD, str(outcome.saved_to))
            return
        if guide.kind == RequestKind.BUFFER_DOWNLOAD and outcome.http_ok:
            reply.resolve(RequestState.GOOD, outcome.body)
            return

        state, doc = classify_envelope(guide, outcome.body)
        _LOGGER.verbose(f"{guide.task_id} -> {state.value} (HTTP {outcome.status_code})")
        reply.resolve(state, external_payload(guide, state, doc))

    async def drain(self) -> None:
        """Wait until every scheduled transport task has finished."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
