"""AgaveHandler: the caller-facing remote data interface.

All methods must be called from the event loop that owns the handler. Every
request method returns immediately with a TaskReply (await it for the
ReplyResult) or None when the request was refused.

Example:
    async with AgaveHandler(AgaveSettings.from_resolver(ConfigResolver())) as agave:
        login = agave.perform_auth("alice", "secret")
        if login is None or not (await login).ok:
            return
        listing = await agave.remote_ls("/alice")
        await agave.close_session()
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from types import TracebackType

import httpx

from agavelink.core.auth import AuthStateMachine
from agavelink.core.config import AgaveSettings, ConfigResolver
from agavelink.core.diagnostics import install_jsonl_sink
from agavelink.core.dispatcher import RequestDispatcher
from agavelink.core.envelope import RequestState
from agavelink.core.events import report_fatal
from agavelink.core.guides import RequestKind, TaskGuideRegistry, app_guide
from agavelink.core.logging import apply_logging_level, get_logger, set_colors
from agavelink.core.paths import resolve_remote_path
from agavelink.core.pending import PendingCounter
from agavelink.core.replies import TaskReply
from agavelink.core.session import AuthSession
from agavelink.core.shutdown import ShutdownCoordinator

_LOGGER = get_logger(__name__)


def _apply_runtime_config(resolver: ConfigResolver) -> None:
    """Apply logging.* and diagnostics.* from config to the process-wide logger and bus."""
    apply_logging_level(resolver.resolve_logging_level())
    set_colors(resolver.resolve_bool("logging.color", default=True))
    install_jsonl_sink(resolver=resolver)


class AgaveHandler:
    """Authentication, remote file operations and job submission."""

    def __init__(
        self,
        settings: AgaveSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        resolver: ConfigResolver | None = None,
    ) -> None:
        """Initialize handler.

        Args:
            settings: Deployment constants; resolved from config when omitted
            client: Transport to use; an owned client is created when omitted
            resolver: Config source for settings, logging and diagnostics;
                the default resolver is used when ``settings`` is omitted
        """
        if settings is None or resolver is not None:
            resolver = resolver or ConfigResolver()
            _apply_runtime_config(resolver)
            if settings is None:
                settings = AgaveSettings.from_resolver(resolver)
        self._settings = settings

        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=settings.timeout, verify=settings.verify_tls)
        self._client = client

        self._registry = TaskGuideRegistry.with_defaults(settings)
        self._session = AuthSession()
        self._counter = PendingCounter()
        self._dispatcher = RequestDispatcher(
            self._registry, self._session, self._counter, client, settings.tenant_url
        )
        self._auth = AuthStateMachine(self._dispatcher, self._session)
        self._shutdown = ShutdownCoordinator(self._dispatcher, self._auth, self._counter)
        self._cwd = ""

    async def __aenter__(self) -> AgaveHandler:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for scheduled transport tasks and close an owned client."""
        await self._dispatcher.drain()
        if self._owns_client:
            await self._client.aclose()

    # --- state -----------------------------------------------------------

    @property
    def settings(self) -> AgaveSettings:
        return self._settings

    @property
    def registry(self) -> TaskGuideRegistry:
        return self._registry

    @property
    def session(self) -> AuthSession:
        return self._session

    @property
    def pending_count(self) -> int:
        return self._counter.count

    @property
    def pending(self) -> PendingCounter:
        return self._counter

    @property
    def tenant_url(self) -> str:
        return self._settings.tenant_url

    @property
    def username(self) -> str:
        """Logged in user, empty unless authenticated."""
        return self._session.username if self._session.authenticated else ""

    @property
    def working_directory(self) -> str:
        return self._cwd

    def in_shutdown_mode(self) -> bool:
        return self._shutdown.in_progress

    def resolve_path(self, path: str) -> str:
        return resolve_remote_path(path, self._cwd)

    # --- auth / lifecycle ------------------------------------------------

    def perform_auth(self, username: str, password: str) -> TaskReply | None:
        return self._auth.perform_auth(username, password)

    def refresh_auth(self) -> TaskReply | None:
        return self._auth.refresh_auth()

    def close_session(self) -> TaskReply:
        """Revoke credentials and wait for outstanding requests.

        Logging in again afterwards is not supported.
        """
        return self._shutdown.close_session()

    # --- working directory -------------------------------------------------

    def set_working_directory(self, cd: str) -> TaskReply:
        """Change the remote working directory (no remote call).

        The reply is FAIL, with the cwd unchanged, when ``cd`` resolves to
        the root.
        """
        resolved = self.resolve_path(cd)
        reply = TaskReply(self._registry.lookup("changeDir"))
        reply.add_param("cd", cd)

        if not resolved:
            reply.resolve(RequestState.FAIL, self._cwd)
        else:
            self._cwd = resolved
            reply.resolve(RequestState.GOOD, self._cwd)
        return reply

    # --- files ---------------------------------------------------------------

    def remote_ls(self, dir_path: str) -> TaskReply | None:
        target = self.resolve_path(dir_path)
        if target in ("", "/"):
            target = "/" + self._session.username

        reply = self._dispatcher.dispatch("dirListing", (target,))
        if reply is not None:
            reply.add_param("dirPath", target)
        return reply

    def delete_file(self, to_delete: str) -> TaskReply | None:
        target = self.resolve_path(to_delete)
        reply = self._dispatcher.dispatch("fileDelete", (target,))
        if reply is not None:
            reply.add_param("toDelete", target)
        return reply

    def move_file(self, source: str, dest: str) -> TaskReply | None:
        return self._transfer("fileMove", source, dest)

    def copy_file(self, source: str, dest: str) -> TaskReply | None:
        return self._transfer("fileCopy", source, dest)

    def _transfer(self, task_id: str, source: str, dest: str) -> TaskReply | None:
        src = self.resolve_path(source)
        dst = self.resolve_path(dest)
        reply = self._dispatcher.dispatch(task_id, (src,), (dst,))
        if reply is not None:
            reply.add_param("from", src)
            reply.add_param("to", dst)
        return reply

    def rename_file(self, full_name: str, new_name: str) -> TaskReply | None:
        target = self.resolve_path(full_name)
        reply = self._dispatcher.dispatch("renameFile", (target,), (new_name,))
        if reply is not None:
            reply.add_param("fullName", target)
            reply.add_param("newName", new_name)
        return reply

    def make_dir(self, location: str, new_name: str) -> TaskReply | None:
        target = self.resolve_path(location)
        reply = self._dispatcher.dispatch("newFolder", (target,), (new_name,))
        if reply is not None:
            reply.add_param("location", target)
            reply.add_param("newName", new_name)
        return reply

    def upload_file(self, location: str, local_file_name: str) -> TaskReply | None:
        target = self.resolve_path(location)
        reply = self._dispatcher.dispatch("fileUpload", (target,), (local_file_name,))
        if reply is not None:
            reply.add_param("location", target)
            reply.add_param("localFileName", local_file_name)
        return reply

    def upload_buffer(self, location: str, data: bytes, file_name: str) -> TaskReply | None:
        target = self.resolve_path(location)
        reply = self._dispatcher.dispatch("filePipeUpload", (target,), buffer=data, file_name=file_name)
        if reply is not None:
            reply.add_param("location", target)
            reply.add_param("fileName", file_name)
        return reply

    def download_file(self, local_dest: str, remote_name: str) -> TaskReply | None:
        target = self.resolve_path(remote_name)
        reply = self._dispatcher.dispatch("fileDownload", (target,), (local_dest,))
        if reply is not None:
            reply.add_param("remoteName", target)
            reply.add_param("localDest", local_dest)
        return reply

    def download_buffer(self, remote_name: str) -> TaskReply | None:
        target = self.resolve_path(remote_name)
        reply = self._dispatcher.dispatch("filePipeDownload", (target,))
        if reply is not None:
            reply.add_param("remoteName", target)
        return reply

    # --- apps and jobs -----------------------------------------------------

    def list_apps(self) -> TaskReply | None:
        return self._dispatcher.dispatch("getAgaveList")

    def list_jobs(self) -> TaskReply | None:
        return self._dispatcher.dispatch("getJobList")

    def job_details(self, job_id: str) -> TaskReply | None:
        reply = self._dispatcher.dispatch("getJobDetails", (job_id,))
        if reply is not None:
            reply.add_param("IDstr", job_id)
        return reply

    def stop_job(self, job_id: str) -> TaskReply | None:
        reply = self._dispatcher.dispatch("stopJob", (job_id,))
        if reply is not None:
            reply.add_param("IDstr", job_id)
        return reply

    def register_app(
        self,
        app_name: str,
        app_id: str,
        parameter_names: Iterable[str],
        input_names: Iterable[str],
        working_dir_parameter: str = "",
    ) -> None:
        """Make a remote app available to run_remote_job under ``app_name``."""
        self._registry.register(
            app_guide(app_name, app_id, parameter_names, input_names, working_dir_parameter)
        )

    def run_remote_job(
        self,
        app_name: str,
        job_parameters: Mapping[str, str | Sequence[str]],
        remote_working_dir: str = "",
    ) -> TaskReply | None:
        """Submit a job for a registered app.

        Each parameter is routed into the job's ``parameters`` or ``inputs``
        by the app's declared names; several values become a JSON array. An
        undeclared name rejects the whole call before anything is sent.
        """
        guide = self._registry.lookup(app_name)
        if guide.kind != RequestKind.APP:
            return None
        if not guide.app_id:
            report_fatal("Agave App does not have a full name", task_id=app_name)
            return None

        values: dict[str, list[str]] = {}
        for name, value in job_parameters.items():
            values[name] = [value] if isinstance(value, str) else [str(v) for v in value]

        if guide.working_dir_parameter and remote_working_dir:
            values.setdefault(guide.working_dir_parameter, []).append(self.resolve_path(remote_working_dir))

        inputs: dict[str, str | list[str]] = {}
        parameters: dict[str, str | list[str]] = {}
        for name, vals in values.items():
            if name in guide.parameter_names:
                target = parameters
            elif name in guide.input_names:
                target = inputs
            else:
                _LOGGER.warning(f"Rejecting job for {app_name}: unknown parameter '{name}'")
                return None
            if not vals:
                continue
            target[name] = vals if len(vals) > 1 else vals[0]

        job = {
            "appId": guide.app_id,
            "name": guide.app_id + "-run",
            "inputs": inputs,
            "parameters": parameters,
        }
        body = json.dumps(job, indent=4).encode("utf-8")
        _LOGGER.debug(f"job submission document:\n{body.decode('utf-8')}")

        reply = self._dispatcher.dispatch("agaveAppStart", buffer=body)
        if reply is not None:
            reply.add_param("jobName", app_name)
            reply.add_param("remoteWorkingDir", remote_working_dir)
            reply.add_params(values)
        return reply
