"""Task guides: immutable templates describing one kind of remote request.

A guide fixes the HTTP shape (method, URL template, body template, auth
header) of a request. Positional values are filled in per call through
``build_url`` / ``build_body``, which check the number of values against
the count the guide declares.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import quote

from agavelink.core.config import AgaveSettings
from agavelink.core.errors import DuplicateTaskGuideError, TemplateError, UnknownTaskGuideError
from agavelink.core.events import report_fatal

_MARKER = re.compile(r"\{(\d+)\}")


class RequestKind(StrEnum):
    NONE = "none"  # pass-through marker, never sent
    GET = "get"
    POST = "post"
    PUT = "put"
    DELETE = "delete"
    UPLOAD = "upload"  # multipart upload of a local file
    DOWNLOAD = "download"  # stream to a local file
    BUFFER_UPLOAD = "buffer_upload"
    BUFFER_DOWNLOAD = "buffer_download"
    APP = "app"  # job-submission descriptor, sent through agaveAppStart


class AuthHeaderKind(StrEnum):
    NONE = "none"
    PASSWORD = "password"
    CLIENT = "client"
    TOKEN = "token"
    REFRESH = "refresh"  # reserved; selects no header


def _check_markers(template: str, count: int, task_id: str) -> None:
    found = {int(m) for m in _MARKER.findall(template)}
    if found != set(range(count)):
        raise TemplateError(
            f"Template for '{task_id}' declares {count} positional argument(s) "
            f"but uses markers {sorted(found)}: {template!r}"
        )


def _fill(template: str, values: Sequence[str], expected: int, what: str, task_id: str, *, strip_root: bool) -> str:
    if len(values) != expected:
        raise TemplateError(f"'{task_id}' expects {expected} {what} argument(s), got {len(values)}")

    def _sub(match: re.Match[str]) -> str:
        value = str(values[int(match.group(1))])
        if strip_root:
            value = value.lstrip("/")
        return quote(value, safe="/")

    return _MARKER.sub(_sub, template)


@dataclass(frozen=True)
class TaskGuide:
    task_id: str
    kind: RequestKind
    url_template: str = ""
    url_param_count: int = 0
    body_template: str = ""
    body_param_count: int = 0
    header: AuthHeaderKind = AuthHeaderKind.NONE
    internal: bool = False
    # Reply is an OAuth token document instead of the status envelope.
    token_format: bool = False

    app_id: str = ""
    input_names: tuple[str, ...] = field(default_factory=tuple)
    parameter_names: tuple[str, ...] = field(default_factory=tuple)
    working_dir_parameter: str = ""

    def __post_init__(self) -> None:
        _check_markers(self.url_template, self.url_param_count, self.task_id)
        _check_markers(self.body_template, self.body_param_count, self.task_id)

    def build_url(self, params: Sequence[str] = ()) -> str:
        """URL suffix (relative to the tenant) with positional values filled in."""
        return _fill(self.url_template, params, self.url_param_count, "URL", self.task_id, strip_root=True)

    def build_body(self, params: Sequence[str] = ()) -> str:
        """Form body with positional values filled in."""
        return _fill(self.body_template, params, self.body_param_count, "body", self.task_id, strip_root=False)


class TaskGuideRegistry:
    """Catalog of task guides, keyed by id.

    Populated once at start-up and read-only afterwards (apps registered
    later are the only additions).
    """

    def __init__(self, guides: Iterable[TaskGuide] = ()) -> None:
        self._guides: dict[str, TaskGuide] = {}
        for guide in guides:
            self.register(guide)

    @classmethod
    def with_defaults(cls, settings: AgaveSettings) -> TaskGuideRegistry:
        return cls(default_guides(settings))

    def register(self, guide: TaskGuide) -> None:
        """Add a guide.

        Raises:
            DuplicateTaskGuideError: If the id is taken (also reported as fatal)
        """
        if guide.task_id in self._guides:
            report_fatal("Invalid Task Guide List: Duplicate Name", task_id=guide.task_id)
            raise DuplicateTaskGuideError(guide.task_id)
        self._guides[guide.task_id] = guide

    def lookup(self, task_id: str) -> TaskGuide:
        """Return the guide for ``task_id``.

        Raises:
            UnknownTaskGuideError: If the id was never registered (also reported as fatal)
        """
        guide = self._guides.get(task_id)
        if guide is None:
            report_fatal("Non-existent request requested", task_id=task_id)
            raise UnknownTaskGuideError(task_id)
        return guide

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._guides

    def __len__(self) -> int:
        return len(self._guides)

    def ids(self) -> list[str]:
        return sorted(self._guides)


def app_guide(
    app_name: str,
    app_id: str,
    parameter_names: Iterable[str],
    input_names: Iterable[str],
    working_dir_parameter: str = "",
) -> TaskGuide:
    """Descriptor for a remote app that run_remote_job can submit."""
    return TaskGuide(
        task_id=app_name,
        kind=RequestKind.APP,
        app_id=app_id,
        parameter_names=tuple(parameter_names),
        input_names=tuple(input_names),
        working_dir_parameter=working_dir_parameter,
    )


def default_guides(settings: AgaveSettings) -> list[TaskGuide]:
    """The request catalog for one tenant / storage node."""
    client = quote(settings.client_name, safe="")
    description = quote(settings.client_description, safe="")
    media = f"/files/v2/media/system/{settings.storage_node}/{{0}}"
    listing = f"/files/v2/listings/system/{settings.storage_node}/{{0}}"

    guides = [
        TaskGuide("changeDir", RequestKind.NONE),
        TaskGuide("fullAuth", RequestKind.NONE),
        TaskGuide("refreshAuth", RequestKind.NONE),
        TaskGuide("waitAll", RequestKind.NONE),
        TaskGuide(
            "authStep1",
            RequestKind.GET,
            url_template=f"/clients/v2/{client}",
            header=AuthHeaderKind.PASSWORD,
            internal=True,
        ),
        TaskGuide(
            "authStep1a",
            RequestKind.DELETE,
            url_template=f"/clients/v2/{client}",
            header=AuthHeaderKind.PASSWORD,
            internal=True,
        ),
        TaskGuide(
            "authStep2",
            RequestKind.POST,
            url_template="/clients/v2/",
            body_template=f"clientName={client}&description={description}",
            header=AuthHeaderKind.PASSWORD,
            internal=True,
        ),
        TaskGuide(
            "authStep3",
            RequestKind.POST,
            url_template="/token",
            body_template="username={0}&password={1}&grant_type=password&scope=PRODUCTION",
            body_param_count=2,
            header=AuthHeaderKind.CLIENT,
            internal=True,
            token_format=True,
        ),
        TaskGuide(
            "authRefresh",
            RequestKind.POST,
            url_template="/token",
            body_template="grant_type=refresh_token&scope=PRODUCTION&refresh_token={0}",
            body_param_count=1,
            header=AuthHeaderKind.CLIENT,
            internal=True,
            token_format=True,
        ),
        TaskGuide(
            "authRevoke",
            RequestKind.POST,
            url_template="/revoke",
            body_template="token={0}",
            body_param_count=1,
            header=AuthHeaderKind.CLIENT,
            internal=True,
        ),
        TaskGuide("dirListing", RequestKind.GET, listing, 1, header=AuthHeaderKind.TOKEN),
        TaskGuide("fileUpload", RequestKind.UPLOAD, media, 1, header=AuthHeaderKind.TOKEN),
        TaskGuide("fileDownload", RequestKind.DOWNLOAD, media, 1, header=AuthHeaderKind.TOKEN),
        TaskGuide("filePipeUpload", RequestKind.BUFFER_UPLOAD, media, 1, header=AuthHeaderKind.TOKEN),
        TaskGuide("filePipeDownload", RequestKind.BUFFER_DOWNLOAD, media, 1, header=AuthHeaderKind.TOKEN),
        TaskGuide("fileDelete", RequestKind.DELETE, media, 1, header=AuthHeaderKind.TOKEN),
    ]

    for task_id, action in (
        ("newFolder", "mkdir"),
        ("renameFile", "rename"),
        ("fileCopy", "copy"),
        ("fileMove", "move"),
    ):
        guides.append(
            TaskGuide(
                task_id,
                RequestKind.PUT,
                media,
                1,
                body_template=f"action={action}&path={{0}}",
                body_param_count=1,
                header=AuthHeaderKind.TOKEN,
            )
        )

    guides += [
        TaskGuide("agaveAppStart", RequestKind.BUFFER_UPLOAD, "/jobs/v2", header=AuthHeaderKind.TOKEN),
        TaskGuide("getAgaveList", RequestKind.GET, "/apps/v2", header=AuthHeaderKind.TOKEN),
        TaskGuide("getJobList", RequestKind.GET, "/jobs/v2", header=AuthHeaderKind.TOKEN),
        TaskGuide("getJobDetails", RequestKind.GET, "/jobs/v2/{0}", 1, header=AuthHeaderKind.TOKEN),
        TaskGuide(
            "stopJob",
            RequestKind.POST,
            "/jobs/v2/{0}",
            1,
            body_template="action=stop",
            header=AuthHeaderKind.TOKEN,
        ),
    ]
    return guides
