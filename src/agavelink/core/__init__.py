"""agavelink core - asynchronous client engine for the Agave science gateway.

Task guides describe requests, the dispatcher issues them, the auth state
machine chains the login steps, and the shutdown coordinator drains
everything before the session is torn down.
"""

__version__ = "0.3.0"

from agavelink.core.auth import AuthStateMachine
from agavelink.core.config import AgaveSettings, ConfigResolver
from agavelink.core.diagnostics import build_envelope, install_jsonl_sink
from agavelink.core.dispatcher import RequestDispatcher, TransportOutcome
from agavelink.core.envelope import AuthMessage, RequestState
from agavelink.core.errors import (
    AgaveLinkError,
    ConfigError,
    DuplicateTaskGuideError,
    TaskGuideError,
    TemplateError,
    UnknownTaskGuideError,
)
from agavelink.core.events import (
    EVENT_ALL_FINISHED,
    EVENT_AUTH_STATE_CHANGED,
    EVENT_FATAL_ERROR,
    EventBus,
    get_event_bus,
    report_fatal,
)
from agavelink.core.guides import AuthHeaderKind, RequestKind, TaskGuide, TaskGuideRegistry
from agavelink.core.handler import AgaveHandler
from agavelink.core.logging import VerbosityLevel, apply_logging_level, get_logger, set_verbosity
from agavelink.core.models import FileMetaData, FileType, RemoteJobData
from agavelink.core.paths import resolve_remote_path
from agavelink.core.pending import PendingCounter
from agavelink.core.replies import ReplyResult, TaskReply
from agavelink.core.session import AuthSession
from agavelink.core.shutdown import ShutdownCoordinator

__all__ = [
    # Facade
    "AgaveHandler",
    # Engine
    "AuthStateMachine",
    "RequestDispatcher",
    "TransportOutcome",
    "ShutdownCoordinator",
    "PendingCounter",
    "AuthSession",
    # Guides
    "TaskGuide",
    "TaskGuideRegistry",
    "RequestKind",
    "AuthHeaderKind",
    # Replies
    "TaskReply",
    "ReplyResult",
    "RequestState",
    "AuthMessage",
    # Models
    "FileMetaData",
    "FileType",
    "RemoteJobData",
    # Paths
    "resolve_remote_path",
    # Config
    "ConfigResolver",
    "AgaveSettings",
    # Errors
    "AgaveLinkError",
    "ConfigError",
    "TaskGuideError",
    "DuplicateTaskGuideError",
    "UnknownTaskGuideError",
    "TemplateError",
    # Events
    "EventBus",
    "get_event_bus",
    "report_fatal",
    "EVENT_ALL_FINISHED",
    "EVENT_FATAL_ERROR",
    "EVENT_AUTH_STATE_CHANGED",
    # Diagnostics
    "build_envelope",
    "install_jsonl_sink",
    # Logging
    "VerbosityLevel",
    "get_logger",
    "set_verbosity",
    "apply_logging_level",
]
