"""Runtime diagnostics envelope + JSONL sink.

Every dispatched request and every completion is published on the event bus
wrapped in a canonical envelope. The JSONL sink is registered once per process
and self-filters when diagnostics are disabled.
"""

from __future__ import annotations

import contextlib
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agavelink.core.config import ConfigResolver
from agavelink.core.errors import ConfigError
from agavelink.core.events import get_event_bus
from agavelink.core.logging import get_logger

_logger = get_logger(__name__)

EVENT_OPERATION_START = "operation.start"
EVENT_OPERATION_END = "operation.end"


def build_envelope(
    *,
    event: str,
    component: str,
    operation: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Build the canonical diagnostics envelope.

    Schema:
        {
          "event": "<string>",
          "component": "<string>",
          "operation": "<string>",
          "timestamp": "<iso8601 utc>",
          "data": { ... }
        }

    Timestamp is emitted in UTC with a trailing 'Z'.
    """
    ts = datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    return {
        "event": event,
        "component": component,
        "operation": operation,
        "timestamp": ts,
        "data": data,
    }


def emit_diag(event: str, *, component: str, operation: str, data: dict[str, Any]) -> None:
    """Publish a diagnostics envelope. Never affects request handling."""
    with contextlib.suppress(Exception):
        envelope = build_envelope(event=event, component=component, operation=operation, data=data)
        get_event_bus().publish(event, envelope)


def _is_envelope(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    if set(obj.keys()) != {"event", "component", "operation", "timestamp", "data"}:
        return False
    return isinstance(obj.get("data"), dict)


_SINK_INSTALLED = False


def install_jsonl_sink(*, resolver: ConfigResolver) -> None:
    """Install the JSONL diagnostics sink subscriber.

    Idempotent; registers exactly once per process.

    Sink path:
        <diagnostics.dir>/diagnostics.jsonl
    """
    global _SINK_INSTALLED
    if _SINK_INSTALLED:
        return

    def _on_any_event(event: str, data: dict[str, Any]) -> None:
        try:
            if not resolver.resolve_bool("diagnostics.enabled", default=False):
                return
            out_dir, _src = resolver.resolve("diagnostics.dir")
        except ConfigError as e:
            _logger.warning(f"Diagnostics disabled by config error: {e}")
            return

        out_path = Path(str(out_dir)) / "diagnostics.jsonl"
        if _is_envelope(data):
            payload = data
        else:
            payload = build_envelope(event=event, component="unknown", operation="unknown", data=data)

        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True, default=str)
            with out_path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")
        except Exception as e:
            _logger.warning(f"Diagnostics sink write failed: {type(e).__name__}: {e}")

    get_event_bus().subscribe_all(_on_any_event)
    _SINK_INSTALLED = True
