"""Error types with friendly messages."""

from __future__ import annotations


class AgaveLinkError(Exception):
    """Base exception for all agavelink errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(AgaveLinkError):
    """Configuration error."""

    pass


class TaskGuideError(AgaveLinkError):
    """Task guide catalog is inconsistent with how it is used."""

    pass


class DuplicateTaskGuideError(TaskGuideError):
    """A task guide id was registered twice."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            f"Invalid task guide list: duplicate name '{task_id}'",
            "Task guide ids must be unique within one handler",
        )


class UnknownTaskGuideError(TaskGuideError):
    """A task guide id was looked up that was never registered."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            f"Non-existent request requested: '{task_id}'",
            "Register the guide (or the remote app) before using it",
        )


class TemplateError(TaskGuideError):
    """Positional template arguments do not match the declared count."""

    pass
