from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class FileType(StrEnum):
    FILE = "file"
    DIR = "dir"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class FileMetaData:
    full_path: str
    name: str
    type: FileType = FileType.UNKNOWN
    size: int = 0
    last_modified: str | None = None
    mime_type: str | None = None

    @property
    def is_dir(self) -> bool:
        return self.type == FileType.DIR

    def to_dict(self) -> dict[str, Any]:
        return {
            "full_path": self.full_path,
            "name": self.name,
            "type": self.type.value,
            "size": self.size,
            "last_modified": self.last_modified,
            "mime_type": self.mime_type,
        }

    @classmethod
    def from_agave(cls, data: dict[str, Any]) -> FileMetaData:
        raw_type = str(data.get("type", ""))
        try:
            ftype = FileType(raw_type)
        except ValueError:
            ftype = FileType.UNKNOWN
        path = str(data.get("path", ""))
        if path and not path.startswith("/"):
            path = "/" + path
        try:
            size = int(data.get("length") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            full_path=path,
            name=str(data.get("name", "")),
            type=ftype,
            size=size,
            last_modified=data.get("lastModified"),
            mime_type=data.get("mimeType"),
        )


@dataclass(slots=True)
class RemoteJobData:
    job_id: str
    name: str = ""
    app_id: str = ""
    status: str = ""
    created: str | None = None
    inputs: dict[str, Any] = field(default_factory=dict)
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "name": self.name,
            "app_id": self.app_id,
            "status": self.status,
            "created": self.created,
            "inputs": dict(self.inputs),
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_agave(cls, data: dict[str, Any]) -> RemoteJobData:
        inputs = data.get("inputs")
        parameters = data.get("parameters")
        return cls(
            job_id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            app_id=str(data.get("appId", "")),
            status=str(data.get("status", "")),
            created=data.get("created"),
            inputs=dict(inputs) if isinstance(inputs, dict) else {},
            parameters=dict(parameters) if isinstance(parameters, dict) else {},
        )
