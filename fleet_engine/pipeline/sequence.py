# fleet_engine/pipeline/sequence.py
"""Command sequence and file materialization types."""

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union


class FileChannel(Enum):
    """How a file reaches the remote host."""
    ECHO = "echo"  # base64 inline in the command sequence
    COPY = "copy"  # staged through the agent's file upload endpoint


@dataclass(frozen=True)
class FileMaterialization:
    """Request to write one file on the target host."""
    path: str
    content: Union[str, bytes]
    channel: FileChannel = FileChannel.ECHO

    @property
    def directory(self) -> str:
        return posixpath.dirname(self.path)


@dataclass(frozen=True)
class FileUpload:
    """File shipped through the copy channel before the commands run."""
    path: str
    content_base64: str


@dataclass(frozen=True)
class CommandSequence:
    """Ordered, re-runnable shell commands for one host."""
    instance_id: str
    commands: Tuple[str, ...]
    uploads: Tuple[FileUpload, ...] = field(default=())

    @property
    def script(self) -> str:
        return "\n".join(self.commands)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "commands": list(self.commands),
            "uploads": [
                {"path": u.path, "content_base64": u.content_base64}
                for u in self.uploads
            ],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CommandSequence":
        return cls(
            instance_id=payload["instance_id"],
            commands=tuple(payload.get("commands", [])),
            uploads=tuple(
                FileUpload(path=u["path"], content_base64=u["content_base64"])
                for u in payload.get("uploads", [])
            ),
        )
