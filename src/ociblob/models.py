"""Handle and file metadata types shared by layouts and backends."""

from dataclasses import dataclass
from enum import Enum

from ociblob.errors import InvalidHandleError


class FileType(str, Enum):
    """Category of a file stored in a repository."""

    PACK = "data"
    KEY = "key"
    LOCK = "lock"
    SNAPSHOT = "snapshot"
    INDEX = "index"
    CONFIG = "config"


@dataclass(frozen=True, slots=True)
class Handle:
    """Identifies a stored blob by file type and name."""

    type: FileType
    name: str = ""

    def validate(self) -> None:
        """Check that the handle can be mapped to an object key.

        Names are single path components, so every handle maps to exactly
        one object name and listing gives the same name back.

        Raises:
            InvalidHandleError: If the name is empty for a non-config type, or
                is ``.``, ``..`` or contains a slash.
        """
        if not isinstance(self.type, FileType):
            raise InvalidHandleError(f"invalid file type {self.type!r}")
        if self.type is FileType.CONFIG:
            return
        if not self.name or self.name in (".", "..") or "/" in self.name:
            raise InvalidHandleError(
                f"invalid name {self.name!r} for {self.type.value} handle"
            )

    def __str__(self) -> str:
        if self.type is FileType.CONFIG:
            return "<config>"
        return f"<{self.type.value}/{self.name[:10]}>"


@dataclass(frozen=True, slots=True)
class FileInfo:
    """Name and size of a stored blob, as reported by the remote store."""

    name: str
    size: int
