"""Key layouts: mapping handles to object names inside the bucket.

Two layouts are supported:

    default:   <prefix>/config
               <prefix>/data/<name[:2]>/<name>
               <prefix>/{keys,locks,snapshots,index}/<name>

    s3legacy:  <prefix>/config
               <prefix>/data/<name>
               <prefix>/{key,lock,snapshot,index}/<name>

A prefix of "." addresses the bucket root.
"""

import logging
import posixpath
from typing import Protocol

from ociblob.client import ObjectStoreClient
from ociblob.errors import ConfigurationError
from ociblob.models import FileType, Handle

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = "default"
S3_LEGACY_LAYOUT = "s3legacy"


def join(*parts: str) -> str:
    """Join object name components with slashes and clean the result."""
    return posixpath.normpath(posixpath.join(*parts))


class Layout(Protocol):
    """Maps handles to object names and enumerates per-type prefixes."""

    name: str

    def filename(self, h: Handle) -> str:
        """Return the object name for *h*."""
        ...

    def dirname(self, h: Handle) -> str:
        """Return the directory part of the object name for *h*."""
        ...

    def basedir(self, t: FileType) -> str:
        """Return the prefix under which all files of type *t* are stored."""
        ...

    def paths(self) -> list[str]:
        """Return every directory prefix used by the layout."""
        ...


class _DirectoryLayout:
    """Layout with one directory per file type below a common prefix."""

    name = ""
    directories: dict[FileType, str] = {}

    def __init__(self, path: str = ".") -> None:
        self.path = path or "."

    def basedir(self, t: FileType) -> str:
        if t is FileType.CONFIG:
            return self.path
        return join(self.path, self.directories[t])

    def dirname(self, h: Handle) -> str:
        return self.basedir(h.type)

    def filename(self, h: Handle) -> str:
        if h.type is FileType.CONFIG:
            return join(self.path, "config")
        return join(self.dirname(h), h.name)

    def paths(self) -> list[str]:
        return [join(self.path, d) for d in self.directories.values()]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"


class DefaultLayout(_DirectoryLayout):
    """Plural directory names, data files split by their first two characters."""

    name = DEFAULT_LAYOUT
    directories = {
        FileType.PACK: "data",
        FileType.KEY: "keys",
        FileType.LOCK: "locks",
        FileType.SNAPSHOT: "snapshots",
        FileType.INDEX: "index",
    }

    def dirname(self, h: Handle) -> str:
        if h.type is FileType.PACK and len(h.name) > 2:
            return join(self.basedir(h.type), h.name[:2])
        return self.basedir(h.type)

    def paths(self) -> list[str]:
        dirs = super().paths()
        data = self.basedir(FileType.PACK)
        dirs.extend(join(data, f"{i:02x}") for i in range(256))
        return dirs


class S3LegacyLayout(_DirectoryLayout):
    """Flat layout with singular directory names."""

    name = S3_LEGACY_LAYOUT
    directories = {
        FileType.PACK: "data",
        FileType.KEY: "key",
        FileType.LOCK: "lock",
        FileType.SNAPSHOT: "snapshot",
        FileType.INDEX: "index",
    }


_LAYOUTS: dict[str, type[_DirectoryLayout]] = {
    DEFAULT_LAYOUT: DefaultLayout,
    S3_LEGACY_LAYOUT: S3LegacyLayout,
}


def new_layout(name: str, path: str) -> Layout:
    """Instantiate the layout called *name* rooted at *path*.

    Raises:
        ConfigurationError: If *name* is not a known layout.
    """
    try:
        return _LAYOUTS[name](path)
    except KeyError:
        raise ConfigurationError(f"unknown backend layout {name!r}") from None


async def _has_objects(client: ObjectStoreClient, prefix: str) -> bool:
    async for _ in client.list_objects(prefix):
        return True
    return False


async def detect_layout(client: ObjectStoreClient, path: str) -> Layout | None:
    """Detect the layout of an existing repository.

    The key directory name tells the layouts apart: ``keys/`` for the default
    layout, ``key/`` for s3legacy.

    Returns:
        The detected layout, or None if the repository holds no key files.
    """
    if await _has_objects(client, join(path, "keys") + "/"):
        return DefaultLayout(path)
    if await _has_objects(client, join(path, "key") + "/"):
        return S3LegacyLayout(path)
    return None


async def parse_layout(
    client: ObjectStoreClient, name: str, default: str, path: str
) -> Layout:
    """Return the layout to use for a backend.

    An explicit *name* always wins. Otherwise the layout is detected from the
    repository contents, falling back to *default* for empty repositories.
    """
    if name:
        return new_layout(name, path)

    layout = await detect_layout(client, path)
    if layout is None:
        logger.debug("No layout detected, using %s", default)
        return new_layout(default, path)
    logger.debug("Detected %s layout", layout.name)
    return layout
