"""Result types shared by the proxy client and the directory resolver.

Every type here is immutable and request-scoped: a fresh instance is built
per proxy response or per store query and is never cached by this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Tuple

from versioning.models import VersionType


@dataclass(frozen=True)
class VersionInfo:
    """Identity of one module version as reported by the proxy."""
    module_path: str
    version: str
    time: datetime


@dataclass(frozen=True)
class ArchiveEntry:
    """One file of a module zip; ``path`` starts with ``module@version/``."""
    path: str
    content: bytes


@dataclass(frozen=True)
class RawArchive:
    """Fully materialised contents of a module zip."""
    module_path: str
    version: str
    entries: Tuple[ArchiveEntry, ...]

    @property
    def prefix(self) -> str:
        return f"{self.module_path}@{self.version}/"

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(entry.path for entry in self.entries)

    def read(self, path: str) -> bytes:
        """Return the content stored at ``path``; raises KeyError when absent."""
        for entry in self.entries:
            if entry.path == path:
                return entry.content
        raise KeyError(path)

    def __iter__(self) -> Iterator[ArchiveEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class LicenseMetadata:
    """License identifiers detected in one license file."""
    types: Tuple[str, ...]
    file_path: str


@dataclass(frozen=True)
class Readme:
    file_path: str
    contents: str


@dataclass(frozen=True)
class SourceInfo:
    """Where the module's source is hosted."""
    repository_url: str = ""
    vcs_type: str = ""
    homepage_url: str = ""


@dataclass(frozen=True)
class VersionedPackage:
    """A path inside a module at one version, with the module's data denormalized onto it."""
    path: str
    name: str
    synopsis: str
    module_path: str
    version: str
    commit_time: datetime
    version_type: VersionType
    v1_path: str = ""
    documentation: str = ""
    is_redistributable: bool = False
    licenses: Tuple[LicenseMetadata, ...] = ()
    readme: Optional[Readme] = None
    source: SourceInfo = field(default_factory=SourceInfo)

    def is_package(self) -> bool:
        """Report whether the path is a package rather than a plain directory."""
        return self.name != ""

    def is_module(self) -> bool:
        """Report whether the path is the root of its module."""
        return self.path == self.module_path


@dataclass(frozen=True)
class Directory:
    """Packages under ``path``, all from one module at one version, sorted by path."""
    path: str
    module_path: str
    version: str
    packages: Tuple[VersionedPackage, ...]
