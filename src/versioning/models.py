"""Data models for module version parsing and ranking."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class VersionType(Enum):
    """Classification of a module version."""
    RELEASE = "release"
    PRERELEASE = "prerelease"
    PSEUDO = "pseudo"


@dataclass(frozen=True)
class ParsedVersion:
    """Numeric components of a semantic version such as ``v1.2.3-rc.1+incompatible``."""
    major: int
    minor: int
    patch: int
    prerelease: str  # "" for a release
    build: str  # "" unless a build suffix such as "incompatible" is present

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease != ""


# (is_release, major, minor, patch, prerelease); the greatest tuple is the latest version.
Precedence = Tuple[int, int, int, int, str]
