"""Version parsing and ranking utilities for module versions."""

import re
from typing import Iterable, List, Optional, Tuple

import semantic_version

from common.errors import InvalidArgumentError
from .models import ParsedVersion, Precedence, VersionType

# vX.0.0-yyyymmddhhmmss-abcdef, vX.Y.Z-pre.0.yyyymmddhhmmss-abcdef and
# vX.Y.(Z+1)-0.yyyymmddhhmmss-abcdef, each with an optional build suffix.
_PSEUDO_VERSION_RE = re.compile(
    r"^v[0-9]+\.(0\.0-|\d+\.\d+-([^+]*\.)?0\.)\d{14}-[A-Za-z0-9]+(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)


def parse_version(version: str) -> ParsedVersion:
    """Parse a ``v``-prefixed semantic version.

    Raises:
        InvalidArgumentError: If the version is not of the form ``vMAJOR.MINOR.PATCH[-pre][+build]``.
    """
    if not version or not version.startswith("v"):
        raise InvalidArgumentError(f"version {version!r} must start with 'v'", target=version)
    try:
        parsed = semantic_version.Version(version[1:])
    except ValueError as exc:
        raise InvalidArgumentError(f"invalid version {version!r}: {exc}", target=version) from exc
    return ParsedVersion(
        major=parsed.major,
        minor=parsed.minor,
        patch=parsed.patch,
        prerelease=".".join(parsed.prerelease),
        build=".".join(parsed.build),
    )


def is_pseudo(version: str) -> bool:
    """Report whether ``version`` is a pseudo-version naming an untagged commit."""
    return bool(_PSEUDO_VERSION_RE.match(version))


def version_type(version: str) -> VersionType:
    """Classify ``version`` as a release, prerelease or pseudo-version."""
    parsed = parse_version(version)
    if is_pseudo(version):
        return VersionType.PSEUDO
    if parsed.is_prerelease:
        return VersionType.PRERELEASE
    return VersionType.RELEASE


def precedence(version: str) -> Precedence:
    """Return a sortable precedence tuple for ``version``.

    Any release outranks every prerelease regardless of numeric value; within
    a class the numerically highest version wins and the lexicographically
    highest prerelease string breaks remaining ties.
    """
    parsed = parse_version(version)
    return (
        0 if parsed.is_prerelease else 1,
        parsed.major,
        parsed.minor,
        parsed.patch,
        parsed.prerelease,
    )


def ranking_key(module_path: str, version: str) -> Tuple[str, Precedence]:
    """Key grouping versions by module, then ordering them by precedence."""
    return module_path, precedence(version)


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Return ``versions`` ordered from latest to oldest."""
    return sorted(versions, key=precedence, reverse=True)


def latest_version(versions: Iterable[str]) -> Optional[str]:
    """Pick the canonical latest version, or None when ``versions`` is empty."""
    return max(versions, key=precedence, default=None)
