"""Validation and case-escaping of module paths and versions for proxy URLs.

The proxy protocol serves from case-insensitive file systems, so every
upper-case letter is sent as ``!`` followed by its lower-case form:
``github.com/Azure/go`` becomes ``github.com/!azure/go``.
"""
from __future__ import annotations

import re

from common.errors import InvalidArgumentError

_PATH_ELEMENT_RE = re.compile(r"^[A-Za-z0-9\-_.~+]+$")
_VERSION_RE = re.compile(r"^[A-Za-z0-9\-_.+]+$")


def check_module_path(module_path: str) -> None:
    """Raise InvalidArgumentError unless ``module_path`` is a well-formed module path."""
    if not module_path:
        raise InvalidArgumentError("empty module path")
    if module_path.startswith("/") or module_path.endswith("/"):
        raise InvalidArgumentError(
            f"module path {module_path!r} has a leading or trailing slash", target=module_path
        )
    for element in module_path.split("/"):
        if element in ("", ".", ".."):
            raise InvalidArgumentError(
                f"module path {module_path!r} has an empty or dot element", target=module_path
            )
        if element.startswith("."):
            raise InvalidArgumentError(
                f"module path element {element!r} starts with a dot", target=module_path
            )
        if not _PATH_ELEMENT_RE.match(element):
            raise InvalidArgumentError(
                f"module path {module_path!r} contains invalid characters", target=module_path
            )


def check_version(version: str) -> None:
    """Raise InvalidArgumentError unless ``version`` can be sent to the proxy."""
    if not version:
        raise InvalidArgumentError("empty version")
    if not _VERSION_RE.match(version):
        raise InvalidArgumentError(f"version {version!r} contains invalid characters", target=version)


def _escape(value: str) -> str:
    return "".join(f"!{ch.lower()}" if "A" <= ch <= "Z" else ch for ch in value)


def escape_path(module_path: str) -> str:
    """Validate and case-escape a module path."""
    check_module_path(module_path)
    return _escape(module_path)


def escape_version(version: str) -> str:
    """Validate and case-escape a version."""
    check_version(version)
    return _escape(version)


def unescape(escaped: str) -> str:
    """Reverse :func:`escape_path` / :func:`escape_version`.

    Raises:
        InvalidArgumentError: On a dangling ``!``, a ``!`` not followed by a
            lower-case letter, or a literal upper-case letter.
    """
    out = []
    bang = False
    for ch in escaped:
        if bang:
            if not "a" <= ch <= "z":
                raise InvalidArgumentError(f"invalid escape in {escaped!r}", target=escaped)
            out.append(ch.upper())
            bang = False
        elif ch == "!":
            bang = True
        elif "A" <= ch <= "Z":
            raise InvalidArgumentError(f"unescaped upper-case letter in {escaped!r}", target=escaped)
        else:
            out.append(ch)
    if bang:
        raise InvalidArgumentError(f"trailing '!' in {escaped!r}", target=escaped)
    return "".join(out)
