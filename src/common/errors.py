"""Error taxonomy shared by the proxy client and the directory resolver.

Callers distinguish outcomes by type, never by message text. Native
exceptions (aiohttp, SQLAlchemy, json) are chained with ``raise ... from``
so the original error stays available via ``__cause__``.

Only :class:`NotFoundError` is expected during normal operation: a module
may simply not have the requested version yet.
"""

from __future__ import annotations

import asyncio
from typing import Optional

# Task cancellation is reported with asyncio's own exception so that
# cancellation keeps propagating through the event loop.
Canceled = asyncio.CancelledError


class DiscoveryError(Exception):
    """Base for all errors raised by this package.

    Attributes:
        target: Module path, URL or directory the operation was about.
        status_code: HTTP status returned by the proxy, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        target: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.target = target
        self.status_code = status_code

    def __repr__(self) -> str:
        parts = [repr(str(self))]
        if self.target is not None:
            parts.append(f"target={self.target!r}")
        if self.status_code is not None:
            parts.append(f"status_code={self.status_code!r}")
        return f"{type(self).__name__}({', '.join(parts)})"


class NotFoundError(DiscoveryError):
    """Module, version or directory does not exist (HTTP 404/410)."""


class InvalidArgumentError(DiscoveryError):
    """Malformed module path or version supplied by the caller."""


class ProtocolViolationError(DiscoveryError):
    """Proxy response is inconsistent with the module proxy protocol."""


class TransportError(DiscoveryError):
    """Network failure or proxy unavailable (connection error, HTTP 5xx)."""


class DeadlineExceededError(DiscoveryError):
    """The per-call timeout elapsed before the operation completed."""


class InternalError(DiscoveryError):
    """Unexpected failure in the metadata store or its rows."""


class AmbiguousOwnerError(InternalError):
    """Two distinct modules of equal specificity own the same directory."""
