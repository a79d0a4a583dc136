"""Client for the Go module proxy protocol.

Endpoints, relative to the proxy base URL and the escaped module path:

    /@latest               latest version info (JSON)
    /@v/list               known versions, one per line
    /@v/<version>.info     version info (JSON)
    /@v/<version>.zip      module zip
"""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from datetime import datetime, timezone
from typing import Dict, List, Optional

import aiohttp

from common.errors import InvalidArgumentError, ProtocolViolationError
from common.http_client import fetch
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from models import ArchiveEntry, RawArchive, VersionInfo
from .escape import escape_path, escape_version

logger = logging.getLogger(__name__)

# Go emits up to nanosecond precision; datetime accepts at most microseconds.
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def _parse_time(value: str) -> datetime:
    text = _FRACTION_RE.sub(r".\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Client:
    """Stateless module proxy client.

    The aiohttp session is the only thing held across calls; responses are
    never cached. Every operation accepts a ``timeout`` in seconds and is
    aborted promptly when its task is cancelled.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        max_zip_bytes: Optional[int] = None,
    ):
        """Initialize the client.

        Args:
            url: Proxy base URL; defaults to ``Constants.PROXY_URL``.
            timeout: Default per-call timeout in seconds.
            session: Optional shared session; the caller keeps ownership.
            max_zip_bytes: Upper bound on a zip download.
        """
        self._url = (url or Constants.PROXY_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
        self._max_zip_bytes = max_zip_bytes if max_zip_bytes is not None else Constants.MAX_ZIP_BYTES
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return self._url

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": Constants.USER_AGENT},
            )
            self._owns_session = True

    async def stop(self) -> None:
        """Stop the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "Client":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def module_url(self, module_path: str, suffix: str) -> str:
        """Build ``{base}/{escaped module}/{suffix}``."""
        return f"{self._url}/{escape_path(module_path)}/{suffix}"

    def version_url(self, module_path: str, version: str, ext: str) -> str:
        """Build the ``@v/<version>.<ext>`` URL, or ``@latest`` for the latest info."""
        if version == Constants.LATEST:
            if ext != "info":
                raise InvalidArgumentError(
                    f"{Constants.LATEST!r} is only valid for info requests", target=module_path
                )
            return self.module_url(module_path, "@latest")
        return self.module_url(module_path, f"@v/{escape_version(version)}.{ext}")

    async def _get(
        self,
        url: str,
        *,
        context: str,
        timeout: Optional[float],
        max_bytes: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> bytes:
        if self._session is None:
            await self.start()
        assert self._session is not None
        return await fetch(
            self._session,
            url,
            context=context,
            timeout=timeout if timeout is not None else self._timeout,
            headers=headers,
            max_bytes=max_bytes,
        )

    async def get_info(
        self, module_path: str, version: str, *, timeout: Optional[float] = None
    ) -> VersionInfo:
        """Fetch the info for ``module_path@version``; ``version`` may be ``"latest"``.

        Raises:
            NotFoundError: The module or version does not exist.
            ProtocolViolationError: The body is not a valid info document.
        """
        url = self.version_url(module_path, version, "info")
        body = await self._get(url, context="proxy info", timeout=timeout)
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise ProtocolViolationError(
                f"malformed info for {module_path}@{version}: {exc}", target=module_path
            ) from exc
        if not isinstance(data, dict) or not data.get("Version") or not isinstance(data["Version"], str):
            raise ProtocolViolationError(
                f"info for {module_path}@{version} has no Version", target=module_path
            )
        try:
            commit_time = _parse_time(str(data.get("Time", "")))
        except ValueError as exc:
            raise ProtocolViolationError(
                f"info for {module_path}@{version} has invalid Time {data.get('Time')!r}",
                target=module_path,
            ) from exc
        info = VersionInfo(module_path=module_path, version=data["Version"], time=commit_time)
        if is_debug_enabled(logger):
            logger.debug(
                "Version info fetched",
                extra=extra_context(
                    event="version_info",
                    component="proxy_client",
                    module_path=module_path,
                    requested=version,
                    resolved=info.version,
                ),
            )
        return info

    async def list_versions(
        self, module_path: str, *, timeout: Optional[float] = None
    ) -> List[str]:
        """List the versions the proxy knows for ``module_path``, in proxy order.

        An existing module without tagged versions yields an empty list.
        """
        url = self.module_url(module_path, "@v/list")
        body = await self._get(url, context="proxy list", timeout=timeout)
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolViolationError(
                f"version list for {module_path} is not UTF-8", target=module_path
            ) from exc
        return [line.strip() for line in text.splitlines() if line.strip()]

    async def get_zip(
        self, module_path: str, version: str, *, timeout: Optional[float] = None
    ) -> RawArchive:
        """Download and unpack the zip for ``module_path@version``.

        Raises:
            NotFoundError: The module or version does not exist.
            ProtocolViolationError: The body is not a zip, is too large, or
                holds an entry outside ``module@version/``.
        """
        url = self.version_url(module_path, version, "zip")
        body = await self._get(
            url,
            context="proxy zip",
            timeout=timeout,
            max_bytes=self._max_zip_bytes,
        )
        prefix = f"{module_path}@{version}/"
        entries = []
        try:
            with zipfile.ZipFile(io.BytesIO(body)) as archive:
                for member in archive.infolist():
                    if not member.filename.startswith(prefix):
                        raise ProtocolViolationError(
                            f"zip entry {member.filename!r} lacks prefix {prefix!r}",
                            target=module_path,
                        )
                    if member.is_dir():
                        continue
                    entries.append(ArchiveEntry(path=member.filename, content=archive.read(member)))
        except zipfile.BadZipFile as exc:
            raise ProtocolViolationError(
                f"invalid zip for {module_path}@{version}: {exc}", target=module_path
            ) from exc
        logger.info("Fetched %s@%s zip with %d files", module_path, version, len(entries))
        return RawArchive(module_path=module_path, version=version, entries=tuple(entries))
