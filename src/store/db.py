"""Async access to the module metadata store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.expression import Executable

from common.errors import DeadlineExceededError, InternalError, InvalidArgumentError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from constants import Constants
from versioning.parser import parse_version, version_type
from . import schema

logger = logging.getLogger(__name__)

_MEMORY_URLS = ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:")


def _to_utc(value: datetime) -> datetime:
    # SQLite drops the offset, so every time is stored as naive UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class PackageRecord:
    """A directory of a module version, as written by the ingestion flow."""
    path: str
    name: str = ""
    synopsis: str = ""
    v1_path: str = ""
    documentation: str = ""
    license_types: Sequence[str] = ()
    license_paths: Sequence[str] = ()
    redistributable: bool = True


@dataclass
class ModuleVersion:
    """A module version together with all of its directories."""
    module_path: str
    version: str
    commit_time: datetime
    packages: List[PackageRecord] = field(default_factory=list)
    readme_file_path: Optional[str] = None
    readme_contents: Optional[str] = None
    repository_url: Optional[str] = None
    vcs_type: Optional[str] = None
    homepage_url: Optional[str] = None


class DB:
    """Handle on the metadata store.

    Holds only the engine; every query opens its own connection, so one DB
    can serve many concurrent readers.
    """

    def __init__(self, engine: AsyncEngine, *, query_timeout: Optional[float] = None):
        self._engine = engine
        self._query_timeout = query_timeout if query_timeout is not None else Constants.QUERY_TIMEOUT

    @classmethod
    def open(cls, url: Optional[str] = None, **engine_kwargs: Any) -> "DB":
        """Create a DB for ``url`` (defaults to ``Constants.DATABASE_URL``).

        In-memory SQLite URLs share one connection so all sessions see the same data.
        """
        db_url = url or Constants.DATABASE_URL
        if db_url in _MEMORY_URLS:
            engine_kwargs.setdefault("poolclass", StaticPool)
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        return cls(create_async_engine(db_url, **engine_kwargs))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(schema.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    async def run_query(
        self,
        statement: Executable,
        collect: Callable[[Mapping[str, Any]], None],
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """Execute a read-only ``statement`` and pass each row mapping to ``collect``.

        A timeout stops the wait, not the statement: the driver may keep
        running it on its worker thread, and the connection goes back to the
        pool once that finishes. With the single shared connection of an
        in-memory store, the next query waits behind it.

        Raises:
            DeadlineExceededError: The query did not finish within ``timeout`` seconds.
            InternalError: The store failed to run the query or returned a
                column value that could not be decoded.
        """
        effective_timeout = timeout if timeout is not None else self._query_timeout
        with Timer() as t:
            try:
                async with self._engine.connect() as conn:
                    result = await asyncio.wait_for(conn.execute(statement), effective_timeout)
                    for row in result.mappings():
                        collect(row)
            except asyncio.TimeoutError as exc:
                raise DeadlineExceededError(
                    f"query timed out after {effective_timeout} seconds"
                ) from exc
            except SQLAlchemyError as exc:
                logger.error("Query failed: %s", exc)
                raise InternalError(f"query failed: {exc}") from exc
            except ValueError as exc:
                # JSON columns are decoded while rows are fetched.
                logger.error("Malformed row: %s", exc)
                raise InternalError(f"malformed row: {exc}") from exc
        if is_debug_enabled(logger):
            logger.debug(
                "Query finished",
                extra=extra_context(event="db_query", component="db", duration_ms=t.duration_ms()),
            )

    async def insert_version(self, module_version: ModuleVersion) -> None:
        """Write a module version and its packages in one transaction.

        Used by the ingestion flow; resolution never writes.

        Raises:
            InvalidArgumentError: Bad version string, a package outside the
                module, or a version that is already stored.
            InternalError: The store failed to write.
        """
        mv = module_version
        parsed = parse_version(mv.version)
        version_row = {
            "module_path": mv.module_path,
            "version": mv.version,
            "commit_time": _to_utc(mv.commit_time),
            "readme_file_path": mv.readme_file_path,
            "readme_contents": mv.readme_contents,
            "version_type": version_type(mv.version).value,
            "major": parsed.major,
            "minor": parsed.minor,
            "patch": parsed.patch,
            "prerelease": parsed.prerelease,
            "repository_url": mv.repository_url,
            "vcs_type": mv.vcs_type,
            "homepage_url": mv.homepage_url,
        }
        package_rows = [self._package_row(mv, pkg) for pkg in mv.packages]
        try:
            async with self._engine.begin() as conn:
                await conn.execute(insert(schema.versions).values(**version_row))
                if package_rows:
                    await conn.execute(insert(schema.packages), package_rows)
        except IntegrityError as exc:
            raise InvalidArgumentError(
                f"{mv.module_path}@{mv.version} conflicts with stored data: {exc.orig}",
                target=mv.module_path,
            ) from exc
        except SQLAlchemyError as exc:
            raise InternalError(f"inserting {mv.module_path}@{mv.version}: {exc}") from exc
        logger.info(
            "Inserted %s@%s with %d packages", mv.module_path, mv.version, len(package_rows)
        )

    @staticmethod
    def _package_row(mv: ModuleVersion, pkg: PackageRecord) -> Mapping[str, Any]:
        if pkg.path != mv.module_path and not pkg.path.startswith(mv.module_path + "/"):
            raise InvalidArgumentError(
                f"package {pkg.path} is outside module {mv.module_path}", target=pkg.path
            )
        if len(pkg.license_types) != len(pkg.license_paths):
            raise InvalidArgumentError(
                f"package {pkg.path} has {len(pkg.license_types)} license types "
                f"but {len(pkg.license_paths)} license paths",
                target=pkg.path,
            )
        return {
            "path": pkg.path,
            "module_path": mv.module_path,
            "version": mv.version,
            "name": pkg.name,
            "synopsis": pkg.synopsis,
            "v1_path": pkg.v1_path,
            "documentation": pkg.documentation,
            "license_types": list(pkg.license_types),
            "license_paths": list(pkg.license_paths),
            "redistributable": pkg.redistributable,
        }


def zip_license_metadata(types: Sequence[str], paths: Sequence[str]) -> Tuple[Tuple[str, str], ...]:
    """Pair each license type with its file path.

    Raises:
        InternalError: The two sequences differ in length.
    """
    if len(types) != len(paths):
        raise InternalError(
            f"license types and paths differ in length: {len(types)} != {len(paths)}"
        )
    return tuple(zip(types, paths))
