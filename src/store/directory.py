"""Directory resolution: which module and packages a path belongs to at a version.

Packages are returned for a directory path D if:
(1) the package path is D or has the prefix D+"/", and
(2) D+"/" has the prefix M+"/" for the package's module M.

For example, the package "golang.org/x/tools/go/packages" in module
"golang.org/x/tools" matches the directories golang.org/x/tools and
golang.org/x/tools/go, but neither golang.org/x/tools/g nor
golang.org/x/tools/goop.

When a path belongs to several modules (for example "github.com/hashicorp/vault/api"
is both its own module and a directory of "github.com/hashicorp/vault"), only
the module with the longest path is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.sql.expression import ColumnElement, Select, Subquery

from common.errors import AmbiguousOwnerError, InternalError, InvalidArgumentError, NotFoundError
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants
from models import Directory, LicenseMetadata, Readme, SourceInfo, VersionedPackage
from versioning.models import VersionType
from versioning.parser import parse_version
from . import schema
from .db import DB, zip_license_metadata

logger = logging.getLogger(__name__)


def _has_prefix(column: ColumnElement, prefix: str) -> ColumnElement:
    # Case-sensitive on every backend and free of LIKE wildcards.
    return func.substr(column, 1, len(prefix)) == prefix


@dataclass(frozen=True)
class DirectoryQuery:
    """Parameters of a directory lookup and the statement they produce.

    ``version`` is a concrete version or ``Constants.LATEST``.
    """
    dir_path: str
    version: str

    @property
    def is_latest(self) -> bool:
        return self.version == Constants.LATEST

    def candidate_module_paths(self) -> List[str]:
        """Every path that could own ``dir_path``: its prefixes at "/" boundaries."""
        elements = self.dir_path.split("/")
        return ["/".join(elements[:i]) for i in range(1, len(elements) + 1)]

    def statement(self) -> Select:
        """Build the package query joined against the selected module versions."""
        v = self._latest_versions() if self.is_latest else self._exact_versions()
        p = schema.packages
        return (
            select(
                p.c.path,
                p.c.version,
                p.c.name,
                p.c.synopsis,
                p.c.v1_path,
                p.c.documentation,
                p.c.license_types,
                p.c.license_paths,
                p.c.redistributable,
                p.c.module_path,
                v.c.readme_file_path,
                v.c.readme_contents,
                v.c.commit_time,
                v.c.version_type,
                v.c.repository_url,
                v.c.vcs_type,
                v.c.homepage_url,
            )
            .join_from(
                p,
                v,
                and_(p.c.module_path == v.c.module_path, p.c.version == v.c.version),
            )
            .where(or_(p.c.path == self.dir_path, _has_prefix(p.c.path, self.dir_path + "/")))
        )

    def _exact_versions(self) -> Subquery:
        v = schema.versions
        return (
            select(v)
            .where(
                v.c.version == self.version,
                v.c.module_path.in_(self.candidate_module_paths()),
            )
            .subquery("v")
        )

    def _latest_versions(self) -> Subquery:
        # One row per module: releases before prereleases, then the highest
        # major, minor and patch, then the highest prerelease string.
        v = schema.versions
        rank = (
            func.row_number()
            .over(
                partition_by=v.c.module_path,
                order_by=(
                    case((v.c.prerelease == "", 0), else_=1),
                    v.c.major.desc(),
                    v.c.minor.desc(),
                    v.c.patch.desc(),
                    v.c.prerelease.desc(),
                ),
            )
            .label("rank")
        )
        ranked = (
            select(v, rank)
            .where(v.c.module_path.in_(self.candidate_module_paths()))
            .subquery("ranked")
        )
        return select(ranked).where(ranked.c.rank == 1).subquery("v")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_dir_path(dir_path: str) -> None:
    """Raise InvalidArgumentError for an empty path or one with empty, "." or ".." elements."""
    if not dir_path:
        raise InvalidArgumentError("empty directory path")
    for element in dir_path.split("/"):
        if element in ("", ".", ".."):
            raise InvalidArgumentError(f"invalid directory path {dir_path!r}", target=dir_path)


def package_from_row(row: Mapping[str, Any]) -> VersionedPackage:
    """Build a VersionedPackage from one row of :meth:`DirectoryQuery.statement`.

    Raises:
        InternalError: The row holds a value no ingested version can produce.
    """
    try:
        kind = VersionType(row["version_type"])
    except ValueError as exc:
        raise InternalError(
            f"stored version type {row['version_type']!r} for {row['path']} is unknown",
            target=row["path"],
        ) from exc
    licenses = tuple(
        LicenseMetadata(types=(license_type,), file_path=file_path)
        for license_type, file_path in zip_license_metadata(
            row["license_types"] or [], row["license_paths"] or []
        )
    )
    readme = None
    if row["readme_file_path"]:
        readme = Readme(file_path=row["readme_file_path"], contents=row["readme_contents"] or "")
    return VersionedPackage(
        path=row["path"],
        name=row["name"] or "",
        synopsis=row["synopsis"] or "",
        module_path=row["module_path"],
        version=row["version"],
        commit_time=_utc(row["commit_time"]),
        version_type=kind,
        v1_path=row["v1_path"] or "",
        documentation=row["documentation"] or "",
        is_redistributable=bool(row["redistributable"]),
        licenses=licenses,
        readme=readme,
        source=SourceInfo(
            repository_url=row["repository_url"] or "",
            vcs_type=row["vcs_type"] or "",
            homepage_url=row["homepage_url"] or "",
        ),
    )


def keep_owning_module(dir_path: str, packages: List[VersionedPackage]) -> List[VersionedPackage]:
    """Drop every package not in the most specific module among ``packages``."""
    longest = max(len(pkg.module_path) for pkg in packages)
    owners = sorted({pkg.module_path for pkg in packages if len(pkg.module_path) == longest})
    if len(owners) > 1:
        raise AmbiguousOwnerError(
            f"directory {dir_path} is owned by modules of equal length: {', '.join(owners)}",
            target=dir_path,
        )
    return [pkg for pkg in packages if pkg.module_path == owners[0]]


class DirectoryResolver:
    """Resolves directories against the metadata store. Read-only and stateless."""

    def __init__(self, db: DB):
        self._db = db

    async def get_directory(
        self, dir_path: str, version: str, *, timeout: Optional[float] = None
    ) -> Directory:
        """Return the directory for ``dir_path`` at ``version`` (or ``"latest"``).

        The directory holds every package of the owning module version whose
        path is ``dir_path`` or lies beneath it, sorted by path.

        Raises:
            InvalidArgumentError: Empty or malformed ``dir_path`` or ``version``.
            NotFoundError: No package matches.
            AmbiguousOwnerError: Two modules of equal length own the directory.
        """
        check_dir_path(dir_path)
        if not version:
            raise InvalidArgumentError("empty version", target=dir_path)
        if version != Constants.LATEST:
            parse_version(version)

        query = DirectoryQuery(dir_path=dir_path, version=version)
        packages: List[VersionedPackage] = []
        await self._db.run_query(
            query.statement(),
            lambda row: packages.append(package_from_row(row)),
            timeout=timeout,
        )
        if not packages:
            raise NotFoundError(
                f"packages in directory {dir_path}@{version} not found", target=dir_path
            )

        packages = keep_owning_module(dir_path, packages)
        packages.sort(key=lambda pkg: pkg.path)
        if is_debug_enabled(logger):
            logger.debug(
                "Directory resolved",
                extra=extra_context(
                    event="directory_resolved",
                    component="directory",
                    dir_path=dir_path,
                    requested=version,
                    module_path=packages[0].module_path,
                    resolved=packages[0].version,
                    count=len(packages),
                ),
            )
        return Directory(
            path=dir_path,
            module_path=packages[0].module_path,
            version=packages[0].version,
            packages=tuple(packages),
        )
