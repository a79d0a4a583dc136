"""Tests for directory resolution against the metadata store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text, update

from common.errors import (
    AmbiguousOwnerError,
    Canceled,
    DeadlineExceededError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
)
from models import VersionedPackage
from store import DB, DirectoryQuery, DirectoryResolver, ModuleVersion, PackageRecord, schema
from store.db import zip_license_metadata
from store.directory import keep_owning_module
from versioning.models import VersionType
from versioning.parser import latest_version

MEMORY_URL = "sqlite+aiosqlite://"
COMMIT_TIME = datetime(2019, 1, 30, tzinfo=timezone.utc)


def _pkg(path, name=None, **kwargs):
    if name is None:
        name = path.rsplit("/", 1)[-1]
    return PackageRecord(path=path, name=name, synopsis=f"package {name}", **kwargs)


def _tools(version, *paths, time=COMMIT_TIME):
    return ModuleVersion(
        module_path="golang.org/x/tools",
        version=version,
        commit_time=time,
        packages=[_pkg(f"golang.org/x/tools/{p}") for p in paths],
    )


def tools_versions():
    return [
        _tools("v1.1.0", "go/packages", "go/analysis", "goop", "cmd/godoc"),
        _tools(
            "v1.2.0-beta.1",
            "go/packages",
            "go/analysis",
            "go/newpkg",
            "goop",
            "cmd/godoc",
            time=COMMIT_TIME + timedelta(days=30),
        ),
    ]


def vault_versions():
    vault = "github.com/hashicorp/vault"
    return [
        ModuleVersion(
            module_path=vault,
            version="v1.0.3",
            commit_time=COMMIT_TIME,
            packages=[
                _pkg(vault, name="main"),
                _pkg(f"{vault}/api"),
                _pkg(f"{vault}/builtin/audit/file"),
                _pkg(f"{vault}/builtin/audit/socket"),
                _pkg(f"{vault}/vault"),
            ],
        ),
        ModuleVersion(
            module_path=f"{vault}/api",
            version="v1.0.3",
            commit_time=COMMIT_TIME,
            packages=[_pkg(f"{vault}/api")],
        ),
    ]


async def _seeded_db(versions):
    db = DB.open(MEMORY_URL)
    try:
        await db.create_schema()
        for mv in versions:
            await db.insert_version(mv)
    except BaseException:
        await db.close()
        raise
    return db


def resolve(versions, dir_path, version="latest"):
    """Seed a fresh in-memory store and resolve one directory."""
    async def _run():
        db = await _seeded_db(versions)
        try:
            return await DirectoryResolver(db).get_directory(dir_path, version)
        finally:
            await db.close()

    return asyncio.run(_run())


def paths(directory):
    return [pkg.path for pkg in directory.packages]


class TestDirectoryMatching:
    """Tests for which packages belong to a directory."""

    def test_latest_picks_release_over_newer_prerelease(self):
        """Latest resolves to v1.1.0 even though v1.2.0-beta.1 is newer."""
        directory = resolve(tools_versions(), "golang.org/x/tools/go")

        assert directory.module_path == "golang.org/x/tools"
        assert directory.version == "v1.1.0"
        assert paths(directory) == [
            "golang.org/x/tools/go/analysis",
            "golang.org/x/tools/go/packages",
        ]

    def test_exact_version(self):
        """An explicit version selects that version's packages."""
        directory = resolve(tools_versions(), "golang.org/x/tools/go", "v1.2.0-beta.1")

        assert directory.version == "v1.2.0-beta.1"
        assert paths(directory) == [
            "golang.org/x/tools/go/analysis",
            "golang.org/x/tools/go/newpkg",
            "golang.org/x/tools/go/packages",
        ]

    def test_module_root_lists_every_package(self):
        directory = resolve(tools_versions(), "golang.org/x/tools", "v1.1.0")

        assert paths(directory) == [
            "golang.org/x/tools/cmd/godoc",
            "golang.org/x/tools/go/analysis",
            "golang.org/x/tools/go/packages",
            "golang.org/x/tools/goop",
        ]

    def test_path_is_a_package(self):
        """A directory that is itself a package includes that package."""
        directory = resolve(tools_versions(), "golang.org/x/tools/go/packages")

        assert paths(directory) == ["golang.org/x/tools/go/packages"]

    def test_partial_element_is_not_found(self):
        """Prefix matching happens only at path element boundaries."""
        with pytest.raises(NotFoundError):
            resolve(tools_versions(), "golang.org/x/tools/g")

    def test_sibling_with_common_prefix_excluded(self):
        """goop is not inside the go directory."""
        directory = resolve(tools_versions(), "golang.org/x/tools/go", "v1.1.0")

        assert "golang.org/x/tools/goop" not in paths(directory)

    def test_unknown_version_is_not_found(self):
        with pytest.raises(NotFoundError):
            resolve(tools_versions(), "golang.org/x/tools/go", "v9.9.9")

    def test_path_above_module_is_not_found(self):
        """A directory above every module root belongs to no module."""
        with pytest.raises(NotFoundError):
            resolve(tools_versions(), "golang.org/x")

    def test_matching_is_case_sensitive(self):
        with pytest.raises(NotFoundError):
            resolve(tools_versions(), "golang.org/x/Tools/go")

    def test_like_wildcards_are_literal(self):
        """'_' and '%' in a path match only themselves."""
        versions = [
            ModuleVersion(
                module_path="example.com/aXb",
                version="v1.0.0",
                commit_time=COMMIT_TIME,
                packages=[_pkg("example.com/aXb/pkg")],
            ),
            ModuleVersion(
                module_path="example.com/a_b",
                version="v1.0.0",
                commit_time=COMMIT_TIME,
                packages=[_pkg("example.com/a_b/pkg")],
            ),
        ]

        directory = resolve(versions, "example.com/a_b")

        assert paths(directory) == ["example.com/a_b/pkg"]
        with pytest.raises(NotFoundError):
            resolve(versions[:1], "example.com/a_b")
        with pytest.raises(NotFoundError):
            resolve(versions[:1], "example.com/a%")


class TestOwningModule:
    """Tests for nested modules."""

    def test_nested_module_wins(self):
        """vault/api is served by its own module, not by vault."""
        directory = resolve(vault_versions(), "github.com/hashicorp/vault/api")

        assert directory.module_path == "github.com/hashicorp/vault/api"
        assert paths(directory) == ["github.com/hashicorp/vault/api"]
        assert directory.packages[0].is_module()

    def test_outer_module_keeps_its_own_packages(self):
        """The outer module's copy of a nested directory is still listed from the outer root."""
        directory = resolve(vault_versions(), "github.com/hashicorp/vault")

        assert directory.module_path == "github.com/hashicorp/vault"
        assert paths(directory) == [
            "github.com/hashicorp/vault",
            "github.com/hashicorp/vault/api",
            "github.com/hashicorp/vault/builtin/audit/file",
            "github.com/hashicorp/vault/builtin/audit/socket",
            "github.com/hashicorp/vault/vault",
        ]
        assert {pkg.module_path for pkg in directory.packages} == {"github.com/hashicorp/vault"}

    def test_intermediate_directory(self):
        directory = resolve(vault_versions(), "github.com/hashicorp/vault/builtin")

        assert directory.module_path == "github.com/hashicorp/vault"
        assert paths(directory) == [
            "github.com/hashicorp/vault/builtin/audit/file",
            "github.com/hashicorp/vault/builtin/audit/socket",
        ]

    def test_keep_owning_module_rejects_equal_length_owners(self):
        """Two distinct owners of equal length cannot be ordered."""
        def pkg(module_path):
            return VersionedPackage(
                path="a.com/x",
                name="x",
                synopsis="",
                module_path=module_path,
                version="v1.0.0",
                commit_time=COMMIT_TIME,
                version_type=VersionType.RELEASE,
            )

        with pytest.raises(AmbiguousOwnerError) as excinfo:
            keep_owning_module("a.com/x", [pkg("a.com/m"), pkg("b.com/m")])
        assert isinstance(excinfo.value, InternalError)


class TestLatestRanking:
    """Tests for the store's latest-version selection."""

    def test_numeric_ordering(self):
        """v1.10.0 outranks v1.9.0."""
        versions = [_tools("v1.9.0", "go/packages"), _tools("v1.10.0", "go/packages")]

        assert resolve(versions, "golang.org/x/tools/go").version == "v1.10.0"

    def test_only_prereleases(self):
        """Without releases the highest prerelease wins."""
        versions = [
            _tools("v1.0.0-alpha", "go/packages"),
            _tools("v1.0.0-beta", "go/packages"),
            _tools("v0.9.0-rc.1", "go/packages"),
        ]

        assert resolve(versions, "golang.org/x/tools/go").version == "v1.0.0-beta"

    @pytest.mark.parametrize("stored", [
        ["v1.0.0", "v2.0.0-alpha", "v1.10.0"],
        ["v0.1.0", "v0.0.0-20190101000000-abcdef123456"],
        ["v2.0.0-rc.2", "v2.0.0-rc.10", "v1.5.0-beta"],
        ["v1.2.3", "v1.2.3-pre"],
    ])
    def test_agrees_with_latest_version(self, stored):
        """The store and the in-process ranking pick the same version."""
        versions = [_tools(v, "go/packages") for v in stored]

        assert resolve(versions, "golang.org/x/tools/go").version == latest_version(stored)


class TestPackageFields:
    """Tests for the data carried on each resolved package."""

    def test_module_data_is_denormalized(self):
        versions = [
            ModuleVersion(
                module_path="github.com/my/module",
                version="v1.0.0",
                commit_time=COMMIT_TIME,
                readme_file_path="README.md",
                readme_contents="README file for testing.",
                repository_url="https://github.com/my/module",
                vcs_type="git",
                homepage_url="https://my.example.com",
                packages=[
                    PackageRecord(
                        path="github.com/my/module/foo",
                        name="foo",
                        synopsis="package foo",
                        v1_path="github.com/my/module/foo",
                        documentation="<p>Foo</p>",
                        license_types=["MIT", "BSD-3-Clause"],
                        license_paths=["LICENSE", "foo/LICENSE.md"],
                    ),
                    PackageRecord(path="github.com/my/module/foo/internal", redistributable=False),
                ],
            ),
        ]

        directory = resolve(versions, "github.com/my/module/foo", "v1.0.0")
        foo, internal = directory.packages

        assert foo.name == "foo"
        assert foo.synopsis == "package foo"
        assert foo.v1_path == "github.com/my/module/foo"
        assert foo.documentation == "<p>Foo</p>"
        assert foo.is_redistributable
        assert foo.is_package() and not foo.is_module()
        assert foo.commit_time == COMMIT_TIME
        assert foo.version_type == VersionType.RELEASE
        assert [(lic.types, lic.file_path) for lic in foo.licenses] == [
            (("MIT",), "LICENSE"),
            (("BSD-3-Clause",), "foo/LICENSE.md"),
        ]
        assert foo.readme.file_path == "README.md"
        assert foo.readme.contents == "README file for testing."
        assert foo.source.repository_url == "https://github.com/my/module"
        assert foo.source.vcs_type == "git"
        assert foo.source.homepage_url == "https://my.example.com"

        assert not internal.is_package()
        assert not internal.is_redistributable
        assert internal.licenses == ()

    def test_commit_time_is_utc(self):
        """Offsets are normalized to UTC on the way in."""
        local = datetime(2019, 1, 30, 9, 0, tzinfo=timezone(timedelta(hours=9)))
        versions = [_tools("v1.0.0", "go/packages", time=local)]

        pkg = resolve(versions, "golang.org/x/tools/go").packages[0]

        assert pkg.commit_time == datetime(2019, 1, 30, 0, 0, tzinfo=timezone.utc)
        assert pkg.commit_time.tzinfo == timezone.utc

    def test_pseudo_version_type(self):
        versions = [_tools("v0.0.0-20190101000000-abcdef123456", "go/packages")]

        pkg = resolve(versions, "golang.org/x/tools/go").packages[0]

        assert pkg.version_type == VersionType.PSEUDO
        assert pkg.readme is None


class TestInvalidInput:
    """Tests for argument validation and store failures."""

    @pytest.mark.parametrize("dir_path", [
        "",
        "/golang.org/x/tools",
        "golang.org/x/tools/",
        "golang.org//tools",
        "golang.org/x/../tools",
        "golang.org/x/./tools",
        "..",
    ])
    def test_invalid_dir_path(self, dir_path):
        with pytest.raises(InvalidArgumentError):
            resolve(tools_versions(), dir_path)

    def test_empty_version(self):
        with pytest.raises(InvalidArgumentError):
            resolve(tools_versions(), "golang.org/x/tools", "")

    @pytest.mark.parametrize("version", ["not-a-version", "1.1.0", "v1.1", "Latest"])
    def test_malformed_version(self, version):
        """A malformed version is the caller's mistake, not a missing directory."""
        with pytest.raises(InvalidArgumentError):
            resolve(tools_versions(), "golang.org/x/tools/go", version)

    def test_missing_schema_is_internal(self):
        """A store without tables fails with InternalError, not NotFoundError."""
        async def _run():
            db = DB.open(MEMORY_URL)
            try:
                await DirectoryResolver(db).get_directory("golang.org/x/tools", "latest")
            finally:
                await db.close()

        with pytest.raises(InternalError):
            asyncio.run(_run())


class TestStoreFailures:
    """Tests for deadlines, cancellation and corrupt rows."""

    def test_deadline_exceeded(self):
        """A query past its deadline is DeadlineExceededError, never NotFoundError."""
        async def _run():
            db = await _seeded_db(tools_versions())
            try:
                await DirectoryResolver(db).get_directory("golang.org/x/tools/go", "latest", timeout=1e-9)
            finally:
                await db.close()

        with pytest.raises(DeadlineExceededError):
            asyncio.run(_run())

    def test_cancel(self):
        """Cancelling the task aborts the lookup with CancelledError."""
        async def _run():
            db = await _seeded_db(tools_versions())
            try:
                task = asyncio.ensure_future(
                    DirectoryResolver(db).get_directory("golang.org/x/tools/go", "latest")
                )
                await asyncio.sleep(0)
                task.cancel()
                with pytest.raises(Canceled):
                    await task
                return task.cancelled()
            finally:
                await db.close()

        assert asyncio.run(_run()) is True

    def _resolve_corrupted(self, statement):
        async def _run():
            db = await _seeded_db(tools_versions())
            try:
                async with db.engine.begin() as conn:
                    await conn.execute(statement)
                await DirectoryResolver(db).get_directory("golang.org/x/tools/go", "v1.1.0")
            finally:
                await db.close()

        asyncio.run(_run())

    def test_unknown_version_type(self):
        with pytest.raises(InternalError):
            self._resolve_corrupted(update(schema.versions).values(version_type="bogus"))

    def test_undecodable_license_column(self):
        with pytest.raises(InternalError):
            self._resolve_corrupted(text("UPDATE packages SET license_types = 'not json'"))


class TestIngestion:
    """Tests for insert_version validation."""

    def _insert(self, *versions):
        async def _run():
            db = await _seeded_db(versions)
            await db.close()

        asyncio.run(_run())

    def test_duplicate_version_rejected(self):
        with pytest.raises(InvalidArgumentError):
            self._insert(_tools("v1.0.0", "go"), _tools("v1.0.0", "cmd"))

    def test_package_outside_module_rejected(self):
        mv = _tools("v1.0.0")
        mv.packages.append(_pkg("golang.org/x/toolsextra/pkg"))

        with pytest.raises(InvalidArgumentError):
            self._insert(mv)

    def test_license_length_mismatch_rejected(self):
        mv = _tools("v1.0.0")
        mv.packages.append(_pkg("golang.org/x/tools/go", license_types=["MIT"], license_paths=[]))

        with pytest.raises(InvalidArgumentError):
            self._insert(mv)

    def test_invalid_version_rejected(self):
        with pytest.raises(InvalidArgumentError):
            self._insert(_tools("1.0.0", "go"))

    def test_zip_license_metadata(self):
        assert zip_license_metadata(["MIT"], ["LICENSE"]) == (("MIT", "LICENSE"),)
        with pytest.raises(InternalError):
            zip_license_metadata(["MIT", "Apache-2.0"], ["LICENSE"])


class TestDirectoryQuery:
    """Tests for DirectoryQuery helpers."""

    def test_candidate_module_paths(self):
        query = DirectoryQuery("golang.org/x/tools/go", "latest")

        assert query.is_latest
        assert query.candidate_module_paths() == [
            "golang.org",
            "golang.org/x",
            "golang.org/x/tools",
            "golang.org/x/tools/go",
        ]

    def test_concrete_version(self):
        assert not DirectoryQuery("golang.org/x/tools", "v1.0.0").is_latest
