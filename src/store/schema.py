"""Table definitions for the module metadata store."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

# One row per module version. major/minor/patch/prerelease are derived from
# the version string at ingestion and only used for ranking; prerelease is
# "" for releases.
versions = Table(
    "versions",
    metadata,
    Column("module_path", String, primary_key=True),
    Column("version", String, primary_key=True),
    Column("commit_time", DateTime(timezone=True), nullable=False),
    Column("readme_file_path", String, nullable=True),
    Column("readme_contents", Text, nullable=True),
    Column("version_type", String, nullable=False),
    Column("major", Integer, nullable=False),
    Column("minor", Integer, nullable=False),
    Column("patch", Integer, nullable=False),
    Column("prerelease", String, nullable=False, default=""),
    Column("repository_url", String, nullable=True),
    Column("vcs_type", String, nullable=True),
    Column("homepage_url", String, nullable=True),
)

# One row per directory of a module version; name is "" for directories that
# are not packages. license_types[i] belongs to the file license_paths[i].
packages = Table(
    "packages",
    metadata,
    Column("path", String, primary_key=True),
    Column("module_path", String, primary_key=True),
    Column("version", String, primary_key=True),
    Column("name", String, nullable=False, default=""),
    Column("synopsis", Text, nullable=False, default=""),
    Column("v1_path", String, nullable=False, default=""),
    Column("documentation", Text, nullable=False, default=""),
    Column("license_types", JSON, nullable=False, default=list),
    Column("license_paths", JSON, nullable=False, default=list),
    Column("redistributable", Boolean, nullable=False, default=False),
    ForeignKeyConstraint(
        ["module_path", "version"],
        ["versions.module_path", "versions.version"],
        ondelete="CASCADE",
    ),
)

Index("packages_path_idx", packages.c.path)
