"""Module metadata store and the directory resolver that reads it."""

from .db import DB, ModuleVersion, PackageRecord
from .directory import DirectoryQuery, DirectoryResolver

__all__ = [
    "DB",
    "ModuleVersion",
    "PackageRecord",
    "DirectoryQuery",
    "DirectoryResolver",
]
