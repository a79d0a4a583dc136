"""Go module proxy client package.

Fetches version info, version lists and module zips from a module proxy
and reports absence and protocol failures as typed errors.
"""

from .client import Client
from .escape import escape_path, escape_version, unescape

__all__ = [
    "Client",
    "escape_path",
    "escape_version",
    "unescape",
]
