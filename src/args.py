"""Argument parsing functionality for moddiscovery."""

import argparse
from constants import Constants


def _add_common(parser):
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Per-call timeout in seconds",
                        action="store",
                        type=float)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="moddiscovery",
        description="Resolve Go module versions and directories",
        add_help=True,
    )
    sub = parser.add_subparsers(dest="COMMAND", required=True)

    info = sub.add_parser("info", help="Show version info from the module proxy")
    info.add_argument("module", help="Module path")
    info.add_argument("version", nargs="?", default=Constants.LATEST,
                      help=f"Version, or '{Constants.LATEST}' (default)")

    versions = sub.add_parser("versions", help="List versions known to the module proxy")
    versions.add_argument("module", help="Module path")

    zip_cmd = sub.add_parser("zip", help="List the files of a module zip")
    zip_cmd.add_argument("module", help="Module path")
    zip_cmd.add_argument("version", help="Concrete version")

    directory = sub.add_parser("dir", help="Resolve a directory from the metadata store")
    directory.add_argument("path", help="Directory path")
    directory.add_argument("version", nargs="?", default=Constants.LATEST,
                           help=f"Version, or '{Constants.LATEST}' (default)")

    for cmd in (info, versions, zip_cmd):
        cmd.add_argument("--proxy",
                         dest="PROXY_URL",
                         help="Module proxy base URL",
                         action="store",
                         type=str)
        _add_common(cmd)
    directory.add_argument("--database",
                           dest="DATABASE_URL",
                           help="SQLAlchemy async database URL",
                           action="store",
                           type=str)
    _add_common(directory)

    return parser.parse_args(argv)
