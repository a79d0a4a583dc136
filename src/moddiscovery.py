"""moddiscovery: resolve Go module versions and directories.

Command-line entry point. Proxy commands talk to the module proxy; the
``dir`` command reads the metadata store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Dict

from args import parse_args
from cli_config import apply_cli_overrides
from common.errors import (
    DeadlineExceededError,
    DiscoveryError,
    InvalidArgumentError,
    NotFoundError,
    TransportError,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from models import Directory, RawArchive, VersionInfo
from proxy import Client
from store import DB, DirectoryResolver

logger = logging.getLogger(__name__)


def info_to_dict(info: VersionInfo) -> Dict[str, Any]:
    return {
        "module_path": info.module_path,
        "version": info.version,
        "time": info.time.isoformat(),
    }


def archive_to_dict(archive: RawArchive) -> Dict[str, Any]:
    return {
        "module_path": archive.module_path,
        "version": archive.version,
        "files": [{"path": entry.path, "size": len(entry.content)} for entry in archive],
    }


def directory_to_dict(directory: Directory) -> Dict[str, Any]:
    packages = []
    for pkg in directory.packages:
        data = asdict(pkg)
        data["commit_time"] = pkg.commit_time.isoformat()
        data["version_type"] = pkg.version_type.value
        data["licenses"] = [
            {"types": list(lic.types), "file_path": lic.file_path} for lic in pkg.licenses
        ]
        data.pop("documentation")
        packages.append(data)
    return {
        "path": directory.path,
        "module_path": directory.module_path,
        "version": directory.version,
        "packages": packages,
    }


async def run_command(args) -> Dict[str, Any]:
    """Run the parsed command and return its JSON-serialisable result."""
    if args.COMMAND == "dir":
        db = DB.open(Constants.DATABASE_URL)
        try:
            directory = await DirectoryResolver(db).get_directory(args.path, args.version)
        finally:
            await db.close()
        return directory_to_dict(directory)

    async with Client(Constants.PROXY_URL) as client:
        if args.COMMAND == "info":
            return info_to_dict(await client.get_info(args.module, args.version))
        if args.COMMAND == "versions":
            versions = await client.list_versions(args.module)
            return {"module_path": args.module, "versions": versions}
        if args.COMMAND == "zip":
            return archive_to_dict(await client.get_zip(args.module, args.version))
    raise InvalidArgumentError(f"unknown command {args.COMMAND!r}")


def exit_code_for(exc: DiscoveryError) -> ExitCodes:
    """Map an error kind to the process exit code."""
    if isinstance(exc, NotFoundError):
        return ExitCodes.NOT_FOUND
    if isinstance(exc, InvalidArgumentError):
        return ExitCodes.INVALID_ARGUMENT
    if isinstance(exc, (TransportError, DeadlineExceededError)):
        return ExitCodes.CONNECTION_ERROR
    return ExitCodes.INTERNAL_ERROR


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)
    if getattr(args, "LOG_FILE", None):
        file_handler = logging.FileHandler(args.LOG_FILE)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)

    try:
        apply_cli_overrides(args)
    except (OSError, ValueError) as exc:
        logger.error("Could not load configuration: %s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        result = asyncio.run(run_command(args))
    except DiscoveryError as exc:
        logger.error("%s", exc)
        sys.exit(exit_code_for(exc).value)

    sys.stdout.write(json.dumps(result, indent=2) + "\n")
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
