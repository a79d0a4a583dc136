"""CLI configuration overrides for runtime tunables.

Applied after the YAML file and environment, so CLI flags take the highest
precedence.
"""

from __future__ import annotations

import logging

from common.logging_utils import safe_url
from constants import Constants, load_config

logger = logging.getLogger(__name__)


def apply_cli_overrides(args) -> None:
    """Load file/env config, then apply CLI flags onto Constants."""
    load_config(getattr(args, "CONFIG", None))
    if getattr(args, "PROXY_URL", None):
        Constants.PROXY_URL = args.PROXY_URL
    if getattr(args, "DATABASE_URL", None):
        Constants.DATABASE_URL = args.DATABASE_URL
    if getattr(args, "TIMEOUT", None) is not None:
        Constants.REQUEST_TIMEOUT = float(args.TIMEOUT)
        Constants.QUERY_TIMEOUT = float(args.TIMEOUT)
    logger.debug(
        "Effective config: proxy=%s database=%s timeout=%s",
        Constants.PROXY_URL,
        safe_url(Constants.DATABASE_URL),
        Constants.REQUEST_TIMEOUT,
    )
