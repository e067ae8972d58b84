"""
incentive_config -- single public entrypoint for incentive configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    It reads one YAML set (the packaged default, or the file named by the
    caller or by ``INCENTIVE_CONFIG_PATH``) and returns frozen
    ``IncentiveSettings``.

Architecture position:
    Configuration.  Sits beside ``incentive_kernel`` and below
    ``incentive_services``.  The kernel never imports this package; the
    orchestrator hands plain values to kernel services.

Failure modes:
    - ``FileNotFoundError`` -- the named configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every load emits an ``incentive_config_loaded`` log entry carrying
    config_id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from incentive_config.loader import load_yaml_file, parse_settings
from incentive_config.schema import (
    ApprovalSettings,
    ConcurrencySettings,
    DatabaseSettings,
    EligibilitySettings,
    IncentiveSettings,
    OutboxSettings,
)

_logger = logging.getLogger("incentive_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"
CONFIG_PATH_ENV = "INCENTIVE_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> IncentiveSettings:
    """The ONLY public configuration entrypoint."""
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH
    path = Path(path)

    settings = parse_settings(load_yaml_file(path))
    _logger.info(
        "incentive_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(path),
        },
    )
    return settings


__all__ = [
    "CONFIG_PATH_ENV",
    "ApprovalSettings",
    "ConcurrencySettings",
    "DatabaseSettings",
    "EligibilitySettings",
    "IncentiveSettings",
    "OutboxSettings",
    "get_active_config",
]
