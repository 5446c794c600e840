"""
crew_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime:
    ``get_active_policy()`` for the kernel's SettlementPolicy and
    ``get_database_url()`` for the engine.  No other component reads
    configuration files.

Architecture position:
    Configuration -- sits beside ``crew_services`` above ``crew_kernel``.
    The kernel MUST NEVER import from ``crew_config``.

Failure modes:
    - ``FileNotFoundError`` -- the config file does not exist.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- a value is malformed or out of range.

Audit relevance:
    Every successful load emits a ``CREW_CONFIG_TRACE`` log entry with the
    file path and its SHA-256 checksum, tying every settlement back to the
    exact policy file that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from crew_config.loader import (
    DatabaseSettings,
    compute_checksum,
    load_yaml_file,
    parse_database,
    parse_policy,
)
from crew_kernel.domain.policy import SettlementPolicy

_logger = logging.getLogger("crew_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "settlement.yaml"


def get_active_policy(config_path: Path | str | None = None) -> SettlementPolicy:
    """
    Load the settlement policy.

    Args:
        config_path: YAML file to read.  Defaults to the packaged
            ``crew_config/defaults/settlement.yaml``.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    policy = parse_policy(load_yaml_file(path))
    _trace(path, "policy")
    return policy


def get_database_settings(config_path: Path | str | None = None) -> DatabaseSettings:
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = parse_database(load_yaml_file(path))
    _trace(path, "database")
    return settings


def get_database_url(config_path: Path | str | None = None) -> str:
    return get_database_settings(config_path).url


def _trace(path: Path, section: str) -> None:
    _logger.info(
        "CREW_CONFIG_TRACE",
        extra={
            "trace_type": "CREW_CONFIG_TRACE",
            "config_path": str(path),
            "config_section": section,
            "checksum": compute_checksum(path),
        },
    )


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "get_active_policy",
    "get_database_settings",
    "get_database_url",
]
