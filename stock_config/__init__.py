"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.  The kernel MUST NEVER import from ``stock_config``; bridges
    in this package translate configuration into kernel objects.

Audit relevance:
    Every successful call logs a ``STOCK_CONFIG_TRACE`` entry with the
    config id, version and checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_config
from stock_config.schema import StockLedgerConfig

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_CONFIG_NAME = "default.yaml"

DATABASE_URL_ENV = "STOCK_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> StockLedgerConfig:
    """
    Load, validate and return the active configuration set.

    Args:
        config_path: YAML file to load.  Defaults to stock_config/sets/default.yaml.

    The database URL may be overridden with the ``STOCK_DATABASE_URL``
    environment variable.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        KeyError / ValueError: If the configuration is invalid.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_DIR / _DEFAULT_CONFIG_NAME
    config = parse_config(load_yaml_file(path))

    override_url = os.environ.get(DATABASE_URL_ENV)
    if override_url:
        config = replace(config, database=replace(config.database, url=override_url))

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
            "role_count": len(config.permissions.role_actions),
        },
    )
    return config


__all__ = ["StockLedgerConfig", "get_active_config"]
