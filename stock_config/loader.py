"""
Configuration loader (``stock_config.loader``).

Loads a YAML configuration set and parses it into the frozen dataclasses of
``stock_config.schema``.  Runtime callers use ``stock_config.get_active_config``
instead of calling this module directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (unknown action, non-positive sizes)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AlertSettings,
    DatabaseSettings,
    LedgerSettings,
    PermissionSettings,
    QuerySettings,
    StockLedgerConfig,
)

KNOWN_ACTIONS = frozenset({"read_movements", "record_movements"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 10)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
        statement_timeout_ms=data.get("statement_timeout_ms"),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    max_batch_size = data.get("max_batch_size", 500)
    if max_batch_size is not None and int(max_batch_size) <= 0:
        raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")
    return LedgerSettings(
        max_batch_size=int(max_batch_size) if max_batch_size is not None else None
    )


def parse_query(data: dict[str, Any]) -> QuerySettings:
    settings = QuerySettings(
        default_page_size=int(data.get("default_page_size", 50)),
        max_page_size=int(data.get("max_page_size", 500)),
    )
    if settings.default_page_size <= 0 or settings.max_page_size <= 0:
        raise ValueError("page sizes must be positive")
    if settings.default_page_size > settings.max_page_size:
        raise ValueError(
            f"default_page_size {settings.default_page_size} exceeds "
            f"max_page_size {settings.max_page_size}"
        )
    return settings


def _parse_actions(actions: Any, where: str) -> tuple[str, ...]:
    parsed = tuple(str(a) for a in (actions or ()))
    unknown = set(parsed) - KNOWN_ACTIONS
    if unknown:
        raise ValueError(f"Unknown actions in {where}: {sorted(unknown)}")
    return parsed


def parse_permissions(data: dict[str, Any]) -> PermissionSettings:
    roles = data.get("roles") or {}
    return PermissionSettings(
        role_actions={
            role: _parse_actions(actions, f"role {role!r}")
            for role, actions in roles.items()
        },
        system_actions=_parse_actions(data.get("system_actions"), "system_actions"),
    )


def parse_alerts(data: dict[str, Any]) -> AlertSettings:
    ratio = Decimal(str(data.get("overstock_ratio", "0.9")))
    if not Decimal("0") < ratio <= Decimal("1"):
        raise ValueError(f"overstock_ratio must be in (0, 1], got {ratio}")
    return AlertSettings(overstock_ratio=ratio)


def parse_config(data: dict[str, Any]) -> StockLedgerConfig:
    return StockLedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        database=parse_database(data["database"]),
        ledger=parse_ledger(data.get("ledger") or {}),
        query=parse_query(data.get("query") or {}),
        permissions=parse_permissions(data.get("permissions") or {}),
        alerts=parse_alerts(data.get("alerts") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
