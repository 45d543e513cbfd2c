"""
Configuration schema (``stock_config.schema``).

Frozen dataclasses describing one stock ledger configuration set.  Parsed
from YAML by ``stock_config.loader``; consumed by ``stock_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    statement_timeout_ms: int | None = None


@dataclass(frozen=True)
class LedgerSettings:
    max_batch_size: int | None = 500


@dataclass(frozen=True)
class QuerySettings:
    default_page_size: int = 50
    max_page_size: int = 500


@dataclass(frozen=True)
class PermissionSettings:
    """
    Role -> movement actions.

    ``system_actions`` are granted to system-generated requests (no actor).
    """

    role_actions: dict[str, tuple[str, ...]] = field(default_factory=dict)
    system_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class AlertSettings:
    overstock_ratio: Decimal = Decimal("0.9")


@dataclass(frozen=True)
class StockLedgerConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    database: DatabaseSettings
    ledger: LedgerSettings
    query: QuerySettings
    permissions: PermissionSettings
    alerts: AlertSettings
    checksum: str = ""
