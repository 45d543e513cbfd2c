"""
Config -> kernel bridges.

Functions that turn a ``StockLedgerConfig`` into kernel objects.  They live
here because the kernel must never import ``stock_config``.

Usage:
    config = get_active_config()
    init_engine_from_config(config)
    with session_scope() as session:
        gate = build_permission_gate(config, role_resolver)
        ledger = build_stock_ledger(session, gate)
        ledger.record_movement(request)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stock_config.schema import StockLedgerConfig
from stock_kernel.db.engine import init_engine_from_url
from stock_kernel.domain.clock import Clock
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementQueryService
from stock_kernel.services.batch_processor import BatchProcessor
from stock_kernel.services.permission_gate import RolePermissionGate, RoleResolver
from stock_kernel.services.stock_ledger import StockLedgerService
from stock_kernel.services.telemetry import TelemetrySink


def init_engine_from_config(config: StockLedgerConfig) -> Engine:
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        statement_timeout_ms=db.statement_timeout_ms,
    )


def build_permission_gate(
    config: StockLedgerConfig,
    role_resolver: RoleResolver,
) -> RolePermissionGate:
    return RolePermissionGate(
        role_resolver=role_resolver,
        role_actions=config.permissions.role_actions,
        system_actions=config.permissions.system_actions,
    )


def build_stock_ledger(
    session: Session,
    permission_gate: RolePermissionGate,
    clock: Clock | None = None,
    telemetry: TelemetrySink | None = None,
) -> StockLedgerService:
    return StockLedgerService(
        session,
        permission_gate,
        clock=clock,
        telemetry=telemetry,
    )


def build_batch_processor(
    config: StockLedgerConfig,
    ledger: StockLedgerService,
    telemetry: TelemetrySink | None = None,
) -> BatchProcessor:
    return BatchProcessor(
        ledger,
        max_batch_size=config.ledger.max_batch_size,
        telemetry=telemetry,
    )


def build_movement_selector(
    config: StockLedgerConfig,
    session: Session,
    permission_gate: RolePermissionGate,
    telemetry: TelemetrySink | None = None,
) -> MovementQueryService:
    return MovementQueryService(
        session,
        permission_gate,
        default_page_size=config.query.default_page_size,
        max_page_size=config.query.max_page_size,
        telemetry=telemetry,
    )


def build_inventory_selector(
    config: StockLedgerConfig,
    session: Session,
) -> InventorySelector:
    return InventorySelector(session, overstock_ratio=config.alerts.overstock_ratio)
