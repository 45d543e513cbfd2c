"""Write side: stock ledger, batch processor, permission gate, telemetry."""

from stock_kernel.services.batch_processor import BatchProcessor
from stock_kernel.services.permission_gate import (
    AllowAllPermissionGate,
    PermissionGate,
    RolePermissionGate,
)
from stock_kernel.services.stock_ledger import StockLedgerService
from stock_kernel.services.telemetry import (
    LoggingTelemetrySink,
    NullTelemetrySink,
    TelemetrySink,
)

__all__ = [
    "AllowAllPermissionGate",
    "BatchProcessor",
    "LoggingTelemetrySink",
    "NullTelemetrySink",
    "PermissionGate",
    "RolePermissionGate",
    "StockLedgerService",
    "TelemetrySink",
]
