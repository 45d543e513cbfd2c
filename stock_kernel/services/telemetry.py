"""
Telemetry sink -- optional success/failure reporting.

Telemetry is never on the correctness path.  ``report_success`` and
``report_failure`` wrap the sink so that a failing sink is logged and
otherwise ignored.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stock_kernel.logging_config import get_logger

logger = get_logger("services.telemetry")

EVENT_OPERATION_SUCCEEDED = "operation_succeeded"
EVENT_OPERATION_FAILED = "operation_failed"


class TelemetrySink(ABC):
    @abstractmethod
    def record_success(self, operation_name: str) -> None: ...

    @abstractmethod
    def record_failure(self, operation_name: str, error_detail: str) -> None: ...


class NullTelemetrySink(TelemetrySink):
    def record_success(self, operation_name: str) -> None:
        pass

    def record_failure(self, operation_name: str, error_detail: str) -> None:
        pass


class LoggingTelemetrySink(TelemetrySink):
    """Emits telemetry as structured log events for log-based metrics."""

    def record_success(self, operation_name: str) -> None:
        logger.info(
            EVENT_OPERATION_SUCCEEDED,
            extra={
                "observability_event": EVENT_OPERATION_SUCCEEDED,
                "operation_name": operation_name,
            },
        )

    def record_failure(self, operation_name: str, error_detail: str) -> None:
        logger.info(
            EVENT_OPERATION_FAILED,
            extra={
                "observability_event": EVENT_OPERATION_FAILED,
                "operation_name": operation_name,
                "error_detail": error_detail,
            },
        )


def report_success(sink: TelemetrySink | None, operation_name: str) -> None:
    if sink is None:
        return
    try:
        sink.record_success(operation_name)
    except Exception:
        logger.warning(
            "telemetry_sink_failed",
            extra={"operation_name": operation_name, "outcome": "success"},
            exc_info=True,
        )


def report_failure(
    sink: TelemetrySink | None,
    operation_name: str,
    error: BaseException | str,
) -> None:
    if sink is None:
        return
    detail: Any = error
    if isinstance(error, BaseException):
        code = getattr(error, "code", type(error).__name__)
        detail = f"{code}: {error}"
    try:
        sink.record_failure(operation_name, str(detail))
    except Exception:
        logger.warning(
            "telemetry_sink_failed",
            extra={"operation_name": operation_name, "outcome": "failure"},
            exc_info=True,
        )
