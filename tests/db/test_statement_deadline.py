"""
statement_deadline() caps the statements of one call.

The timeout itself is only enforced on PostgreSQL; the PostgreSQL tests
skip elsewhere.
"""

import pytest
from sqlalchemy import text

from stock_kernel.db.deadline import statement_deadline, supports_statement_timeout
from stock_kernel.db.errors import store_errors
from stock_kernel.domain.dtos import MovementRequest
from stock_kernel.domain.values import MovementType
from stock_kernel.exceptions import StoreUnavailableError
from stock_kernel.services.stock_ledger import StockLedgerService
from stock_kernel.stores.balance_store import BalanceStore


def _current_timeout(session) -> str:
    return session.execute(text("SHOW statement_timeout")).scalar_one()


class SlowBalanceStore(BalanceStore):
    def get_balance(self, item_id):
        with store_errors("get_balance"):
            self._session.execute(text("SELECT pg_sleep(0.5)"))
        return super().get_balance(item_id)


@pytest.fixture
def postgres_only(is_postgres):
    if not is_postgres:
        pytest.skip("requires PostgreSQL (set DATABASE_URL)")


class TestArguments:
    @pytest.mark.parametrize("timeout_ms", [0, -5, True, 1.5])
    def test_invalid_timeout(self, session, timeout_ms):
        with pytest.raises(ValueError):
            with statement_deadline(session, timeout_ms):
                pass

    def test_none_runs_block(self, session):
        ran = []
        with statement_deadline(session, None):
            ran.append(True)

        assert ran == [True]

    def test_positive_timeout_runs_block(self, session):
        with statement_deadline(session, 1_000):
            assert session.execute(text("SELECT 1")).scalar_one() == 1

    def test_backend_detection(self, session, is_postgres):
        assert supports_statement_timeout(session) is is_postgres


@pytest.mark.postgres
@pytest.mark.usefixtures("postgres_only")
class TestPostgresDeadline:
    def test_setting_restored_after_block(self, session):
        before = _current_timeout(session)

        with statement_deadline(session, 250):
            assert _current_timeout(session) == "250ms"

        assert _current_timeout(session) == before

    def test_overrun_becomes_store_unavailable(self, session):
        before = _current_timeout(session)

        with pytest.raises(StoreUnavailableError) as exc_info:
            with statement_deadline(session, 50):
                with store_errors("sleep"):
                    session.execute(text("SELECT pg_sleep(0.5)"))

        assert exc_info.value.retryable is True
        assert _current_timeout(session) == before

    def test_ledger_call_times_out(
        self, session, permission_gate, clock, telemetry, make_item, staff_id, inventory_selector
    ):
        item = make_item(current_stock=10)
        slow = StockLedgerService(
            session,
            permission_gate,
            clock=clock,
            telemetry=telemetry,
            balance_store=SlowBalanceStore(session),
        )

        with pytest.raises(StoreUnavailableError):
            slow.record_movement(
                MovementRequest(item.id, MovementType.SALE, -1, performed_by=staff_id),
                timeout_ms=50,
            )

        assert telemetry.failures[-1][0] == "record_movement"
        assert inventory_selector.get_item(item.id).current_stock == 10

    def test_ledger_call_leaves_session_timeout_unchanged(self, session, ledger, make_item, staff_id):
        item = make_item(current_stock=10)
        before = _current_timeout(session)

        ledger.record_movement(
            MovementRequest(item.id, MovementType.SALE, -1, performed_by=staff_id),
            timeout_ms=2_000,
        )

        assert _current_timeout(session) == before
