from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.entities import CASH_SESSION_CLOSED, Expense, Sale, Withdrawal
from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.core.database import SessionLocal
from app.models.cash_session import CashSession as CashSessionRow
from app.services.cash_cut_service import CashCutService, RetentionPolicy
from app.services.cash_session_service import CashSessionLedger, expected_closing_balance
from app.services.json_store import CASH_CUTS, CASH_SESSIONS, JsonFileRepository


@pytest.fixture
def ledger(repository, cash_cuts):
    return CashSessionLedger(repository, cash_cuts)


def test_open_rejects_negative_balance(ledger):
    with pytest.raises(ValidationError):
        ledger.open(Decimal("-1"))
    assert ledger.current() is None


def test_only_one_open_session(ledger):
    first = ledger.open(Decimal("500"), opened_by="caja1")
    with pytest.raises(ConflictError):
        ledger.open(Decimal("100"), opened_by="caja2")
    assert ledger.current().id == first.id


@pytest.mark.parametrize("amount", [Decimal("-5"), Decimal("0")])
def test_withdrawal_must_be_positive(ledger, amount):
    session = ledger.open(Decimal("200"))
    with pytest.raises(ValidationError):
        ledger.record_withdrawal(session.id, amount, "cambio")
    assert ledger.get(session.id).withdrawals == []


def test_withdrawal_is_appended(ledger):
    session = ledger.open(Decimal("200"))
    ledger.record_withdrawal(session.id, Decimal("50"), "pago a proveedor", who="gerente")

    stored = ledger.get(session.id)
    assert len(stored.withdrawals) == 1
    assert stored.withdrawals[0].amount == Decimal("50.00")
    assert stored.withdrawals[0].withdrawn_by == "gerente"
    assert stored.withdrawals_total == Decimal("50.00")


def test_withdrawal_requires_description_and_known_session(ledger):
    session = ledger.open(Decimal("200"))
    with pytest.raises(ValidationError):
        ledger.record_withdrawal(session.id, Decimal("10"), "  ")
    with pytest.raises(NotFoundError):
        ledger.record_withdrawal("missing", Decimal("10"), "cambio")


def test_close_computes_expected_balance_and_variance(ledger, repository):
    session = ledger.open(Decimal("100"))
    repository.add_sale(Sale(total=Decimal("50"), payment_method="efectivo"))
    repository.add_sale(Sale(total=Decimal("30"), payment_method="tarjeta"))
    repository.add_expense(Expense(amount=Decimal("20"), payment_method="efectivo"))
    repository.add_expense(Expense(amount=Decimal("5"), payment_method="efectivo", status="pendiente"))
    repository.add_expense(Expense(amount=Decimal("7"), payment_method="transferencia"))
    ledger.record_withdrawal(session.id, Decimal("10"), "depósito")

    report = ledger.close(session.id, Decimal("115"), closed_by="caja1", notes="fin de turno")

    assert report.cash_session_id == session.id
    assert report.opening_balance == Decimal("100.00")
    assert report.cash_sales == Decimal("50.00")
    assert report.cash_expenses == Decimal("20.00")
    assert report.withdrawals_total == Decimal("10.00")
    assert report.expected_closing_balance == Decimal("120.00")
    assert report.counted_cash == Decimal("115.00")
    assert report.variance == Decimal("-5.00")
    assert report.total_sales == Decimal("80.00")
    assert report.total_expenses == Decimal("27.00")

    closed = ledger.get(session.id)
    assert closed.status == CASH_SESSION_CLOSED
    assert closed.expected_closing_balance == Decimal("120.00")
    assert ledger.current() is None
    assert repository.get_cash_cut_report(report.id).variance == Decimal("-5.00")


def test_closed_session_rejects_changes(ledger):
    session = ledger.open(Decimal("100"))
    ledger.close(session.id, Decimal("100"))
    with pytest.raises(ConflictError):
        ledger.close(session.id, Decimal("100"))
    with pytest.raises(ValidationError):
        ledger.record_withdrawal(session.id, Decimal("10"), "tarde")
    # Se puede abrir una nueva caja después del cierre
    assert ledger.open(Decimal("50")).id != session.id


def test_session_close_does_not_move_period_cuts(ledger, repository):
    session = ledger.open(Decimal("100"))
    ledger.close(session.id, Decimal("100"))
    assert repository.latest_cash_cut_report() is None


def test_expected_closing_balance_formula():
    assert expected_closing_balance(
        Decimal("100"), Decimal("250.50"), Decimal("40"), Decimal("60.25"),
    ) == Decimal("250.25")


def test_partial_unique_index_allows_a_single_open_row(sql_repository):
    db = SessionLocal()
    try:
        db.add(CashSessionRow(id="cerrada-1", opening_balance=0, status="closed"))
        db.add(CashSessionRow(id="cerrada-2", opening_balance=0, status="closed"))
        db.add(CashSessionRow(id="abierta-1", opening_balance=0, status="open"))
        db.commit()

        db.add(CashSessionRow(id="abierta-2", opening_balance=0, status="open"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
    finally:
        db.close()


def test_stale_withdrawal_on_closed_session_is_rejected(ledger, repository):
    session = ledger.open(Decimal("100"))
    stale = repository.get_cash_session(session.id)
    ledger.close(session.id, Decimal("100"))

    stale.withdrawals.append(Withdrawal(cash_session_id=session.id, amount=Decimal("10"), description="tarde"))
    with pytest.raises(ValidationError):
        repository.persist_cash_session(stale)
    assert repository.get_cash_session(session.id).withdrawals == []


class FlakyJsonRepository(JsonFileRepository):
    """Falla al escribir el archivo `fail_on` una vez activado."""

    fail_on = None

    def _write(self, name, rows):
        if name == self.fail_on:
            raise PersistenceError(f"No se pudo escribir {name}: disco lleno")
        super()._write(name, rows)


@pytest.mark.parametrize("fail_on", [CASH_SESSIONS, CASH_CUTS])
def test_json_close_keeps_session_open_when_a_write_fails(tmp_path, tariff, fail_on):
    repository = FlakyJsonRepository(str(tmp_path / "data"))
    ledger = CashSessionLedger(
        repository, CashCutService(repository, tariff, "America/Mexico_City", RetentionPolicy(100)),
    )
    session = ledger.open(Decimal("100"))
    repository.fail_on = fail_on

    with pytest.raises(PersistenceError):
        ledger.close(session.id, Decimal("100"))

    repository.fail_on = None
    assert ledger.current().id == session.id
    assert repository.get_cash_session(session.id).counted_cash is None
    assert repository.list_cash_cut_reports(include_archived=True) == []
    # Se puede cerrar de nuevo cuando el almacenamiento se recupera
    report = ledger.close(session.id, Decimal("100"))
    assert repository.get_cash_cut_report(report.id) is not None
