from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import SessionLocal
from app.core.entities import (
    COWORKING_ACTIVE,
    COWORKING_FINISHED,
    TRIGGER_MANUAL,
    TRIGGER_SCHEDULER,
    ConsumedExtra,
    CoworkingSession,
    utcnow,
)
from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.services.coworking_service import CoworkingService, repair_session_totals
from app.services.json_store import COWORKING, JsonFileRepository
from app.services.repository import SqlRepository


START = datetime(2026, 3, 10, 16, 0)


@pytest.fixture
def service(repository, tariff):
    return CoworkingService(repository, tariff)


def test_checkout_records_linked_sale(service, repository):
    session = service.start("Ana", start_time=START)
    service.add_extra(session.id, "latte", Decimal("20"), quantity=1, name="Latte")
    service.add_extra(session.id, "latte", Decimal("20"), quantity=1)

    closed, sale = service.checkout(session.id, "tarjeta", end_time=START + timedelta(minutes=63), closed_by="caja")

    assert closed.status == COWORKING_FINISHED
    assert closed.duration_minutes == 60
    assert closed.total == Decimal("98.00")
    assert sale.total == Decimal("98.00")
    assert sale.service == "coworking"
    assert sale.payment_method == "tarjeta"
    assert sale.coworking_session_id == session.id

    stored = repository.get_coworking_session(session.id)
    assert stored.total == Decimal("98.00")
    assert [(e.item_id, e.quantity) for e in stored.consumed_extras] == [("latte", 2)]
    assert [s.id for s in repository.list_sales()] == [sale.id]


def test_remove_extra(service):
    session = service.start("Luis", start_time=START)
    service.add_extra(session.id, "galleta", Decimal("12.50"), quantity=3)
    updated = service.remove_extra(session.id, "galleta", quantity=1)
    assert updated.consumed_extras[0].quantity == 2
    updated = service.remove_extra(session.id, "galleta")
    assert updated.consumed_extras == []
    with pytest.raises(NotFoundError):
        service.remove_extra(session.id, "galleta")


def test_finished_session_is_read_only(service):
    session = service.start("Eva", start_time=START)
    service.checkout(session.id, end_time=START + timedelta(minutes=30))
    with pytest.raises(ConflictError):
        service.checkout(session.id)
    with pytest.raises(ConflictError):
        service.add_extra(session.id, "te", Decimal("18"))


def test_invalid_input(service):
    with pytest.raises(ValidationError):
        service.start("  ")
    session = service.start("Sofía", start_time=START)
    with pytest.raises(ValidationError):
        service.add_extra(session.id, "te", Decimal("18"), quantity=0)
    with pytest.raises(ValidationError):
        service.add_extra(session.id, "te", Decimal("-1"))
    with pytest.raises(ValidationError):
        service.checkout(session.id, "cheque")
    with pytest.raises(NotFoundError):
        service.get("missing")


def test_current_charge_for_active_session(service):
    session = service.start("Mar", start_time=START)
    assert service.current_charge(session, now=START + timedelta(minutes=100)) == Decimal("116.00")


def test_repair_recomputes_finished_sessions(repository, tariff):
    stale = CoworkingSession(
        client_name="Pedro",
        start_time=START,
        end_time=START + timedelta(minutes=190),
        consumed_extras=[ConsumedExtra(item_id="agua", price=Decimal("15"), quantity=1)],
        status=COWORKING_FINISHED,
        total=Decimal("58.00"),
        duration_minutes=190,
    )
    broken = CoworkingSession(client_name="Sin fin", start_time=START, status=COWORKING_FINISHED)
    active = CoworkingSession(client_name="Activa", start_time=START)
    for session in (stale, broken, active):
        repository.save_coworking_session(session)

    result = repair_session_totals(repository, tariff)

    assert (result.updated, result.skipped) == (1, 1)
    repaired = repository.get_coworking_session(stale.id)
    assert repaired.total == Decimal("195.00")
    assert repaired.duration_minutes == 190
    assert repository.get_coworking_session(active.id).total == Decimal("0.00")


def test_checkout_sale_is_dated_when_paid(service, repository):
    session = service.start("Ana", start_time=START)
    before = utcnow()

    closed, sale = service.checkout(session.id, end_time=START + timedelta(minutes=60))

    assert closed.end_time == START + timedelta(minutes=60)
    assert repository.get_coworking_session(session.id).end_time == START + timedelta(minutes=60)
    assert sale.created_at >= before
    assert repository.list_sales()[0].created_at >= before


def test_late_checkout_lands_in_next_cut(service, cash_cuts):
    now = datetime.now(timezone.utc)
    first = cash_cuts.perform_cut(TRIGGER_SCHEDULER, now - timedelta(minutes=1))
    session = service.start("Ana", start_time=first.period_end - timedelta(minutes=90))

    # La sesión terminó antes del corte, pero se cobra después
    service.checkout(session.id, end_time=first.period_end - timedelta(minutes=30))
    second = cash_cuts.perform_cut(TRIGGER_MANUAL, now + timedelta(minutes=1))

    assert first.total_records == 0
    assert second.total_records == 1
    assert second.total_sales == Decimal("58.00")


class FlakySqlRepository(SqlRepository):
    fail = False

    def _add_sale_row(self, db, sale):
        if self.fail:
            raise SQLAlchemyError("disco lleno")
        super()._add_sale_row(db, sale)


class FlakyJsonRepository(JsonFileRepository):
    fail = False

    def _write(self, name, rows):
        if self.fail and name == COWORKING:
            raise PersistenceError(f"No se pudo escribir {name}: disco lleno")
        super()._write(name, rows)


@pytest.fixture(params=["sql", "json"])
def flaky_repository(request, tmp_path):
    if request.param == "sql":
        request.getfixturevalue("sql_repository")
        return FlakySqlRepository(SessionLocal)
    return FlakyJsonRepository(str(tmp_path / "data"))


def test_failed_checkout_leaves_session_active(flaky_repository, tariff):
    service = CoworkingService(flaky_repository, tariff)
    session = service.start("Ana", start_time=START)
    flaky_repository.fail = True

    with pytest.raises(PersistenceError):
        service.checkout(session.id, end_time=START + timedelta(minutes=60))

    stored = flaky_repository.get_coworking_session(session.id)
    assert stored.status == COWORKING_ACTIVE
    assert stored.end_time is None
    assert flaky_repository.list_sales() == []

    flaky_repository.fail = False
    closed, sale = service.checkout(session.id, end_time=START + timedelta(minutes=60))
    assert closed.status == COWORKING_FINISHED
    assert [s.id for s in flaky_repository.list_sales()] == [sale.id]
