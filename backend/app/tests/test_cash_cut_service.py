from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from app.core.entities import (
    COWORKING_FINISHED,
    TRIGGER_MANUAL,
    TRIGGER_SCHEDULER,
    CashCutReport,
    CoworkingSession,
    Expense,
    Sale,
)
from app.core.errors import NotFoundError
from app.services.cash_cut_service import RetentionPolicy, calculate_period_stats, serialize_report


MX = ZoneInfo("America/Mexico_City")
# 12:00 hora de México = 18:00 UTC
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=MX)


def test_first_cut_starts_at_local_midnight(cash_cuts):
    start, end = cash_cuts.period_for(NOON)
    assert start == datetime(2026, 3, 10, 6, 0)
    assert end == datetime(2026, 3, 10, 18, 0)


def test_midnight_cut_covers_previous_day(cash_cuts):
    start, end = cash_cuts.period_for(datetime(2026, 3, 11, 0, 0, tzinfo=MX))
    assert start == datetime(2026, 3, 10, 6, 0)
    assert end == datetime(2026, 3, 11, 6, 0)


def test_cut_totals_and_breakdowns(cash_cuts, repository):
    repository.add_sale(Sale(total=Decimal("45"), cost=Decimal("15"), description="Latte",
                             created_at=datetime(2026, 3, 10, 15, 10)))
    repository.add_sale(Sale(total=Decimal("45"), payment_method="tarjeta", description="Latte",
                             created_at=datetime(2026, 3, 10, 15, 40)))
    repository.add_sale(Sale(total=Decimal("30"), description="Galleta",
                             created_at=datetime(2026, 3, 10, 17, 5)))
    # Fuera del periodo
    repository.add_sale(Sale(total=Decimal("999"), created_at=datetime(2026, 3, 10, 18, 0)))
    repository.add_expense(Expense(amount=Decimal("25"), category="insumos",
                                   created_at=datetime(2026, 3, 10, 16, 0)))

    report = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)

    assert report.total_records == 3
    assert report.total_sales == Decimal("120.00")
    assert report.total_cost == Decimal("15.00")
    assert report.total_expenses == Decimal("25.00")
    assert report.net_total == Decimal("95.00")
    assert report.average_ticket == Decimal("40.00")
    assert report.payment_breakdown["efectivo"] == {"count": 2, "amount": 75.0}
    assert report.payment_breakdown["tarjeta"] == {"count": 1, "amount": 45.0}
    assert report.expense_breakdown["insumos"] == {"count": 1, "amount": 25.0}
    assert report.top_products[0] == {"productName": "Latte", "quantity": 2, "revenue": 90.0}
    assert [h["hour"] for h in report.hourly_breakdown] == ["09:00", "11:00"]

    stored = repository.get_cash_cut_report(report.id)
    assert stored.total_sales == Decimal("120.00")
    assert stored.payment_breakdown == report.payment_breakdown
    assert stored.hourly_breakdown == report.hourly_breakdown


def test_empty_period_still_saves_report(cash_cuts, repository):
    report = cash_cuts.perform_cut(TRIGGER_MANUAL, NOON, created_by="admin", notes="sin ventas")
    assert report.total_records == 0
    assert report.average_ticket == Decimal("0.00")
    assert repository.get_cash_cut_report(report.id).notes == "sin ventas"


def test_consecutive_cuts_chain_periods(cash_cuts):
    first = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)
    second = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON + timedelta(hours=12))
    assert second.period_start == first.period_end
    assert second.period_end == datetime(2026, 3, 11, 6, 0)


def test_repeated_cut_at_same_instant_is_empty(cash_cuts, repository):
    repository.add_sale(Sale(total=Decimal("45"), created_at=datetime(2026, 3, 10, 15, 10)))
    first = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)
    assert first.total_records == 1

    assert cash_cuts.period_for(NOON) == (first.period_end, first.period_end)
    second = cash_cuts.perform_cut(TRIGGER_MANUAL, NOON)
    assert second.period_start == second.period_end == first.period_end
    assert second.total_records == 0
    assert second.total_sales == Decimal("0.00")


def test_cut_before_latest_period_end_does_not_recount(cash_cuts, repository):
    repository.add_sale(Sale(total=Decimal("45"), created_at=datetime(2026, 3, 10, 15, 10)))
    cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)

    report = cash_cuts.perform_cut(TRIGGER_MANUAL, NOON - timedelta(minutes=30))
    assert report.period_start == report.period_end == datetime(2026, 3, 10, 18, 0)
    assert report.total_records == 0


def test_coworking_sale_uses_recomputed_total(cash_cuts, repository):
    session = CoworkingSession(
        client_name="Ana",
        start_time=datetime(2026, 3, 10, 15, 0),
        end_time=datetime(2026, 3, 10, 16, 40),
        status=COWORKING_FINISHED,
        total=Decimal("10.00"),
    )
    repository.save_coworking_session(session)
    repository.add_sale(Sale(total=Decimal("10"), service="coworking", coworking_session_id=session.id,
                             created_at=session.end_time))

    report = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)

    assert report.total_sales == Decimal("116.00")
    assert report.service_breakdown["coworking"] == {"count": 1, "amount": 116.0}
    assert report.top_products[0]["productName"] == "Coworking"


def test_retention_archives_oldest(repository):
    base = datetime(2026, 3, 1, 6, 0)
    reports = []
    for day in range(4):
        report = CashCutReport(
            period_start=base + timedelta(days=day),
            period_end=base + timedelta(days=day + 1),
            total_sales=Decimal("0"),
            total_expenses=Decimal("0"),
            net_total=Decimal("0"),
            triggered_by=TRIGGER_SCHEDULER,
            generated_at=base + timedelta(days=day + 1),
        )
        repository.save_cash_cut_report(report)
        reports.append(report)

    archived = RetentionPolicy(keep=2).apply(repository, now=datetime(2026, 3, 5))

    assert archived == 2
    visible = repository.list_cash_cut_reports()
    assert [r.id for r in visible] == [reports[3].id, reports[2].id]
    everything = repository.list_cash_cut_reports(include_archived=True)
    assert len(everything) == 4
    oldest = repository.get_cash_cut_report(reports[0].id)
    assert oldest.archived is True
    assert oldest.archived_at == datetime(2026, 3, 5)
    assert RetentionPolicy(keep=2).apply(repository) == 0


def test_get_report_not_found(cash_cuts):
    with pytest.raises(NotFoundError):
        cash_cuts.get_report("missing")


def test_stats_group_unknown_expense_category_as_otros():
    expenses = [Expense(amount=Decimal("12"), category="rara")]
    stats = calculate_period_stats([], expenses, MX)
    assert stats["expense_breakdown"]["otros"] == {"count": 1, "amount": 12.0}
    assert stats["total_expenses"] == Decimal("12.00")


def test_serialize_report_is_json_ready(cash_cuts):
    report = cash_cuts.perform_cut(TRIGGER_SCHEDULER, NOON)
    data = serialize_report(report)
    assert data["period_end"] == "2026-03-10T18:00:00"
    assert data["total_sales"] == 0.0
    assert data["variance"] is None
