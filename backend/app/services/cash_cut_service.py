"""
Servicio de cortes de caja.

Reúne ventas y gastos de un periodo, revalida los cobros de coworking,
calcula las métricas del corte y lo guarda en una sola escritura. Después de
cada escritura exitosa se aplica la política de retención, que archiva (no
borra) los cortes más antiguos.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from app.core.coworking_rules import Tariff, compute_session_total
from app.core.entities import (
    CASH_METHOD,
    COWORKING_FINISHED,
    EXPENSE_CATEGORIES,
    PAYMENT_METHODS,
    SERVICES,
    CashCutReport,
    Expense,
    Sale,
    money,
    utcnow,
)
from app.core.errors import NotFoundError, PersistenceError
from app.core.serialization_helpers import serialize_decimal, serialize_value


logger = logging.getLogger(__name__)

TOP_PRODUCTS_LIMIT = 10


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _bucket() -> Dict[str, Any]:
    return {"count": 0, "amount": Decimal("0")}


def _floatify(buckets: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {
        key: {"count": value["count"], "amount": serialize_decimal(money(value["amount"]))}
        for key, value in buckets.items()
    }


def calculate_period_stats(sales: List[Sale], expenses: List[Expense], tz: ZoneInfo) -> Dict[str, Any]:
    """
    Calcula las métricas de un corte.

    Args:
        sales: Ventas del periodo (ya revalidadas)
        expenses: Gastos pagados del periodo
        tz: Zona horaria para el desglose por hora

    Returns:
        Diccionario con totales en Decimal y desgloses listos para JSON
    """
    total_sales = Decimal("0")
    total_cost = Decimal("0")
    total_expenses = Decimal("0")
    cash_sales = Decimal("0")
    cash_expenses = Decimal("0")

    payment = {method: _bucket() for method in PAYMENT_METHODS}
    service = {name: _bucket() for name in SERVICES}
    expense_categories = {name: _bucket() for name in EXPENSE_CATEGORIES}
    products: Dict[str, Dict[str, Any]] = {}
    hourly: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"count": 0, "revenue": Decimal("0")})

    for sale in sales:
        amount = money(sale.total)
        total_sales += amount
        total_cost += money(sale.cost)
        if sale.payment_method == CASH_METHOD:
            cash_sales += amount
        if sale.payment_method in payment:
            payment[sale.payment_method]["count"] += 1
            payment[sale.payment_method]["amount"] += amount
        if sale.service in service:
            service[sale.service]["count"] += 1
            service[sale.service]["amount"] += amount

        product_key = "Coworking" if sale.service == "coworking" else (sale.description or "Unknown")
        product = products.setdefault(product_key, {"productName": product_key, "quantity": 0, "revenue": Decimal("0")})
        product["quantity"] += 1
        product["revenue"] += amount

        local = sale.created_at.replace(tzinfo=timezone.utc).astimezone(tz)
        hour = f"{local.hour:02d}:00"
        hourly[hour]["count"] += 1
        hourly[hour]["revenue"] += amount

    for expense in expenses:
        amount = money(expense.amount)
        total_expenses += amount
        if expense.payment_method == CASH_METHOD:
            cash_expenses += amount
        category = expense.category if expense.category in expense_categories else "otros"
        expense_categories[category]["count"] += 1
        expense_categories[category]["amount"] += amount

    top_products = sorted(products.values(), key=lambda p: p["revenue"], reverse=True)[:TOP_PRODUCTS_LIMIT]

    return {
        "total_records": len(sales),
        "total_expense_records": len(expenses),
        "total_sales": money(total_sales),
        "total_cost": money(total_cost),
        "total_expenses": money(total_expenses),
        "cash_sales": money(cash_sales),
        "cash_expenses": money(cash_expenses),
        "payment_breakdown": _floatify(payment),
        "service_breakdown": _floatify(service),
        "expense_breakdown": _floatify(expense_categories),
        "top_products": [
            {**p, "revenue": serialize_decimal(money(p["revenue"]))} for p in top_products
        ],
        "hourly_breakdown": [
            {"hour": hour, "count": hourly[hour]["count"], "revenue": serialize_decimal(money(hourly[hour]["revenue"]))}
            for hour in sorted(hourly)
        ],
    }


def serialize_report(report: CashCutReport) -> Dict[str, Any]:
    """Corte listo para JSON (API y supervisor)."""
    return {name: serialize_value(value) for name, value in vars(report).items()}


@dataclass
class RetentionPolicy:
    """Mantiene a lo más `keep` cortes sin archivar."""
    keep: int

    def apply(self, repository, now: Optional[datetime] = None) -> int:
        archived = repository.archive_cash_cut_reports(self.keep, now or utcnow())
        if archived:
            logger.info("Archived %s cash cut report(s); keeping %s", archived, self.keep)
        return archived


class CashCutService:
    def __init__(self, repository, tariff: Tariff, timezone_name: str, retention: RetentionPolicy):
        self.repository = repository
        self.tariff = tariff
        self.tz = ZoneInfo(timezone_name)
        self.retention = retention

    def default_period_start(self, now: datetime) -> datetime:
        """Medianoche local del día que termina en `now` (un corte a las 00:00 cubre el día anterior)."""
        local = now.astimezone(self.tz) if now.tzinfo else now.replace(tzinfo=timezone.utc).astimezone(self.tz)
        day = (local - timedelta(seconds=1)).date()
        midnight = datetime(day.year, day.month, day.day, tzinfo=self.tz)
        return to_naive_utc(midnight)

    def period_for(self, now: datetime) -> Tuple[datetime, datetime]:
        period_end = to_naive_utc(now)
        latest = self.repository.latest_cash_cut_report()
        if latest is None:
            return self.default_period_start(now), period_end
        if latest.period_end >= period_end:
            # Ya cubierto: periodo vacío para no contar ventas dos veces
            return latest.period_end, latest.period_end
        return latest.period_end, period_end

    def revalidate_sales(self, sales: List[Sale]) -> List[Sale]:
        """Usa el total recalculado de la sesión de coworking cuando el guardado difiere."""
        for sale in sales:
            if not sale.coworking_session_id:
                continue
            session = self.repository.get_coworking_session(sale.coworking_session_id)
            if session is None or session.status != COWORKING_FINISHED or session.end_time is None:
                continue
            expected = compute_session_total(session, self.tariff)
            if expected != money(sale.total):
                logger.warning(
                    "Sale %s total %s differs from coworking session %s recomputed total %s; using recomputed",
                    sale.id, sale.total, session.id, expected,
                )
                sale.total = expected
        return sales

    def gather(self, period_start: datetime, period_end: datetime) -> Tuple[List[Sale], List[Expense]]:
        sales = self.repository.get_sales_for_period(period_start, period_end)
        expenses = self.repository.get_expenses_for_period(period_start, period_end)
        return self.revalidate_sales(sales), expenses

    def build_report(self, sales: List[Sale], expenses: List[Expense], period_start: datetime,
                     period_end: datetime, triggered_by: str, created_by: Optional[str] = None,
                     notes: str = "") -> CashCutReport:
        stats = calculate_period_stats(sales, expenses, self.tz)
        total_sales = stats["total_sales"]
        total_records = stats["total_records"]
        return CashCutReport(
            period_start=period_start,
            period_end=period_end,
            total_sales=total_sales,
            total_expenses=stats["total_expenses"],
            net_total=money(total_sales - stats["total_expenses"]),
            triggered_by=triggered_by,
            total_records=total_records,
            total_cost=stats["total_cost"],
            total_expense_records=stats["total_expense_records"],
            average_ticket=money(total_sales / total_records) if total_records else money(0),
            payment_breakdown=stats["payment_breakdown"],
            service_breakdown=stats["service_breakdown"],
            expense_breakdown=stats["expense_breakdown"],
            top_products=stats["top_products"],
            hourly_breakdown=stats["hourly_breakdown"],
            notes=notes,
            created_by=created_by,
            cash_sales=stats["cash_sales"],
            cash_expenses=stats["cash_expenses"],
        )

    def apply_retention(self) -> None:
        try:
            self.retention.apply(self.repository)
        except PersistenceError:
            # El corte ya quedó guardado; el archivado se reintenta en la siguiente escritura
            logger.exception("Cash cut retention failed")

    def perform_cut(self, triggered_by: str, now: datetime, created_by: Optional[str] = None,
                    notes: str = "") -> CashCutReport:
        """
        Genera y guarda un corte para el periodo que termina en `now`.

        Raises:
            PersistenceError: si no se pueden leer los datos o guardar el corte.
                En ese caso no queda ningún corte guardado.
        """
        period_start, period_end = self.period_for(now)
        sales, expenses = self.gather(period_start, period_end)
        logger.info("Processing %s sales and %s expenses for cash cut", len(sales), len(expenses))
        report = self.build_report(sales, expenses, period_start, period_end, triggered_by, created_by, notes)
        self.repository.save_cash_cut_report(report)
        self.apply_retention()
        logger.info(
            "Cash cut %s saved: %s records, income %s, expenses %s, net %s",
            report.id, report.total_records, report.total_sales, report.total_expenses, report.net_total,
        )
        return report

    def list_reports(self, limit: int = 50, include_archived: bool = False) -> List[CashCutReport]:
        return self.repository.list_cash_cut_reports(limit=limit, include_archived=include_archived)

    def get_report(self, report_id: str) -> CashCutReport:
        report = self.repository.get_cash_cut_report(report_id)
        if report is None:
            raise NotFoundError(f"Corte {report_id} no encontrado")
        return report
