"""
Libro de caja: apertura, retiros de efectivo y cierre con arqueo.

No hay una "caja actual" en memoria; la caja abierta se obtiene siempre del
repositorio, que garantiza que no existan dos abiertas a la vez.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import logging

from app.core.entities import (
    CASH_SESSION_CLOSED,
    TRIGGER_MANUAL,
    CashCutReport,
    CashSession,
    Withdrawal,
    money,
    utcnow,
)
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.services.cash_cut_service import CashCutService


logger = logging.getLogger(__name__)


def _amount(value: Any, field: str) -> Decimal:
    try:
        return money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} inválido: {value!r}")


def expected_closing_balance(opening_balance: Decimal, cash_sales: Decimal, cash_expenses: Decimal,
                             withdrawals_total: Decimal) -> Decimal:
    return money(opening_balance + cash_sales - cash_expenses - withdrawals_total)


class CashSessionLedger:
    def __init__(self, repository, cash_cuts: CashCutService):
        self.repository = repository
        self.cash_cuts = cash_cuts

    def current(self) -> Optional[CashSession]:
        return self.repository.get_open_cash_session()

    def get(self, session_id: str) -> CashSession:
        session = self.repository.get_cash_session(session_id)
        if session is None:
            raise NotFoundError(f"Caja {session_id} no encontrada")
        return session

    def open(self, opening_balance: Any, opened_by: Optional[str] = None) -> CashSession:
        """
        Abre una caja con el fondo inicial indicado.

        Raises:
            ValidationError: fondo negativo o inválido
            ConflictError: ya existe una caja abierta
        """
        balance = _amount(opening_balance, "Fondo inicial")
        if balance < 0:
            raise ValidationError("El fondo inicial no puede ser negativo")
        session = CashSession(opening_balance=balance, opened_by=opened_by)
        self.repository.open_cash_session(session)
        logger.info("Cash session %s opened with %s by %s", session.id, balance, opened_by)
        return session

    def record_withdrawal(self, session_id: str, amount: Any, description: str,
                          who: Optional[str] = None) -> Withdrawal:
        value = _amount(amount, "Monto")
        if value <= 0:
            raise ValidationError("El monto del retiro debe ser mayor a cero")
        if not description or not description.strip():
            raise ValidationError("La descripción del retiro es requerida")
        session = self.get(session_id)
        if not session.is_open:
            raise ValidationError("Solo se pueden registrar retiros en una caja abierta")

        withdrawal = Withdrawal(
            cash_session_id=session.id,
            amount=value,
            description=description.strip(),
            withdrawn_by=who,
            withdrawn_at=utcnow(),
        )
        session.withdrawals.append(withdrawal)
        self.repository.persist_cash_session(session)
        logger.info("Withdrawal of %s recorded on cash session %s", value, session.id)
        return withdrawal

    def close(self, session_id: str, counted_cash: Any, closed_by: Optional[str] = None,
              notes: str = "") -> CashCutReport:
        """
        Cierra la caja y genera su corte con el arqueo.

        esperado = fondo inicial + ventas en efectivo - gastos en efectivo - retiros
        diferencia = efectivo contado - esperado

        Raises:
            ConflictError: la caja ya estaba cerrada
        """
        counted = _amount(counted_cash, "Efectivo contado")
        if counted < 0:
            raise ValidationError("El efectivo contado no puede ser negativo")
        session = self.get(session_id)
        if not session.is_open:
            raise ConflictError("La caja ya fue cerrada")

        closed_at = utcnow()
        sales, expenses = self.cash_cuts.gather(session.opened_at, closed_at)
        report = self.cash_cuts.build_report(
            sales, expenses, session.opened_at, closed_at, TRIGGER_MANUAL, created_by=closed_by, notes=notes,
        )
        withdrawals_total = session.withdrawals_total
        expected = expected_closing_balance(
            session.opening_balance, report.cash_sales, report.cash_expenses, withdrawals_total,
        )
        report.cash_session_id = session.id
        report.opening_balance = session.opening_balance
        report.withdrawals_total = withdrawals_total
        report.expected_closing_balance = expected
        report.counted_cash = counted
        report.variance = money(counted - expected)

        session.closed_at = closed_at
        session.closed_by = closed_by
        session.counted_cash = counted
        session.expected_closing_balance = expected
        self.repository.close_cash_session(session, report)
        session.status = CASH_SESSION_CLOSED
        self.cash_cuts.apply_retention()
        logger.info(
            "Cash session %s closed: expected %s, counted %s, variance %s",
            session.id, expected, counted, report.variance,
        )
        return report
