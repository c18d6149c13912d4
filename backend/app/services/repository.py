"""
Repositorio de caja y coworking.

`CashRepository` es el contrato que consumen los servicios; no sabe si los
datos viven en PostgreSQL o en archivos JSON. `SqlRepository` es la
implementación sobre SQLAlchemy: una transacción por operación y los errores
de base se traducen a `PersistenceError`.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entities import (
    CASH_SESSION_CLOSED,
    CASH_SESSION_OPEN,
    COWORKING_ACTIVE,
    EXPENSE_PAID,
    CashCutReport,
    CashSession,
    ConsumedExtra,
    CoworkingSession,
    Expense,
    Sale,
    Withdrawal,
    money,
)
from app.core.errors import ConflictError, PersistenceError, ValidationError
from app.core.serialization_helpers import serialize_decimal
from app.models.cash_cut import CashCutReport as CashCutRow
from app.models.cash_session import CashSession as CashSessionRow
from app.models.cash_session import CashWithdrawal as WithdrawalRow
from app.models.coworking_session import CoworkingSession as CoworkingRow
from app.models.expense import Expense as ExpenseRow
from app.models.sale import Sale as SaleRow


BREAKDOWN_FIELDS = ("payment_breakdown", "service_breakdown", "expense_breakdown", "top_products", "hourly_breakdown")
REPORT_MONEY_FIELDS = (
    "opening_balance",
    "cash_sales",
    "cash_expenses",
    "withdrawals_total",
    "expected_closing_balance",
    "counted_cash",
    "variance",
)


class CashRepository(Protocol):
    def add_sale(self, sale: Sale) -> Sale: ...
    def list_sales(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Sale]: ...
    def get_sales_for_period(self, start: datetime, end: datetime) -> List[Sale]: ...
    def add_expense(self, expense: Expense) -> Expense: ...
    def list_expenses(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Expense]: ...
    def get_expenses_for_period(self, start: datetime, end: datetime) -> List[Expense]: ...

    def get_coworking_session(self, session_id: str) -> Optional[CoworkingSession]: ...
    def list_coworking_sessions(self, status: Optional[str] = None) -> List[CoworkingSession]: ...
    def save_coworking_session(self, session: CoworkingSession) -> CoworkingSession: ...
    def finish_coworking_session(self, session: CoworkingSession, sale: Sale) -> Sale: ...

    def get_open_cash_session(self) -> Optional[CashSession]: ...
    def get_cash_session(self, session_id: str) -> Optional[CashSession]: ...
    def open_cash_session(self, session: CashSession) -> CashSession: ...
    def persist_cash_session(self, session: CashSession) -> None: ...
    def close_cash_session(self, session: CashSession, report: CashCutReport) -> CashCutReport: ...

    def save_cash_cut_report(self, report: CashCutReport) -> CashCutReport: ...
    def get_cash_cut_report(self, report_id: str) -> Optional[CashCutReport]: ...
    def list_cash_cut_reports(self, limit: int = 50, include_archived: bool = False) -> List[CashCutReport]: ...
    def latest_cash_cut_report(self) -> Optional[CashCutReport]: ...
    def archive_cash_cut_reports(self, keep: int, archived_at: datetime) -> int: ...


# -- conversiones fila <-> entidad ------------------------------------------

def _sale_from_row(row: SaleRow) -> Sale:
    return Sale(
        id=row.id,
        created_at=row.created_at,
        total=money(row.total),
        cost=money(row.cost),
        payment_method=row.payment_method,
        service=row.service,
        description=row.description,
        coworking_session_id=row.coworking_session_id,
        created_by=row.created_by,
        is_deleted=bool(row.is_deleted),
    )


def _expense_from_row(row: ExpenseRow) -> Expense:
    return Expense(
        id=row.id,
        created_at=row.created_at,
        amount=money(row.amount),
        category=row.category,
        description=row.description,
        status=row.status,
        payment_method=row.payment_method,
        created_by=row.created_by,
    )


def _extras_to_json(extras: List[ConsumedExtra]) -> list:
    return [
        {"item_id": e.item_id, "name": e.name, "price": serialize_decimal(money(e.price)), "quantity": int(e.quantity)}
        for e in extras
    ]


def _extras_from_json(raw) -> List[ConsumedExtra]:
    return [
        ConsumedExtra(
            item_id=str(item.get("item_id")),
            name=item.get("name"),
            price=money(item.get("price") or 0),
            quantity=int(item.get("quantity") or 0),
        )
        for item in (raw or [])
    ]


def _coworking_from_row(row: CoworkingRow) -> CoworkingSession:
    return CoworkingSession(
        id=row.id,
        client_name=row.client_name,
        start_time=row.start_time,
        end_time=row.end_time,
        consumed_extras=_extras_from_json(row.consumed_extras),
        status=row.status,
        total=money(row.total),
        duration_minutes=int(row.duration_minutes or 0),
        created_by=row.created_by,
    )


def _withdrawal_from_row(row: WithdrawalRow) -> Withdrawal:
    return Withdrawal(
        id=row.id,
        cash_session_id=row.cash_session_id,
        amount=money(row.amount),
        description=row.description,
        withdrawn_by=row.withdrawn_by,
        withdrawn_at=row.withdrawn_at,
    )


def _cash_session_from_row(row: CashSessionRow) -> CashSession:
    return CashSession(
        id=row.id,
        opened_at=row.opened_at,
        closed_at=row.closed_at,
        opening_balance=money(row.opening_balance),
        counted_cash=money(row.counted_cash) if row.counted_cash is not None else None,
        expected_closing_balance=(
            money(row.expected_closing_balance) if row.expected_closing_balance is not None else None
        ),
        status=row.status,
        opened_by=row.opened_by,
        closed_by=row.closed_by,
        withdrawals=[_withdrawal_from_row(w) for w in row.withdrawals],
    )


def _report_to_row(report: CashCutReport) -> CashCutRow:
    row = CashCutRow(
        id=report.id,
        period_start=report.period_start,
        period_end=report.period_end,
        generated_at=report.generated_at,
        triggered_by=report.triggered_by,
        total_sales=report.total_sales,
        total_expenses=report.total_expenses,
        net_total=report.net_total,
        total_cost=report.total_cost,
        total_records=report.total_records,
        total_expense_records=report.total_expense_records,
        average_ticket=report.average_ticket,
        breakdowns={name: getattr(report, name) for name in BREAKDOWN_FIELDS},
        notes=report.notes or "",
        created_by=report.created_by,
        cash_session_id=report.cash_session_id,
        archived=report.archived,
        archived_at=report.archived_at,
    )
    for name in REPORT_MONEY_FIELDS:
        setattr(row, name, getattr(report, name))
    return row


def _report_from_row(row: CashCutRow) -> CashCutReport:
    breakdowns = row.breakdowns or {}
    report = CashCutReport(
        id=row.id,
        period_start=row.period_start,
        period_end=row.period_end,
        generated_at=row.generated_at,
        triggered_by=row.triggered_by,
        total_sales=money(row.total_sales),
        total_expenses=money(row.total_expenses),
        net_total=money(row.net_total),
        total_cost=money(row.total_cost),
        total_records=row.total_records,
        total_expense_records=row.total_expense_records,
        average_ticket=money(row.average_ticket),
        notes=row.notes or "",
        created_by=row.created_by,
        cash_session_id=row.cash_session_id,
        archived=bool(row.archived),
        archived_at=row.archived_at,
    )
    for name in BREAKDOWN_FIELDS:
        default = [] if name in ("top_products", "hourly_breakdown") else {}
        setattr(report, name, breakdowns.get(name, default))
    for name in REPORT_MONEY_FIELDS:
        value = getattr(row, name)
        setattr(report, name, money(value) if value is not None else None)
    return report


class SqlRepository:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Error de almacenamiento: {exc.__class__.__name__}") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # -- ventas y gastos ----------------------------------------------------

    def _add_sale_row(self, db: Session, sale: Sale) -> None:
        db.add(SaleRow(
            id=sale.id,
            created_at=sale.created_at,
            total=sale.total,
            cost=sale.cost,
            payment_method=sale.payment_method,
            service=sale.service,
            description=sale.description,
            coworking_session_id=sale.coworking_session_id,
            created_by=sale.created_by,
            is_deleted=sale.is_deleted,
        ))

    def add_sale(self, sale: Sale) -> Sale:
        with self._transaction() as db:
            self._add_sale_row(db, sale)
        return sale

    def list_sales(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Sale]:
        with self._transaction() as db:
            query = db.query(SaleRow).filter(SaleRow.is_deleted.is_(False))
            if start is not None:
                query = query.filter(SaleRow.created_at >= start)
            if end is not None:
                query = query.filter(SaleRow.created_at < end)
            return [_sale_from_row(r) for r in query.order_by(SaleRow.created_at).all()]

    def get_sales_for_period(self, start: datetime, end: datetime) -> List[Sale]:
        return self.list_sales(start, end)

    def add_expense(self, expense: Expense) -> Expense:
        with self._transaction() as db:
            db.add(ExpenseRow(
                id=expense.id,
                created_at=expense.created_at,
                amount=expense.amount,
                category=expense.category,
                description=expense.description,
                status=expense.status,
                payment_method=expense.payment_method,
                created_by=expense.created_by,
            ))
        return expense

    def list_expenses(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Expense]:
        with self._transaction() as db:
            query = db.query(ExpenseRow)
            if start is not None:
                query = query.filter(ExpenseRow.created_at >= start)
            if end is not None:
                query = query.filter(ExpenseRow.created_at < end)
            return [_expense_from_row(r) for r in query.order_by(ExpenseRow.created_at).all()]

    def get_expenses_for_period(self, start: datetime, end: datetime) -> List[Expense]:
        return [e for e in self.list_expenses(start, end) if e.status == EXPENSE_PAID]

    # -- coworking ------------------------------------------------------------

    def get_coworking_session(self, session_id: str) -> Optional[CoworkingSession]:
        with self._transaction() as db:
            row = db.get(CoworkingRow, session_id)
            return _coworking_from_row(row) if row else None

    def list_coworking_sessions(self, status: Optional[str] = None) -> List[CoworkingSession]:
        with self._transaction() as db:
            query = db.query(CoworkingRow)
            if status:
                query = query.filter(CoworkingRow.status == status)
            return [_coworking_from_row(r) for r in query.order_by(CoworkingRow.start_time.desc()).all()]

    def _upsert_coworking_row(self, db: Session, session: CoworkingSession) -> CoworkingRow:
        row = db.get(CoworkingRow, session.id)
        if row is None:
            row = CoworkingRow(id=session.id)
            db.add(row)
        row.client_name = session.client_name
        row.start_time = session.start_time
        row.end_time = session.end_time
        row.consumed_extras = _extras_to_json(session.consumed_extras)
        row.status = session.status
        row.total = session.total
        row.duration_minutes = session.duration_minutes
        row.created_by = session.created_by
        return row

    def save_coworking_session(self, session: CoworkingSession) -> CoworkingSession:
        with self._transaction() as db:
            self._upsert_coworking_row(db, session)
        return session

    def finish_coworking_session(self, session: CoworkingSession, sale: Sale) -> Sale:
        """Guarda la sesión cerrada y su venta en la misma transacción."""
        with self._transaction() as db:
            row = db.get(CoworkingRow, session.id)
            if row is None or row.status != COWORKING_ACTIVE:
                raise ConflictError("La sesión de coworking ya fue cerrada")
            self._upsert_coworking_row(db, session)
            self._add_sale_row(db, sale)
        return sale

    # -- caja -----------------------------------------------------------------

    def get_open_cash_session(self) -> Optional[CashSession]:
        with self._transaction() as db:
            row = db.query(CashSessionRow).filter(CashSessionRow.status == CASH_SESSION_OPEN).first()
            return _cash_session_from_row(row) if row else None

    def get_cash_session(self, session_id: str) -> Optional[CashSession]:
        with self._transaction() as db:
            row = db.get(CashSessionRow, session_id)
            return _cash_session_from_row(row) if row else None

    def open_cash_session(self, session: CashSession) -> CashSession:
        """Inserta la caja; el índice único parcial garantiza una sola abierta."""
        try:
            with self._transaction() as db:
                existing = db.query(CashSessionRow).filter(CashSessionRow.status == CASH_SESSION_OPEN).first()
                if existing is not None:
                    raise ConflictError(f"Ya existe una caja abierta ({existing.id})")
                db.add(CashSessionRow(
                    id=session.id,
                    opened_at=session.opened_at,
                    opening_balance=session.opening_balance,
                    status=CASH_SESSION_OPEN,
                    opened_by=session.opened_by,
                ))
                db.flush()
        except PersistenceError as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise ConflictError("Ya existe una caja abierta") from exc
            raise
        return session

    def persist_cash_session(self, session: CashSession) -> None:
        """Guarda los retiros nuevos de una caja abierta."""
        with self._transaction() as db:
            row = db.get(CashSessionRow, session.id)
            if row is None:
                raise PersistenceError(f"Caja {session.id} no encontrada en almacenamiento")
            if row.status != CASH_SESSION_OPEN:
                raise ValidationError("La caja ya fue cerrada")
            known = {w.id for w in row.withdrawals}
            for withdrawal in session.withdrawals:
                if withdrawal.id in known:
                    continue
                row.withdrawals.append(WithdrawalRow(
                    id=withdrawal.id,
                    amount=withdrawal.amount,
                    description=withdrawal.description,
                    withdrawn_by=withdrawal.withdrawn_by,
                    withdrawn_at=withdrawal.withdrawn_at,
                ))

    def close_cash_session(self, session: CashSession, report: CashCutReport) -> CashCutReport:
        """Cierra la caja y guarda su corte en la misma transacción."""
        with self._transaction() as db:
            updated = (
                db.query(CashSessionRow)
                .filter(CashSessionRow.id == session.id, CashSessionRow.status == CASH_SESSION_OPEN)
                .update(
                    {
                        CashSessionRow.status: CASH_SESSION_CLOSED,
                        CashSessionRow.closed_at: session.closed_at,
                        CashSessionRow.closed_by: session.closed_by,
                        CashSessionRow.counted_cash: session.counted_cash,
                        CashSessionRow.expected_closing_balance: session.expected_closing_balance,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                raise ConflictError("La caja ya fue cerrada")
            db.add(_report_to_row(report))
        return report

    # -- cortes -----------------------------------------------------------------

    def save_cash_cut_report(self, report: CashCutReport) -> CashCutReport:
        with self._transaction() as db:
            db.add(_report_to_row(report))
        return report

    def get_cash_cut_report(self, report_id: str) -> Optional[CashCutReport]:
        with self._transaction() as db:
            row = db.get(CashCutRow, report_id)
            return _report_from_row(row) if row else None

    def list_cash_cut_reports(self, limit: int = 50, include_archived: bool = False) -> List[CashCutReport]:
        with self._transaction() as db:
            query = db.query(CashCutRow)
            if not include_archived:
                query = query.filter(CashCutRow.archived.is_(False))
            rows = query.order_by(CashCutRow.generated_at.desc()).limit(limit).all()
            return [_report_from_row(r) for r in rows]

    def latest_cash_cut_report(self) -> Optional[CashCutReport]:
        """Último corte por periodo; los cierres de caja no cuentan."""
        with self._transaction() as db:
            row = (
                db.query(CashCutRow)
                .filter(CashCutRow.cash_session_id.is_(None))
                .order_by(CashCutRow.period_end.desc())
                .first()
            )
            return _report_from_row(row) if row else None

    def archive_cash_cut_reports(self, keep: int, archived_at: datetime) -> int:
        with self._transaction() as db:
            stale = (
                db.query(CashCutRow)
                .filter(CashCutRow.archived.is_(False))
                .order_by(CashCutRow.generated_at.desc())
                .offset(keep)
                .all()
            )
            for row in stale:
                row.archived = True
                row.archived_at = archived_at
            return len(stale)


def build_repository(settings) -> CashRepository:
    """Repositorio según STORAGE_BACKEND ("sql" o "json")."""
    if settings.storage_backend == "json":
        from app.services.json_store import JsonFileRepository

        return JsonFileRepository(settings.data_dir)
    if settings.storage_backend == "sql":
        from app.core.database import SessionLocal

        return SqlRepository(SessionLocal)
    raise ValueError(f"STORAGE_BACKEND desconocido: {settings.storage_backend}")
