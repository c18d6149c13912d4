"""
Almacenamiento en archivos JSON (modo sin base de datos).

Un archivo por colección dentro de `data_dir`. Cada escritura reemplaza el
archivo completo de forma atómica (archivo temporal + os.replace) y todas
las operaciones se serializan con un candado del proceso, lo que da a
`open_cash_session` y `close_cash_session` su verificar-y-escribir atómico.
"""
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import os
import threading

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


SALES = "sales.json"
EXPENSES = "expenses.json"
COWORKING = "coworking_sessions.json"
CASH_SESSIONS = "cash_sessions.json"
CASH_CUTS = "cash_cuts.json"

_REPORT_DATES = ("period_start", "period_end", "generated_at", "archived_at")
_REPORT_MONEY = (
    "total_sales", "total_expenses", "net_total", "total_cost", "average_ticket",
    "opening_balance", "cash_sales", "cash_expenses", "withdrawals_total",
    "expected_closing_balance", "counted_cash", "variance",
)


def _encode(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Tipo no serializable: {type(value).__name__}")


def _dt(value) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _dec(value) -> Optional[Decimal]:
    return money(value) if value is not None else None


def _sale(d: Dict[str, Any]) -> Sale:
    return Sale(**{**d, "created_at": _dt(d["created_at"]), "total": money(d["total"]), "cost": money(d.get("cost"))})


def _expense(d: Dict[str, Any]) -> Expense:
    return Expense(**{**d, "created_at": _dt(d["created_at"]), "amount": money(d["amount"])})


def _coworking(d: Dict[str, Any]) -> CoworkingSession:
    extras = [
        ConsumedExtra(item_id=e["item_id"], name=e.get("name"), price=money(e["price"]), quantity=int(e["quantity"]))
        for e in d.get("consumed_extras") or []
    ]
    return CoworkingSession(**{
        **d,
        "start_time": _dt(d["start_time"]),
        "end_time": _dt(d.get("end_time")),
        "consumed_extras": extras,
        "total": money(d.get("total")),
    })


def _cash_session(d: Dict[str, Any]) -> CashSession:
    withdrawals = [
        Withdrawal(**{**w, "amount": money(w["amount"]), "withdrawn_at": _dt(w["withdrawn_at"])})
        for w in d.get("withdrawals") or []
    ]
    return CashSession(**{
        **d,
        "opened_at": _dt(d["opened_at"]),
        "closed_at": _dt(d.get("closed_at")),
        "opening_balance": money(d["opening_balance"]),
        "counted_cash": _dec(d.get("counted_cash")),
        "expected_closing_balance": _dec(d.get("expected_closing_balance")),
        "withdrawals": withdrawals,
    })


def _report(d: Dict[str, Any]) -> CashCutReport:
    values = dict(d)
    for name in _REPORT_DATES:
        values[name] = _dt(values.get(name))
    for name in _REPORT_MONEY:
        values[name] = _dec(values.get(name))
    return CashCutReport(**values)


class JsonFileRepository:
    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _read(self, name: str) -> List[Dict[str, Any]]:
        path = self._path(name)
        try:
            if not path.exists():
                return []
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"No se pudo leer {name}: {exc}") from exc

    def _write(self, name: str, rows: List[Dict[str, Any]]) -> None:
        path = self._path(name)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(rows, fh, default=_encode, indent=2)
            os.replace(tmp, path)
        except (OSError, TypeError) as exc:
            raise PersistenceError(f"No se pudo escribir {name}: {exc}") from exc

    def _to_dict(self, entity) -> Dict[str, Any]:
        # Pasa por JSON para que las fechas y decimales queden como texto
        return json.loads(json.dumps(asdict(entity), default=_encode))

    def _upsert(self, name: str, entity) -> None:
        with self._lock:
            rows = [r for r in self._read(name) if r["id"] != entity.id]
            rows.append(self._to_dict(entity))
            self._write(name, rows)

    # -- ventas y gastos ----------------------------------------------------

    def add_sale(self, sale: Sale) -> Sale:
        self._upsert(SALES, sale)
        return sale

    def list_sales(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Sale]:
        with self._lock:
            sales = [_sale(r) for r in self._read(SALES)]
        sales = [
            s for s in sales
            if not s.is_deleted
            and (start is None or s.created_at >= start)
            and (end is None or s.created_at < end)
        ]
        return sorted(sales, key=lambda s: s.created_at)

    def get_sales_for_period(self, start: datetime, end: datetime) -> List[Sale]:
        return self.list_sales(start, end)

    def add_expense(self, expense: Expense) -> Expense:
        self._upsert(EXPENSES, expense)
        return expense

    def list_expenses(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Expense]:
        with self._lock:
            expenses = [_expense(r) for r in self._read(EXPENSES)]
        expenses = [
            e for e in expenses
            if (start is None or e.created_at >= start) and (end is None or e.created_at < end)
        ]
        return sorted(expenses, key=lambda e: e.created_at)

    def get_expenses_for_period(self, start: datetime, end: datetime) -> List[Expense]:
        return [e for e in self.list_expenses(start, end) if e.status == EXPENSE_PAID]

    # -- coworking ------------------------------------------------------------

    def get_coworking_session(self, session_id: str) -> Optional[CoworkingSession]:
        with self._lock:
            for row in self._read(COWORKING):
                if row["id"] == session_id:
                    return _coworking(row)
        return None

    def list_coworking_sessions(self, status: Optional[str] = None) -> List[CoworkingSession]:
        with self._lock:
            sessions = [_coworking(r) for r in self._read(COWORKING)]
        if status:
            sessions = [s for s in sessions if s.status == status]
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def save_coworking_session(self, session: CoworkingSession) -> CoworkingSession:
        self._upsert(COWORKING, session)
        return session

    def finish_coworking_session(self, session: CoworkingSession, sale: Sale) -> Sale:
        """Guarda la venta y luego la sesión cerrada; si la sesión falla, la venta se retira."""
        with self._lock:
            sessions = self._read(COWORKING)
            index = next((i for i, r in enumerate(sessions) if r["id"] == session.id), None)
            if index is None or sessions[index]["status"] != COWORKING_ACTIVE:
                raise ConflictError("La sesión de coworking ya fue cerrada")
            sales = self._read(SALES)
            self._write(SALES, sales + [self._to_dict(sale)])
            sessions[index] = self._to_dict(session)
            try:
                self._write(COWORKING, sessions)
            except PersistenceError:
                self._write(SALES, sales)
                raise
        return sale

    # -- caja -----------------------------------------------------------------

    def get_open_cash_session(self) -> Optional[CashSession]:
        with self._lock:
            for row in self._read(CASH_SESSIONS):
                if row["status"] == CASH_SESSION_OPEN:
                    return _cash_session(row)
        return None

    def get_cash_session(self, session_id: str) -> Optional[CashSession]:
        with self._lock:
            for row in self._read(CASH_SESSIONS):
                if row["id"] == session_id:
                    return _cash_session(row)
        return None

    def open_cash_session(self, session: CashSession) -> CashSession:
        with self._lock:
            rows = self._read(CASH_SESSIONS)
            existing = next((r for r in rows if r["status"] == CASH_SESSION_OPEN), None)
            if existing is not None:
                raise ConflictError(f"Ya existe una caja abierta ({existing['id']})")
            rows.append(self._to_dict(session))
            self._write(CASH_SESSIONS, rows)
        return session

    def persist_cash_session(self, session: CashSession) -> None:
        with self._lock:
            rows = self._read(CASH_SESSIONS)
            index = next((i for i, r in enumerate(rows) if r["id"] == session.id), None)
            if index is None:
                raise PersistenceError(f"Caja {session.id} no encontrada en almacenamiento")
            if rows[index]["status"] != CASH_SESSION_OPEN:
                raise ValidationError("La caja ya fue cerrada")
            rows[index] = self._to_dict(session)
            self._write(CASH_SESSIONS, rows)

    def close_cash_session(self, session: CashSession, report: CashCutReport) -> CashCutReport:
        with self._lock:
            rows = self._read(CASH_SESSIONS)
            index = next((i for i, r in enumerate(rows) if r["id"] == session.id), None)
            if index is None or rows[index]["status"] != CASH_SESSION_OPEN:
                raise ConflictError("La caja ya fue cerrada")
            previous = rows[index]
            closed = self._to_dict(session)
            closed["status"] = CASH_SESSION_CLOSED
            rows[index] = closed
            reports = self._read(CASH_CUTS)
            reports.append(self._to_dict(report))
            self._write(CASH_SESSIONS, rows)
            try:
                self._write(CASH_CUTS, reports)
            except PersistenceError:
                rows[index] = previous
                self._write(CASH_SESSIONS, rows)
                raise
        return report

    # -- cortes -----------------------------------------------------------------

    def save_cash_cut_report(self, report: CashCutReport) -> CashCutReport:
        with self._lock:
            reports = self._read(CASH_CUTS)
            reports.append(self._to_dict(report))
            self._write(CASH_CUTS, reports)
        return report

    def get_cash_cut_report(self, report_id: str) -> Optional[CashCutReport]:
        with self._lock:
            for row in self._read(CASH_CUTS):
                if row["id"] == report_id:
                    return _report(row)
        return None

    def list_cash_cut_reports(self, limit: int = 50, include_archived: bool = False) -> List[CashCutReport]:
        with self._lock:
            reports = [_report(r) for r in self._read(CASH_CUTS)]
        if not include_archived:
            reports = [r for r in reports if not r.archived]
        reports.sort(key=lambda r: r.generated_at, reverse=True)
        return reports[:limit]

    def latest_cash_cut_report(self) -> Optional[CashCutReport]:
        with self._lock:
            reports = [_report(r) for r in self._read(CASH_CUTS) if not r.get("cash_session_id")]
        if not reports:
            return None
        return max(reports, key=lambda r: r.period_end)

    def archive_cash_cut_reports(self, keep: int, archived_at: datetime) -> int:
        with self._lock:
            rows = self._read(CASH_CUTS)
            active = sorted(
                (r for r in rows if not r.get("archived")),
                key=lambda r: _dt(r["generated_at"]),
                reverse=True,
            )
            stale = active[keep:]
            for row in stale:
                row["archived"] = True
                row["archived_at"] = archived_at.isoformat()
            if stale:
                self._write(CASH_CUTS, rows)
            return len(stale)
