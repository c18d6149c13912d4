"""
Entidades de dominio independientes del almacenamiento.

El repositorio SQL las traduce a modelos ORM y el repositorio JSON a
diccionarios; los servicios solo trabajan con estas clases.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import uuid


CENTS = Decimal("0.01")

PAYMENT_METHODS = ("efectivo", "tarjeta", "transferencia")
CASH_METHOD = "efectivo"
SERVICES = ("cafeteria", "coworking")
EXPENSE_CATEGORIES = ("gastos-fijos", "insumos", "sueldos", "marketing", "mantenimiento", "otros")
EXPENSE_PAID = "pagado"

COWORKING_ACTIVE = "active"
COWORKING_FINISHED = "finished"

CASH_SESSION_OPEN = "open"
CASH_SESSION_CLOSED = "closed"

TRIGGER_SCHEDULER = "scheduler"
TRIGGER_MANUAL = "manual"


def utcnow() -> datetime:
    """UTC naive, igual que las columnas DateTime de la base."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


def money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class Sale:
    total: Decimal
    payment_method: str = CASH_METHOD
    service: str = "cafeteria"
    cost: Decimal = Decimal("0.00")
    description: Optional[str] = None
    coworking_session_id: Optional[str] = None
    created_by: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class Expense:
    amount: Decimal
    category: str = "otros"
    description: str = ""
    status: str = EXPENSE_PAID
    payment_method: str = CASH_METHOD
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class ConsumedExtra:
    item_id: str
    price: Decimal
    quantity: int
    name: Optional[str] = None


@dataclass
class CoworkingSession:
    client_name: str
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    consumed_extras: List[ConsumedExtra] = field(default_factory=list)
    status: str = COWORKING_ACTIVE
    total: Decimal = Decimal("0.00")
    duration_minutes: int = 0
    created_by: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Withdrawal:
    cash_session_id: str
    amount: Decimal
    description: str
    withdrawn_by: Optional[str] = None
    withdrawn_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)


@dataclass
class CashSession:
    opening_balance: Decimal
    opened_by: Optional[str] = None
    opened_at: datetime = field(default_factory=utcnow)
    status: str = CASH_SESSION_OPEN
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    counted_cash: Optional[Decimal] = None
    expected_closing_balance: Optional[Decimal] = None
    withdrawals: List[Withdrawal] = field(default_factory=list)
    id: str = field(default_factory=new_id)

    @property
    def is_open(self) -> bool:
        return self.status == CASH_SESSION_OPEN

    @property
    def withdrawals_total(self) -> Decimal:
        return money(sum((w.amount for w in self.withdrawals), Decimal("0")))


@dataclass
class CashCutReport:
    period_start: datetime
    period_end: datetime
    total_sales: Decimal
    total_expenses: Decimal
    net_total: Decimal
    triggered_by: str
    generated_at: datetime = field(default_factory=utcnow)
    total_records: int = 0
    total_cost: Decimal = Decimal("0.00")
    total_expense_records: int = 0
    average_ticket: Decimal = Decimal("0.00")
    payment_breakdown: Dict[str, Any] = field(default_factory=dict)
    service_breakdown: Dict[str, Any] = field(default_factory=dict)
    expense_breakdown: Dict[str, Any] = field(default_factory=dict)
    top_products: List[Dict[str, Any]] = field(default_factory=list)
    hourly_breakdown: List[Dict[str, Any]] = field(default_factory=list)
    notes: str = ""
    created_by: Optional[str] = None
    cash_session_id: Optional[str] = None
    opening_balance: Optional[Decimal] = None
    cash_sales: Optional[Decimal] = None
    cash_expenses: Optional[Decimal] = None
    withdrawals_total: Optional[Decimal] = None
    expected_closing_balance: Optional[Decimal] = None
    counted_cash: Optional[Decimal] = None
    variance: Optional[Decimal] = None
    archived: bool = False
    archived_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
