from datetime import datetime

from sqlalchemy import Column, String, Integer, Numeric, DateTime, Boolean, JSON, Text, ForeignKey

from app.models.base import Base


class CashCutReport(Base):
    """Corte de caja. Solo se inserta; el archivado únicamente marca la fila."""
    __tablename__ = "cash_cut_reports"

    id = Column(String(64), primary_key=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False, index=True)
    generated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    triggered_by = Column(String(20), nullable=False)  # scheduler, manual

    total_sales = Column(Numeric(12, 2), nullable=False, default=0)
    total_expenses = Column(Numeric(12, 2), nullable=False, default=0)
    net_total = Column(Numeric(12, 2), nullable=False, default=0)
    total_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_records = Column(Integer, nullable=False, default=0)
    total_expense_records = Column(Integer, nullable=False, default=0)
    average_ticket = Column(Numeric(12, 2), nullable=False, default=0)

    # Desgloses tal cual se calcularon
    breakdowns = Column(JSON, nullable=False, default=dict)

    notes = Column(Text, nullable=False, default="")
    created_by = Column(String(64), nullable=True)

    # Solo para cortes generados al cerrar una caja
    cash_session_id = Column(String(64), ForeignKey("cash_sessions.id", ondelete="SET NULL"), nullable=True, index=True)
    opening_balance = Column(Numeric(12, 2), nullable=True)
    cash_sales = Column(Numeric(12, 2), nullable=True)
    cash_expenses = Column(Numeric(12, 2), nullable=True)
    withdrawals_total = Column(Numeric(12, 2), nullable=True)
    expected_closing_balance = Column(Numeric(12, 2), nullable=True)
    counted_cash = Column(Numeric(12, 2), nullable=True)
    variance = Column(Numeric(12, 2), nullable=True)

    archived = Column(Boolean, nullable=False, default=False, index=True)
    archived_at = Column(DateTime, nullable=True)
