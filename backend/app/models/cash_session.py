from datetime import datetime

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship

from app.models.base import Base


class CashSession(Base):
    __tablename__ = "cash_sessions"
    __table_args__ = (
        # A lo más una caja abierta a la vez
        Index(
            "uq_cash_sessions_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        CheckConstraint("opening_balance >= 0", name="ck_cash_sessions_opening_balance"),
    )

    id = Column(String(64), primary_key=True)
    opened_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True)
    opening_balance = Column(Numeric(10, 2), nullable=False, default=0)
    counted_cash = Column(Numeric(10, 2), nullable=True)
    expected_closing_balance = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), nullable=False, default="open")
    opened_by = Column(String(64), nullable=True)
    closed_by = Column(String(64), nullable=True)

    withdrawals = relationship(
        "CashWithdrawal",
        back_populates="cash_session",
        cascade="all, delete-orphan",
        order_by="CashWithdrawal.withdrawn_at",
    )


class CashWithdrawal(Base):
    __tablename__ = "cash_withdrawals"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_withdrawals_positive_amount"),
    )

    id = Column(String(64), primary_key=True)
    cash_session_id = Column(String(64), ForeignKey("cash_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(String(500), nullable=False)
    withdrawn_by = Column(String(64), nullable=True)
    withdrawn_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    cash_session = relationship("CashSession", back_populates="withdrawals")
