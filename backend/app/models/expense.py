from datetime import datetime

from sqlalchemy import Column, String, Numeric, DateTime, CheckConstraint

from app.models.base import Base


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_positive_amount"),
    )

    id = Column(String(64), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    category = Column(String(50), nullable=False, default="otros")
    description = Column(String(500), nullable=False, default="")
    status = Column(String(20), nullable=False, default="pagado")  # pagado, pendiente
    payment_method = Column(String(20), nullable=False, default="efectivo")
    created_by = Column(String(64), nullable=True)
