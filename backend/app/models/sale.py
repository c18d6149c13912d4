from datetime import datetime

from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, Boolean

from app.models.base import Base


class Sale(Base):
    """Registro de venta (cafetería o cobro de coworking)."""
    __tablename__ = "sales"

    id = Column(String(64), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    cost = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False, default="efectivo")  # efectivo, tarjeta, transferencia
    service = Column(String(20), nullable=False, default="cafeteria", index=True)  # cafeteria, coworking
    description = Column(String(255), nullable=True)
    coworking_session_id = Column(String(64), ForeignKey("coworking_sessions.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String(64), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
