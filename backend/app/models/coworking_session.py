from datetime import datetime

from sqlalchemy import Column, String, Integer, Numeric, DateTime, JSON

from app.models.base import Base


class CoworkingSession(Base):
    __tablename__ = "coworking_sessions"

    id = Column(String(64), primary_key=True)
    client_name = Column(String(255), nullable=False)
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_time = Column(DateTime, nullable=True)
    # [{item_id, name, price, quantity}]
    consumed_extras = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="active", index=True)  # active, finished
    total = Column(Numeric(10, 2), nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False, default=0)
    created_by = Column(String(64), nullable=True)
