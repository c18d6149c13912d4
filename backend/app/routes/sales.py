from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, condecimal

from app.core.deps import get_current_user, get_repository
from app.core.entities import PAYMENT_METHODS, SERVICES, Sale, money
from app.core.serialization_helpers import serialize_datetime, serialize_decimal
from app.models.user import User
from app.services.cash_cut_service import to_naive_utc


router = APIRouter()


class SaleCreate(BaseModel):
    total: condecimal(max_digits=12, decimal_places=2, gt=0)
    payment_method: str = "efectivo"
    service: str = "cafeteria"
    cost: condecimal(max_digits=12, decimal_places=2, ge=0) = 0
    description: Optional[str] = None


def serialize_sale(sale: Sale) -> dict:
    return {
        "id": sale.id,
        "total": serialize_decimal(sale.total),
        "cost": serialize_decimal(sale.cost),
        "payment_method": sale.payment_method,
        "service": sale.service,
        "description": sale.description,
        "coworking_session_id": sale.coworking_session_id,
        "created_by": sale.created_by,
        "created_at": serialize_datetime(sale.created_at),
    }


def _bounds(start: Optional[datetime], end: Optional[datetime]):
    return (to_naive_utc(start) if start else None, to_naive_utc(end) if end else None)


@router.post("", status_code=201)
def create_sale(data: SaleCreate, repository=Depends(get_repository), user: User = Depends(get_current_user)):
    if data.payment_method not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail=f"Invalid payment method: {data.payment_method}")
    if data.service not in SERVICES:
        raise HTTPException(status_code=400, detail=f"Invalid service: {data.service}")
    sale = Sale(
        total=money(data.total),
        cost=money(data.cost),
        payment_method=data.payment_method,
        service=data.service,
        description=data.description,
        created_by=user.email,
    )
    repository.add_sale(sale)
    return serialize_sale(sale)


@router.get("")
def list_sales(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    repository=Depends(get_repository),
    user: User = Depends(get_current_user),
):
    start, end = _bounds(start, end)
    return [serialize_sale(s) for s in repository.list_sales(start, end)]
