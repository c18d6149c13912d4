from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, condecimal

from app.core.deps import get_coworking_service, get_current_user, get_repository, get_tariff, require_admin
from app.core.coworking_rules import Tariff
from app.core.entities import CoworkingSession
from app.core.serialization_helpers import serialize_datetime, serialize_decimal
from app.models.user import User
from app.routes.sales import serialize_sale
from app.services.cash_cut_service import to_naive_utc
from app.services.coworking_service import CoworkingService, repair_session_totals


router = APIRouter()


class CoworkingStart(BaseModel):
    client_name: str
    start_time: Optional[datetime] = None


class ExtraAdd(BaseModel):
    item_id: str
    name: Optional[str] = None
    price: condecimal(max_digits=12, decimal_places=2, ge=0)
    quantity: int = 1


class CheckoutRequest(BaseModel):
    payment_method: str = "efectivo"
    end_time: Optional[datetime] = None


def serialize_session(session: CoworkingSession, service: CoworkingService) -> dict:
    return {
        "id": session.id,
        "client_name": session.client_name,
        "status": session.status,
        "start_time": serialize_datetime(session.start_time),
        "end_time": serialize_datetime(session.end_time),
        "duration_minutes": session.duration_minutes,
        "total": serialize_decimal(session.total),
        "current_charge": serialize_decimal(service.current_charge(session)),
        "consumed_extras": [
            {
                "item_id": e.item_id,
                "name": e.name,
                "price": serialize_decimal(e.price),
                "quantity": e.quantity,
            }
            for e in session.consumed_extras
        ],
        "created_by": session.created_by,
    }


@router.post("/repair")
def repair_totals(
    repository=Depends(get_repository),
    tariff: Tariff = Depends(get_tariff),
    user: User = Depends(require_admin),
):
    result = repair_session_totals(repository, tariff)
    return {"updated": result.updated, "skipped": result.skipped}


@router.post("", status_code=201)
def start_session(
    data: CoworkingStart,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
):
    start_time = to_naive_utc(data.start_time) if data.start_time else None
    session = service.start(data.client_name, created_by=user.email, start_time=start_time)
    return serialize_session(session, service)


@router.get("")
def list_sessions(
    status: Optional[str] = None,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
) -> List[dict]:
    return [serialize_session(s, service) for s in service.list_sessions(status)]


@router.get("/{session_id}")
def get_session(
    session_id: str,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
):
    return serialize_session(service.get(session_id), service)


@router.post("/{session_id}/extras")
def add_extra(
    session_id: str,
    data: ExtraAdd,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
):
    session = service.add_extra(session_id, data.item_id, data.price, quantity=data.quantity, name=data.name)
    return serialize_session(session, service)


@router.delete("/{session_id}/extras/{item_id}")
def remove_extra(
    session_id: str,
    item_id: str,
    quantity: Optional[int] = None,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
):
    session = service.remove_extra(session_id, item_id, quantity=quantity)
    return serialize_session(session, service)


@router.post("/{session_id}/checkout")
def checkout(
    session_id: str,
    data: CheckoutRequest,
    service: CoworkingService = Depends(get_coworking_service),
    user: User = Depends(get_current_user),
):
    end_time = to_naive_utc(data.end_time) if data.end_time else None
    session, sale = service.checkout(session_id, data.payment_method, end_time=end_time, closed_by=user.email)
    return {"session": serialize_session(session, service), "sale": serialize_sale(sale)}
