from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, condecimal

from app.core.deps import get_current_user, get_ledger
from app.core.entities import CashSession
from app.core.serialization_helpers import serialize_datetime, serialize_decimal
from app.models.user import User
from app.services.cash_cut_service import serialize_report
from app.services.cash_session_service import CashSessionLedger


router = APIRouter()


class OpenRequest(BaseModel):
    # Rango validado en CashSessionLedger
    opening_balance: condecimal(max_digits=12, decimal_places=2)


class WithdrawalRequest(BaseModel):
    amount: condecimal(max_digits=12, decimal_places=2)
    description: str


class CloseRequest(BaseModel):
    counted_cash: condecimal(max_digits=12, decimal_places=2)
    notes: str = ""


def serialize_cash_session(session: CashSession) -> dict:
    return {
        "id": session.id,
        "status": session.status,
        "opening_balance": serialize_decimal(session.opening_balance),
        "opened_by": session.opened_by,
        "opened_at": serialize_datetime(session.opened_at),
        "closed_at": serialize_datetime(session.closed_at),
        "closed_by": session.closed_by,
        "counted_cash": serialize_decimal(session.counted_cash),
        "expected_closing_balance": serialize_decimal(session.expected_closing_balance),
        "withdrawals_total": serialize_decimal(session.withdrawals_total),
        "withdrawals": [
            {
                "id": w.id,
                "amount": serialize_decimal(w.amount),
                "description": w.description,
                "withdrawn_by": w.withdrawn_by,
                "withdrawn_at": serialize_datetime(w.withdrawn_at),
            }
            for w in session.withdrawals
        ],
    }


@router.post("/open", status_code=201)
def open_session(
    data: OpenRequest,
    ledger: CashSessionLedger = Depends(get_ledger),
    user: User = Depends(get_current_user),
):
    return serialize_cash_session(ledger.open(data.opening_balance, opened_by=user.email))


@router.get("/current")
def current_session(
    ledger: CashSessionLedger = Depends(get_ledger),
    user: User = Depends(get_current_user),
) -> Optional[dict]:
    session = ledger.current()
    return serialize_cash_session(session) if session else None


@router.get("/{session_id}")
def get_session(
    session_id: str,
    ledger: CashSessionLedger = Depends(get_ledger),
    user: User = Depends(get_current_user),
):
    return serialize_cash_session(ledger.get(session_id))


@router.post("/{session_id}/withdrawals", status_code=201)
def add_withdrawal(
    session_id: str,
    data: WithdrawalRequest,
    ledger: CashSessionLedger = Depends(get_ledger),
    user: User = Depends(get_current_user),
):
    ledger.record_withdrawal(session_id, data.amount, data.description, who=user.email)
    return serialize_cash_session(ledger.get(session_id))


@router.post("/{session_id}/close")
def close_session(
    session_id: str,
    data: CloseRequest,
    ledger: CashSessionLedger = Depends(get_ledger),
    user: User = Depends(get_current_user),
):
    report = ledger.close(session_id, data.counted_cash, closed_by=user.email, notes=data.notes)
    return serialize_report(report)
