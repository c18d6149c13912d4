from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, condecimal

from app.core.deps import get_current_user, get_repository
from app.core.entities import EXPENSE_CATEGORIES, EXPENSE_PAID, PAYMENT_METHODS, Expense, money
from app.core.serialization_helpers import serialize_datetime, serialize_decimal
from app.models.user import User
from app.routes.sales import _bounds


router = APIRouter()

EXPENSE_STATUSES = (EXPENSE_PAID, "pendiente")


class ExpenseCreate(BaseModel):
    amount: condecimal(max_digits=12, decimal_places=2, gt=0)
    category: str = "otros"
    description: str = ""
    status: str = EXPENSE_PAID
    payment_method: str = "efectivo"


def serialize_expense(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "amount": serialize_decimal(expense.amount),
        "category": expense.category,
        "description": expense.description,
        "status": expense.status,
        "payment_method": expense.payment_method,
        "created_by": expense.created_by,
        "created_at": serialize_datetime(expense.created_at),
    }


@router.post("", status_code=201)
def create_expense(data: ExpenseCreate, repository=Depends(get_repository), user: User = Depends(get_current_user)):
    if data.category not in EXPENSE_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category: {data.category}")
    if data.status not in EXPENSE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {data.status}")
    if data.payment_method not in PAYMENT_METHODS:
        raise HTTPException(status_code=400, detail=f"Invalid payment method: {data.payment_method}")
    expense = Expense(
        amount=money(data.amount),
        category=data.category,
        description=data.description,
        status=data.status,
        payment_method=data.payment_method,
        created_by=user.email,
    )
    repository.add_expense(expense)
    return serialize_expense(expense)


@router.get("")
def list_expenses(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    repository=Depends(get_repository),
    user: User = Depends(get_current_user),
):
    start, end = _bounds(start, end)
    return [serialize_expense(e) for e in repository.list_expenses(start, end)]
