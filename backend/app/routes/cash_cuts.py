from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.core.deps import get_cash_cut_service, get_current_user, get_scheduler, require_admin
from app.models.user import User
from app.services.cash_cut_service import CashCutService, serialize_report
from app.services.scheduler import CashCutScheduler


router = APIRouter()


class ManualCutRequest(BaseModel):
    notes: str = ""


@router.get("")
def list_cuts(
    limit: int = Query(50, ge=1, le=500),
    include_archived: bool = False,
    cash_cuts: CashCutService = Depends(get_cash_cut_service),
    user: User = Depends(get_current_user),
):
    return [serialize_report(r) for r in cash_cuts.list_reports(limit=limit, include_archived=include_archived)]


@router.get("/scheduler/status")
def scheduler_status(
    scheduler: CashCutScheduler = Depends(get_scheduler),
    user: User = Depends(get_current_user),
):
    return scheduler.status()


@router.post("/manual", status_code=201)
def manual_cut(
    data: ManualCutRequest,
    scheduler: CashCutScheduler = Depends(get_scheduler),
    user: User = Depends(require_admin),
):
    return serialize_report(scheduler.trigger_manual(created_by=user.email, notes=data.notes))


@router.get("/{report_id}")
def get_cut(
    report_id: str,
    cash_cuts: CashCutService = Depends(get_cash_cut_service),
    user: User = Depends(get_current_user),
):
    return serialize_report(cash_cuts.get_report(report_id))
