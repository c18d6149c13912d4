from fastapi import APIRouter, Depends

from app.core.deps import get_scheduler
from app.services.scheduler import CashCutScheduler


router = APIRouter()


@router.get("/health")
def health(scheduler: CashCutScheduler = Depends(get_scheduler)):
    return {
        "status": "ok",
        "scheduler": {
            "running": scheduler.is_running,
            "state": scheduler.state.value,
            "next_cut_at": scheduler.next_cut_at.isoformat(),
        },
    }
