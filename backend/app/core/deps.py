from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.coworking_rules import Tariff
from app.core.database import get_db
from app.core.security import decode_token
from app.models.user import User
from app.core.roles import can_administer
from app.services.cash_cut_service import CashCutService
from app.services.cash_session_service import CashSessionLedger
from app.services.coworking_service import CoworkingService
from app.services.scheduler import CashCutScheduler


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not can_administer(user.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
    return user


def get_repository(request: Request):
    return request.app.state.repository


def get_tariff() -> Tariff:
    return Tariff.from_settings(settings)


def get_scheduler(request: Request) -> CashCutScheduler:
    return request.app.state.scheduler


def get_cash_cut_service(scheduler: CashCutScheduler = Depends(get_scheduler)) -> CashCutService:
    return scheduler.cash_cuts


def get_ledger(
    repository=Depends(get_repository),
    cash_cuts: CashCutService = Depends(get_cash_cut_service),
) -> CashSessionLedger:
    return CashSessionLedger(repository, cash_cuts)


def get_coworking_service(
    repository=Depends(get_repository),
    tariff: Tariff = Depends(get_tariff),
) -> CoworkingService:
    return CoworkingService(repository, tariff)
