from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.coworking_rules import Tariff
from app.core.database import init_db
from app.core.errors import PosError
from app.core.logging import configure_logging
from app.routes.auth import router as auth_router
from app.routes.health import router as health_router
from app.routes.sales import router as sales_router
from app.routes.expenses import router as expenses_router
from app.routes.coworking import router as coworking_router
from app.routes.cash_sessions import router as cash_sessions_router
from app.routes.cash_cuts import router as cash_cuts_router
from app.services.cash_cut_service import CashCutService, RetentionPolicy
from app.services.repository import build_repository
from app.services.scheduler import CashCutScheduler
from app.services.supervisor import SupervisorClient


logger = logging.getLogger(__name__)


def build_scheduler(repository, supervisor: SupervisorClient) -> CashCutScheduler:
    cash_cuts = CashCutService(
        repository,
        Tariff.from_settings(settings),
        settings.timezone,
        RetentionPolicy(settings.report_retention_count),
    )
    return CashCutScheduler.from_settings(settings, cash_cuts, supervisor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler: CashCutScheduler = app.state.scheduler
    if settings.scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Cash cut scheduler disabled (SCHEDULER_ENABLED=false)")
    try:
        yield
    finally:
        scheduler.stop()
        scheduler.supervisor.close()


def create_app(repository=None, supervisor: SupervisorClient | None = None) -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Café POS API", version="0.1.0", lifespan=lifespan)

    # Un solo repositorio y un solo scheduler por proceso
    app.state.repository = repository or build_repository(settings)
    app.state.scheduler = build_scheduler(app.state.repository, supervisor or SupervisorClient.from_settings(settings))

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(sales_router, prefix="/sales", tags=["sales"])
    app.include_router(expenses_router, prefix="/expenses", tags=["expenses"])
    app.include_router(coworking_router, prefix="/coworking", tags=["coworking"])
    app.include_router(cash_sessions_router, prefix="/cash-sessions", tags=["cash-sessions"])
    app.include_router(cash_cuts_router, prefix="/cash-cuts", tags=["cash-cuts"])

    return app


app = create_app()
