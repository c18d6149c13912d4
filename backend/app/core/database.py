import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.models.base import Base


logger = logging.getLogger(__name__)


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        # El scheduler usa su propio hilo
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Create tables in dev/test without running Alembic
    if settings.env in {"dev", "test"}:
        import app.models  # noqa: F401  registra todos los modelos

        Base.metadata.create_all(bind=engine)
        logger.info("Tables ensured for env=%s", settings.env)
