import os
import tempfile

# Antes de importar app.*: la configuración se lee al importar
_TEST_DIR = tempfile.mkdtemp(prefix="pos-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SUPERVISOR_URL"] = ""
os.environ["REPORT_RETENTION_COUNT"] = "100"

import pytest

from app.core.coworking_rules import Tariff
from app.core.database import SessionLocal, engine
from app.models import Base
from app.services.cash_cut_service import CashCutService, RetentionPolicy
from app.services.json_store import JsonFileRepository
from app.services.repository import SqlRepository


TZ = "America/Mexico_City"


class FakeSupervisor:
    """Guarda los reportes en lugar de enviarlos."""

    def __init__(self):
        self.reports = []

    def report(self, status, message, data=None):
        self.reports.append({"status": status, "message": message, "data": data or {}})
        return True

    def close(self):
        pass

    def statuses(self):
        return [r["status"] for r in self.reports]


@pytest.fixture
def sql_repository():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield SqlRepository(SessionLocal)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def json_repository(tmp_path):
    return JsonFileRepository(str(tmp_path / "data"))


@pytest.fixture(params=["sql", "json"])
def repository(request):
    return request.getfixturevalue(f"{request.param}_repository")


@pytest.fixture
def tariff():
    return Tariff()


@pytest.fixture
def cash_cuts(repository, tariff):
    return CashCutService(repository, tariff, TZ, RetentionPolicy(100))


@pytest.fixture
def supervisor():
    return FakeSupervisor()
