from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    env: str = "dev"
    log_level: str = "INFO"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_minutes: int = 60 * 24 * 30
    database_url: str = "postgresql+psycopg2://posuser:pospass@db:5432/pos"
    backend_cors_origins: str = "http://localhost:5173"

    # "sql" usa la base de datos; "json" guarda en archivos bajo data_dir
    storage_backend: str = "sql"
    data_dir: str = "data"

    # Corte automático
    timezone: str = "America/Mexico_City"
    cash_cut_times: str = "00:00,12:00"
    health_check_interval_minutes: int = 120
    scheduler_enabled: bool = True
    report_retention_count: int = 100

    # Supervisor
    supervisor_url: str = "http://localhost:3001/agent-report"
    supervisor_agent_id: str = "task-master-cash-closer"
    supervisor_source: str = "auto-cash-closing"
    supervisor_timeout_seconds: float = 5.0

    # Tarifa de coworking
    first_hour_rate: float = 58
    block_rate: float = 29
    block_minutes: int = 30
    day_rate: float = 180
    day_threshold_hours: float = 3
    tolerance_minutes: int = 5

    port: int = int(os.getenv("PORT", "8000"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    @property
    def cut_times(self) -> List[str]:
        return [t.strip() for t in self.cash_cut_times.split(",") if t.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
