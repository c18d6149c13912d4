"""
Cliente del supervisor de agentes.

Los reportes son de mejor esfuerzo: cualquier fallo al entregarlos se
registra en el log y nunca se propaga. Para cuando se intenta el reporte, el
corte ya quedó guardado.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import logging

import httpx

from app.core.errors import NotificationError


logger = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"
STATUS_HEALTH_CHECK = "HEALTH_CHECK"


class SupervisorClient:
    def __init__(
        self,
        url: str,
        agent_id: str,
        source: str,
        *,
        timeout: float = 5.0,
        http_client: httpx.Client | None = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.url = url
        self.agent_id = agent_id
        self.source = source
        self._http_client = http_client or httpx.Client(timeout=timeout)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SupervisorClient":
        return cls(
            settings.supervisor_url,
            settings.supervisor_agent_id,
            settings.supervisor_source,
            timeout=settings.supervisor_timeout_seconds,
            **kwargs,
        )

    def build_payload(self, status: str, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "source": self.source,
            "status": status,
            "message": message,
            "timestamp": self._clock().astimezone(timezone.utc).isoformat(),
            "data": data or {},
        }

    def send(self, status: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Envía el reporte; lanza NotificationError si no se entregó."""
        payload = self.build_payload(status, message, data)
        try:
            response = self._http_client.post(
                self.url,
                json=payload,
                headers={"Agent-ID": self.agent_id},
            )
        except httpx.HTTPError as exc:
            raise NotificationError(f"No se pudo contactar al supervisor: {exc}") from exc
        if not response.is_success:
            raise NotificationError(f"El supervisor respondió con estado {response.status_code}")

    def report(self, status: str, message: str, data: Optional[Dict[str, Any]] = None) -> bool:
        if not self.url:
            logger.debug("Supervisor URL not configured; skipping %s report", status)
            return False
        try:
            self.send(status, message, data)
        except NotificationError as exc:
            logger.warning("Supervisor report %s not delivered: %s", status, exc.message)
            return False
        except Exception:
            # El reporte nunca debe tumbar al llamador
            logger.exception("Supervisor report %s failed", status)
            return False
        logger.info("Supervisor report %s delivered", status)
        return True

    def close(self) -> None:
        self._http_client.close()
