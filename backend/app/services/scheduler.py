"""
Corte automático de caja.

Dos hilos supervisados ejecutan trabajos independientes, así un corte lento
no retrasa la verificación:

- Corte: a las horas locales configuradas (por defecto 00:00 y 12:00).
- Verificación: cada N minutos envía HEALTH_CHECK al supervisor, haya o no
  cortes, para que pueda detectar un proceso muerto.

Estados de un corte: idle -> running -> reporting_success | reporting_failure
-> idle. Un corte fallido se reporta y no se reintenta; la siguiente
ejecución programada no hereda nada de la anterior.

`tick(now)` dispara los trabajos vencidos; cada hilo solo revisa el suyo en
bucle, así que las pruebas pueden usar un reloj falso sin hilos.
"""
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo
import logging
import threading

from app.core.entities import TRIGGER_MANUAL, TRIGGER_SCHEDULER, CashCutReport
from app.core.errors import ConflictError
from app.services.cash_cut_service import CashCutService
from app.services.supervisor import STATUS_ERROR, STATUS_HEALTH_CHECK, STATUS_SUCCESS, SupervisorClient


logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    idle = "idle"
    running = "running"
    reporting_success = "reporting_success"
    reporting_failure = "reporting_failure"


def parse_cut_times(values: Iterable[str]) -> List[time]:
    """Convierte ["00:00", "12:00"] en horas ordenadas; ValueError si alguna es inválida."""
    parsed = []
    for raw in values:
        try:
            hours, minutes = raw.strip().split(":")
            parsed.append(time(int(hours), int(minutes)))
        except ValueError:
            raise ValueError(f"Hora de corte inválida: {raw!r}")
    if not parsed:
        raise ValueError("Se requiere al menos una hora de corte")
    return sorted(set(parsed))


def next_cut_time(now: datetime, cut_times: List[time], tz: ZoneInfo) -> datetime:
    """Siguiente hora de corte estrictamente posterior a `now`."""
    local = now.astimezone(tz)
    for day_offset in range(0, 2):
        day = local.date() + timedelta(days=day_offset)
        for cut in cut_times:
            candidate = datetime.combine(day, cut, tzinfo=tz)
            if candidate > local:
                return candidate
    # Inalcanzable con al menos una hora configurada
    raise ValueError("No hay horas de corte configuradas")


class CashCutScheduler:
    def __init__(
        self,
        cash_cuts: CashCutService,
        supervisor: SupervisorClient,
        *,
        cut_times: List[time],
        timezone_name: str,
        health_check_interval: timedelta,
        clock: Optional[Callable[[], datetime]] = None,
        max_sleep_seconds: float = 60.0,
    ) -> None:
        self.cash_cuts = cash_cuts
        self.supervisor = supervisor
        self.cut_times = cut_times
        self.tz = ZoneInfo(timezone_name)
        self.health_check_interval = health_check_interval
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._max_sleep = max_sleep_seconds

        self._state = SchedulerState.idle
        self._state_lock = threading.Lock()
        self._cut_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

        now = self._clock()
        self.next_cut_at = next_cut_time(now, self.cut_times, self.tz)
        self.next_health_check_at = now + self.health_check_interval
        self.last_run_at: Optional[datetime] = None
        self.last_report_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self.runs = 0
        self.failures = 0

    @classmethod
    def from_settings(cls, settings, cash_cuts: CashCutService, supervisor: SupervisorClient,
                      **kwargs) -> "CashCutScheduler":
        return cls(
            cash_cuts,
            supervisor,
            cut_times=parse_cut_times(settings.cut_times),
            timezone_name=settings.timezone,
            health_check_interval=timedelta(minutes=settings.health_check_interval_minutes),
            **kwargs,
        )

    # -- estado -----------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _set_state(self, state: SchedulerState) -> None:
        with self._state_lock:
            self._state = state

    @property
    def is_running(self) -> bool:
        return bool(self._threads) and all(t.is_alive() for t in self._threads)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "state": self._state.value,
            "timezone": str(self.tz),
            "cut_times": [t.strftime("%H:%M") for t in self.cut_times],
            "next_cut_at": self.next_cut_at.isoformat(),
            "next_health_check_at": self.next_health_check_at.isoformat(),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_report_id": self.last_report_id,
            "last_error": self.last_error,
            "runs": self.runs,
            "failures": self.failures,
        }

    # -- ciclo de vida ------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            logger.warning("Cash cut scheduler already running; ignoring second start")
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._cut_loop, name="cash-cut-scheduler", daemon=True),
            threading.Thread(target=self._health_loop, name="cash-cut-health-check", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Cash cut scheduler started: cuts at %s (%s), next at %s",
            ", ".join(t.strftime("%H:%M") for t in self.cut_times), self.tz, self.next_cut_at.isoformat(),
        )

    def stop(self, timeout: float = 10.0) -> None:
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Scheduler thread %s did not stop within %ss", thread.name, timeout)
        self._threads = []
        logger.info("Cash cut scheduler stopped")

    def _seconds_until(self, due: datetime) -> float:
        now = self._clock()
        return max(0.0, min(self._max_sleep, (due - now).total_seconds()))

    def _loop(self, job: Callable[[datetime], None], next_due: Callable[[], datetime]) -> None:
        while not self._stop_event.is_set():
            try:
                job(self._clock())
            except Exception:
                logger.exception("Cash cut scheduler job %s failed", job.__name__)
            self._stop_event.wait(self._seconds_until(next_due()))

    def _cut_loop(self) -> None:
        self._loop(self._tick_cuts, lambda: self.next_cut_at)

    def _health_loop(self) -> None:
        self._loop(self._tick_health, lambda: self.next_health_check_at)

    def _tick_cuts(self, now: datetime) -> None:
        if now >= self.next_cut_at:
            self.next_cut_at = next_cut_time(now, self.cut_times, self.tz)
            self.run_scheduled_cut(now)

    def _tick_health(self, now: datetime) -> None:
        if now >= self.next_health_check_at:
            self.next_health_check_at = now + self.health_check_interval
            self.send_health_check()

    def tick(self, now: Optional[datetime] = None) -> None:
        """Ejecuta los trabajos vencidos a `now`."""
        now = now or self._clock()
        self._tick_cuts(now)
        self._tick_health(now)

    # -- trabajos ---------------------------------------------------------------

    def _execute(self, triggered_by: str, now: datetime, created_by: Optional[str], notes: str) -> CashCutReport:
        label = "automático" if triggered_by == TRIGGER_SCHEDULER else "manual"
        self._set_state(SchedulerState.running)
        self.last_run_at = now
        self.runs += 1
        logger.info("Starting %s cash cut", triggered_by)
        try:
            try:
                report = self.cash_cuts.perform_cut(triggered_by, now, created_by=created_by, notes=notes)
            except Exception as exc:
                self.failures += 1
                self.last_error = str(exc)
                self._set_state(SchedulerState.reporting_failure)
                logger.exception("Cash cut failed")
                self.supervisor.report(STATUS_ERROR, f"Error en corte {label}", {"error": str(exc)})
                raise

            self.last_error = None
            self.last_report_id = report.id
            self._set_state(SchedulerState.reporting_success)
            logger.info("Cash cut completed: total processed %s", report.total_sales)
            self.supervisor.report(STATUS_SUCCESS, f"Corte {label} completado", self._summary(report))
            return report
        finally:
            self._set_state(SchedulerState.idle)

    def _summary(self, report: CashCutReport) -> Dict[str, Any]:
        return {
            "id": report.id,
            "triggeredBy": report.triggered_by,
            "periodStart": report.period_start.isoformat(),
            "periodEnd": report.period_end.isoformat(),
            "total": float(report.total_sales),
            "totalExpenses": float(report.total_expenses),
            "netTotal": float(report.net_total),
            "totalRecords": report.total_records,
        }

    def run_scheduled_cut(self, now: Optional[datetime] = None) -> Optional[CashCutReport]:
        """Corte programado: los errores se reportan y no se propagan."""
        now = now or self._clock()
        if not self._cut_lock.acquire(blocking=False):
            logger.warning("Cash cut already in progress; skipping scheduled run at %s", now.isoformat())
            return None
        try:
            return self._execute(TRIGGER_SCHEDULER, now, None, "")
        except Exception:
            # Ya registrado y reportado al supervisor en _execute
            return None
        finally:
            self._cut_lock.release()

    def trigger_manual(self, created_by: Optional[str] = None, notes: str = "") -> CashCutReport:
        """Corte manual: mismo flujo que el programado, pero el error llega al llamador."""
        if not self._cut_lock.acquire(blocking=False):
            raise ConflictError("Ya hay un corte en proceso")
        try:
            return self._execute(TRIGGER_MANUAL, self._clock(), created_by, notes)
        finally:
            self._cut_lock.release()

    def send_health_check(self) -> bool:
        return self.supervisor.report(
            STATUS_HEALTH_CHECK,
            "Verificación periódica",
            {"status": "ONLINE", "nextScheduledRun": self.next_cut_at.isoformat()},
        )
