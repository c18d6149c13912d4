"""
Reglas de cobro de coworking.

Tarifa por duración:
- Primera hora (o fracción): tarifa fija.
- Después de la primera hora: bloques de media hora (o fracción).
- Sesiones de `day_threshold_hours` o más: tarifa de día completo.
- Tolerancia: si la duración excede un múltiplo de media hora por
  `tolerance_minutes` o menos, ese excedente no se cobra (65 min = 60 min).

Estas funciones son puras: no leen ni escriben en la base.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, NamedTuple, Optional
import math

from app.core.entities import CoworkingSession, money


@dataclass(frozen=True)
class Tariff:
    first_hour_rate: Decimal = Decimal("58")
    block_rate: Decimal = Decimal("29")
    block_minutes: int = 30
    day_rate: Decimal = Decimal("180")
    day_threshold_hours: Decimal = Decimal("3")
    tolerance_minutes: int = 5

    @classmethod
    def from_settings(cls, settings) -> "Tariff":
        return cls(
            first_hour_rate=money(settings.first_hour_rate),
            block_rate=money(settings.block_rate),
            block_minutes=int(settings.block_minutes),
            day_rate=money(settings.day_rate),
            day_threshold_hours=Decimal(str(settings.day_threshold_hours)),
            tolerance_minutes=int(settings.tolerance_minutes),
        )


class CoworkingCost(NamedTuple):
    cost: Decimal
    minutes: int


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Acepta datetime o texto ISO-8601; cualquier otra cosa se considera ausente."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def raw_duration_minutes(start_time: Any, end_time: Any) -> int:
    """Minutos transcurridos redondeados hacia arriba; nunca negativos."""
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        return 0
    elapsed_ms = (_as_utc(end) - _as_utc(start)) // timedelta(milliseconds=1)
    return max(0, math.ceil(elapsed_ms / 60000))


def apply_tolerance(minutes: int, tariff: Tariff) -> int:
    remainder = minutes % tariff.block_minutes
    if 0 < remainder <= tariff.tolerance_minutes:
        return minutes - remainder
    return minutes


def cost_for_minutes(adjusted_minutes: int, tariff: Tariff) -> Decimal:
    if adjusted_minutes <= 0:
        return money(0)
    hours = Decimal(adjusted_minutes) / Decimal(60)
    if hours >= tariff.day_threshold_hours:
        return money(tariff.day_rate)
    if adjusted_minutes <= 60:
        return money(tariff.first_hour_rate)
    blocks = math.ceil((adjusted_minutes - 60) / tariff.block_minutes)
    return money(tariff.first_hour_rate + tariff.block_rate * blocks)


def compute_coworking_cost(start_time: Any, end_time: Any, tariff: Tariff) -> CoworkingCost:
    """
    Calcula el costo de una sesión de coworking.

    Args:
        start_time: Inicio de la sesión (datetime o ISO-8601)
        end_time: Fin de la sesión (datetime o ISO-8601)
        tariff: Tarifa vigente

    Returns:
        CoworkingCost con el costo y los minutos ajustados por tolerancia.
        Los minutos crudos se descartan: cualquier reporte debe mostrar
        los minutos ajustados.
    """
    minutes = apply_tolerance(raw_duration_minutes(start_time, end_time), tariff)
    return CoworkingCost(cost=cost_for_minutes(minutes, tariff), minutes=minutes)


def extras_total(session: CoworkingSession) -> Decimal:
    return money(sum(
        (money(extra.price) * int(extra.quantity or 0) for extra in session.consumed_extras),
        Decimal("0"),
    ))


def compute_session_total(session: CoworkingSession, tariff: Tariff, now: Optional[datetime] = None) -> Decimal:
    """
    Total de la sesión = costo por tiempo + consumos extra.

    Para sesiones abiertas se puede pasar `now` y obtener el cargo al momento;
    sin `now` una sesión sin fin cuenta como duración cero.
    """
    end_time = session.end_time if session.end_time is not None else now
    base = compute_coworking_cost(session.start_time, end_time, tariff)
    return money(base.cost + extras_total(session))
