"""
Servicio de sesiones de coworking: apertura, consumos extra, cobro y
reparación de totales guardados.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from app.core.coworking_rules import Tariff, compute_coworking_cost, compute_session_total
from app.core.entities import (
    COWORKING_ACTIVE,
    COWORKING_FINISHED,
    PAYMENT_METHODS,
    ConsumedExtra,
    CoworkingSession,
    Sale,
    money,
    utcnow,
)
from app.core.errors import ConflictError, NotFoundError, ValidationError


logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    updated: int = 0
    skipped: int = 0


def apply_closing_totals(session: CoworkingSession, tariff: Tariff) -> CoworkingSession:
    """Recalcula duración y total a partir de inicio, fin y extras."""
    session.duration_minutes = compute_coworking_cost(session.start_time, session.end_time, tariff).minutes
    session.total = compute_session_total(session, tariff)
    return session


def repair_session_totals(repository, tariff: Tariff, status: str = COWORKING_FINISHED) -> RepairResult:
    """
    Recalcula y guarda total y duración de todas las sesiones con `status`.

    Las sesiones sin hora de fin se omiten porque su duración no está definida.

    Returns:
        RepairResult con el conteo de sesiones actualizadas y omitidas
    """
    result = RepairResult()
    for session in repository.list_coworking_sessions(status=status):
        if session.end_time is None:
            logger.info("Skipping coworking session %s: no end time", session.id)
            result.skipped += 1
            continue
        previous = session.total
        apply_closing_totals(session, tariff)
        repository.save_coworking_session(session)
        logger.info(
            "Repaired coworking session %s: %s -> %s (%s min)",
            session.id, previous, session.total, session.duration_minutes,
        )
        result.updated += 1
    return result


class CoworkingService:
    def __init__(self, repository, tariff: Tariff):
        self.repository = repository
        self.tariff = tariff

    def get(self, session_id: str) -> CoworkingSession:
        session = self.repository.get_coworking_session(session_id)
        if session is None:
            raise NotFoundError(f"Sesión de coworking {session_id} no encontrada")
        return session

    def list_sessions(self, status: Optional[str] = None) -> List[CoworkingSession]:
        return self.repository.list_coworking_sessions(status=status)

    def current_charge(self, session: CoworkingSession, now: Optional[datetime] = None) -> Decimal:
        if session.status == COWORKING_FINISHED:
            return session.total
        return compute_session_total(session, self.tariff, now=now or utcnow())

    def start(self, client_name: str, created_by: Optional[str] = None,
              start_time: Optional[datetime] = None) -> CoworkingSession:
        if not client_name or not client_name.strip():
            raise ValidationError("El nombre del cliente es requerido")
        session = CoworkingSession(
            client_name=client_name.strip(),
            start_time=start_time or utcnow(),
            created_by=created_by,
        )
        return self.repository.save_coworking_session(session)

    def _active(self, session_id: str) -> CoworkingSession:
        session = self.get(session_id)
        if session.status != COWORKING_ACTIVE:
            raise ConflictError("La sesión de coworking ya fue cerrada")
        return session

    def add_extra(self, session_id: str, item_id: str, price, quantity: int = 1,
                  name: Optional[str] = None) -> CoworkingSession:
        if quantity <= 0:
            raise ValidationError("La cantidad debe ser mayor a cero")
        if money(price) < 0:
            raise ValidationError("El precio no puede ser negativo")
        session = self._active(session_id)
        for extra in session.consumed_extras:
            if extra.item_id == item_id:
                extra.quantity += quantity
                break
        else:
            session.consumed_extras.append(
                ConsumedExtra(item_id=item_id, name=name, price=money(price), quantity=quantity)
            )
        return self.repository.save_coworking_session(session)

    def remove_extra(self, session_id: str, item_id: str, quantity: Optional[int] = None) -> CoworkingSession:
        session = self._active(session_id)
        for extra in list(session.consumed_extras):
            if extra.item_id != item_id:
                continue
            if quantity and quantity < extra.quantity:
                extra.quantity -= quantity
            else:
                session.consumed_extras.remove(extra)
            return self.repository.save_coworking_session(session)
        raise NotFoundError(f"El producto {item_id} no está en la sesión")

    def checkout(self, session_id: str, payment_method: str = "efectivo",
                 end_time: Optional[datetime] = None,
                 closed_by: Optional[str] = None) -> Tuple[CoworkingSession, Sale]:
        """
        Cierra la sesión, fija su total y registra la venta correspondiente.

        `end_time` solo define la duración cobrada; la venta se fecha al
        momento del cobro para que caiga en el corte que aún no se ha hecho.
        La sesión y la venta se guardan juntas: si falla, la sesión sigue activa.
        """
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Método de pago inválido: {payment_method}")
        session = self._active(session_id)
        session.end_time = end_time or utcnow()
        session.status = COWORKING_FINISHED
        apply_closing_totals(session, self.tariff)

        sale = Sale(
            total=session.total,
            payment_method=payment_method,
            service="coworking",
            description=f"Coworking {session.client_name} ({session.duration_minutes} min)",
            coworking_session_id=session.id,
            created_by=closed_by,
            created_at=utcnow(),
        )
        self.repository.finish_coworking_session(session, sale)
        logger.info("Coworking session %s closed: total=%s", session.id, session.total)
        return session, sale
