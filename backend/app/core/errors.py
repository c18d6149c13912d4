"""
Errores de dominio del POS.

Cada error lleva un `kind` estable y un mensaje legible; las rutas los
devuelven como `{"error": kind, "message": message}`.
"""
from typing import Dict


class PosError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ValidationError(PosError):
    """Entrada inválida (monto negativo, campo requerido faltante)."""
    kind = "validation_error"
    status_code = 400


class ConflictError(PosError):
    """Estado incompatible, p. ej. una segunda caja abierta o un doble cierre."""
    kind = "conflict"
    status_code = 409


class NotFoundError(PosError):
    kind = "not_found"
    status_code = 404


class PersistenceError(PosError):
    """Almacenamiento no disponible."""
    kind = "persistence_error"
    status_code = 503


class NotificationError(PosError):
    """El supervisor no respondió o respondió con error. Nunca se propaga."""
    kind = "notification_error"
    status_code = 502
