"""
Helpers de serialización para respuestas JSON y reportes al supervisor.
Los montos se guardan como Decimal y se exponen como float.
"""
from datetime import datetime
from decimal import Decimal


def serialize_decimal(value):
    """Convierte Decimal a float para serialización JSON"""
    if value is None:
        return None
    return float(value)


def serialize_datetime(value):
    """Convierte datetime a string ISO para serialización JSON"""
    if value is None:
        return None
    return value.isoformat()


def serialize_value(value):
    if isinstance(value, Decimal):
        return serialize_decimal(value)
    if isinstance(value, datetime):
        return serialize_datetime(value)
    return value
