from enum import Enum


class Role(str, Enum):
    """owner y admin pueden forzar cortes y reparar totales; cashier solo opera la caja."""
    owner = "owner"
    admin = "admin"
    cashier = "cashier"


ADMIN_ROLES = frozenset({Role.owner.value, Role.admin.value})


def can_administer(role: str) -> bool:
    return role in ADMIN_ROLES
