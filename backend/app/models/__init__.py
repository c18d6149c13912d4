from .base import Base
from .user import User
from .sale import Sale
from .expense import Expense
from .coworking_session import CoworkingSession
from .cash_session import CashSession, CashWithdrawal
from .cash_cut import CashCutReport

__all__ = [
    "Base",
    "User",
    "Sale",
    "Expense",
    "CoworkingSession",
    "CashSession",
    "CashWithdrawal",
    "CashCutReport",
]
