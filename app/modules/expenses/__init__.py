"""
Módulo de gastos pagados desde la caja del turno abierto
"""

from .models import Expense, EXPENSE_CATEGORIES

__all__ = ["Expense", "EXPENSE_CATEGORIES"]
