"""In-memory storage for expense records."""
import logging
from datetime import date
from typing import List

from models.expense import Category, Expense

logger = logging.getLogger(__name__)


class ExpenseStore:
    """
    Append-only collection of expenses, kept in insertion order.

    Ids are sequential: each new record gets the current record count + 1.
    Records live for the lifetime of the process. Not thread-safe; the
    application owns one instance and hands it to request handlers and the
    summary scheduler, which all run on the same event loop.
    """

    def __init__(self) -> None:
        self._expenses: List[Expense] = []

    def add(self, category: Category, amount: float, date: date) -> Expense:
        expense = Expense(id=len(self._expenses) + 1, category=category, amount=amount, date=date)
        self._expenses.append(expense)
        logger.debug(f"Stored expense #{expense.id}: {expense.category.value} {expense.amount} on {expense.date}")
        return expense

    def all(self) -> List[Expense]:
        return list(self._expenses)

    def __len__(self) -> int:
        return len(self._expenses)
