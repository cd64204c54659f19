"""Service layer for handling expense-related logic."""
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from models.expense import (
    CATEGORIES,
    Category,
    CategoryTotal,
    Expense,
    ExpenseFilter,
    ExpenseSummary,
    SpendingAnalysis,
)
from services.expense_store import ExpenseStore

logger = logging.getLogger(__name__)

INVALID_CATEGORY = "Invalid category"
INVALID_AMOUNT = "Amount must be a positive number"
INVALID_DATE = "Invalid date format"


class ExpenseValidationError(ValueError):
    """Raised when a candidate expense breaks one of the validation rules."""


def parse_calendar_date(value: Any) -> Optional[date]:
    """
    Parses an ISO-8601 date or date-time string into a calendar date.

    Date-times carrying an offset are normalized to their UTC calendar date.
    Returns None for anything that is not a parseable string.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


# --- Validation ---

def validate_expense(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Checks a candidate expense and returns its normalized fields.

    Rules are checked in order and the first failure is raised:
    - category must be one of the predefined categories;
    - amount must be a finite number greater than zero;
    - date must parse as a calendar date.
    """
    category = payload.get("category")
    if not isinstance(category, str) or category not in CATEGORIES:
        raise ExpenseValidationError(INVALID_CATEGORY)

    amount = payload.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ExpenseValidationError(INVALID_AMOUNT)
    if not math.isfinite(amount) or amount <= 0:
        raise ExpenseValidationError(INVALID_AMOUNT)

    parsed_date = parse_calendar_date(payload.get("date"))
    if parsed_date is None:
        raise ExpenseValidationError(INVALID_DATE)

    return {"category": Category(category), "amount": amount, "date": parsed_date}


def add_expense(store: ExpenseStore, payload: Mapping[str, Any]) -> Expense:
    """Validates a candidate expense and appends it to the store."""
    try:
        fields = validate_expense(payload)
    except ExpenseValidationError as e:
        logger.warning(f"Rejected expense {dict(payload)}: {e}")
        raise
    expense = store.add(**fields)
    logger.info(f"Added expense #{expense.id} ({expense.category.value}, {expense.amount}, {expense.date})")
    return expense


# --- Aggregation ---

def _parse_bound(name: str, value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    parsed = parse_calendar_date(value)
    if parsed is None:
        logger.warning(f"Ignoring unparseable {name} filter: {value!r}")
    return parsed


def summarize(store: ExpenseStore, filters: Optional[ExpenseFilter] = None) -> ExpenseSummary:
    """
    Filters stored expenses and totals their amounts.

    Category matching is exact. Date bounds are inclusive and each one is
    applied only when given. Output keeps the store's insertion order.
    """
    filters = filters or ExpenseFilter()
    start = _parse_bound("startDate", filters.start_date)
    end = _parse_bound("endDate", filters.end_date)

    expenses = store.all()
    if filters.category:
        expenses = [e for e in expenses if e.category.value == filters.category]
    if start is not None:
        expenses = [e for e in expenses if e.date >= start]
    if end is not None:
        expenses = [e for e in expenses if e.date <= end]

    total = sum(e.amount for e in expenses)
    logger.debug(f"Summarized {len(expenses)} of {len(store)} expenses with {filters.model_dump(by_alias=True)}: total={total}")
    return ExpenseSummary(total=total, expenses=expenses)


def analyze(store: ExpenseStore) -> SpendingAnalysis:
    """Breaks total spending down by category and by calendar month."""
    by_category = {category: 0 for category in CATEGORIES}
    monthly_totals: Dict[str, float] = {}
    for expense in store.all():
        by_category[expense.category.value] += expense.amount
        month = expense.date.strftime("%Y-%m")
        monthly_totals[month] = monthly_totals.get(month, 0) + expense.amount

    return SpendingAnalysis(
        total_by_category=[CategoryTotal(category=c, total=t) for c, t in by_category.items()],
        monthly_totals=monthly_totals,
    )
