"""Pydantic models for Expense data"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union


class Category(str, Enum):
    """Predefined expense categories, in reporting order."""
    FOOD = "Food"
    TRAVEL = "Travel"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    UTILITIES = "Utilities"


CATEGORIES: List[str] = [c.value for c in Category]

# Integral amounts stay integers on the wire
Amount = Union[int, float]


class Expense(BaseModel):
    """
    Represents a single stored expense record.
    """
    id: int
    category: Category
    amount: Amount
    date: date

    model_config = ConfigDict(frozen=True)


class ExpenseFilter(BaseModel):
    """Optional criteria for narrowing a list of expenses."""
    category: Optional[str] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")

    model_config = ConfigDict(populate_by_name=True)


class ExpenseSummary(BaseModel):
    total: Amount = 0
    expenses: List[Expense] = []


class CategoryTotal(BaseModel):
    category: Category
    total: Amount = 0


class SpendingAnalysis(BaseModel):
    total_by_category: List[CategoryTotal] = Field(alias="totalByCategory")
    monthly_totals: Dict[str, Amount] = Field(alias="monthlyTotals")

    model_config = ConfigDict(populate_by_name=True)


class ApiResponse(BaseModel):
    """Uniform envelope returned by every endpoint."""
    status: Literal["success", "error"]
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, data: Any) -> "ApiResponse":
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True)
        return cls(status="success", data=data, error=None)

    @classmethod
    def failure(cls, message: str) -> "ApiResponse":
        return cls(status="error", data=None, error=message)
