"""API Routes for expenses"""
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from typing import Annotated, Any, Dict, Optional
from services import expenses_service
from services.expense_store import ExpenseStore
from models.expense import ApiResponse, ExpenseFilter
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Dependency Function ---
def get_expense_store(request: Request) -> ExpenseStore:
    """Dependency to get the expense store owned by the application."""
    return request.app.state.expense_store

# Type hint for the dependency
ExpenseStoreDep = Annotated[ExpenseStore, Depends(get_expense_store)]

# --- API Routes ---

@router.post("/expenses", response_model=ApiResponse, status_code=201, summary="Add Expense", description="Validates and stores a single expense record.")
async def create_expense(store: ExpenseStoreDep, payload: Annotated[Dict[str, Any], Body(...)]) -> ApiResponse:
    """
    Adds an expense. Responds 400 with the first failing validation rule.
    """
    logger.info(f"POST /expenses endpoint called with {payload}")
    try:
        expense = expenses_service.add_expense(store, payload)
    except expenses_service.ExpenseValidationError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    return ApiResponse.success(expense)

@router.get("/expenses", response_model=ApiResponse, summary="List Expenses", description="Lists expenses, optionally filtered by category and an inclusive date range, with their total.")
async def list_expenses(
    store: ExpenseStoreDep,
    category: Optional[str] = Query(None, description="Exact category name."),
    start_date: Optional[str] = Query(None, alias="startDate", description="Inclusive lower bound (YYYY-MM-DD)."),
    end_date: Optional[str] = Query(None, alias="endDate", description="Inclusive upper bound (YYYY-MM-DD)."),
) -> ApiResponse:
    logger.info(f"GET /expenses endpoint called. category={category!r} startDate={start_date!r} endDate={end_date!r}")
    filters = ExpenseFilter(category=category, start_date=start_date, end_date=end_date)
    return ApiResponse.success(expenses_service.summarize(store, filters))

@router.get("/expenses/analysis", response_model=ApiResponse, summary="Analyze Spending", description="Totals spending per category and per calendar month.")
async def analyze_spending(store: ExpenseStoreDep) -> ApiResponse:
    logger.info("GET /expenses/analysis endpoint called.")
    return ApiResponse.success(expenses_service.analyze(store))
