"""Shared fixtures for the expense tracker tests."""

import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.expense_store import ExpenseStore


@pytest.fixture
def store():
    return ExpenseStore()


@pytest.fixture
def client(store):
    """API client bound to an isolated store, scheduler off."""
    app = create_app(store=store, scheduler_enabled=False, rate_limit="")
    return TestClient(app)


@pytest.fixture
def seeded(client):
    """Posts a small spread of expenses across categories and months."""
    records = [
        {"category": "Food", "amount": 50, "date": "2024-12-03"},
        {"category": "Travel", "amount": 120.5, "date": "2024-11-30"},
        {"category": "Food", "amount": 12.25, "date": "2024-12-01"},
        {"category": "Utilities", "amount": 80, "date": "2025-01-15"},
    ]
    for record in records:
        assert client.post("/expenses", json=record).status_code == 201
    return records
