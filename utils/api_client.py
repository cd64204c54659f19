"""Minimal HTTP client for posting expenses to a running server."""
import logging
import os
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_BASE_URL = os.getenv("EXPENSE_API_URL", "http://localhost:3000")

SAMPLE_EXPENSE = {"category": "Food", "amount": 50, "date": "2024-12-03"}


def add_expense(
    expense: Dict[str, Any],
    base_url: str = DEFAULT_BASE_URL,
    client: Optional[httpx.Client] = None,
) -> Dict[str, Any]:
    """
    Posts an expense to `/expenses` and returns the response envelope.

    Validation failures come back as an envelope with status "error".
    Transport failures and non-JSON error responses raise httpx errors.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(base_url=base_url, timeout=10.0)
    try:
        response = client.post("/expenses", json=expense)
        if response.status_code >= 500:
            response.raise_for_status()
        body = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Error adding expense {expense}: {e}")
        raise
    finally:
        if owns_client:
            client.close()

    if body.get("status") == "success":
        logger.info(f"Expense added: {body['data']}")
    else:
        logger.warning(f"Expense rejected ({response.status_code}): {body.get('error')}")
    return body


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    add_expense(SAMPLE_EXPENSE)
