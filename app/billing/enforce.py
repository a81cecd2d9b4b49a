# app/billing/enforce.py
from typing import Optional
from fastapi import status
from app.errors import ApiError


def ensure_credits(balance: Optional[int], cost: Optional[int]):
    """Pre-flight balance check used when credit enforcement is switched on."""
    if balance is None or cost is None:
        return
    if balance < cost:
        raise ApiError(
            status.HTTP_402_PAYMENT_REQUIRED,
            "Not enough credits",
            credits=balance,
            creditsRequired=cost,
        )
