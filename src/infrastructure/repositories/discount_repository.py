# src/infrastructure/repositories/discount_repository.py

from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Discount
from src.domain.exceptions import PaymentValidationError


class DiscountRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> Discount | None:
        return self.db.execute(
            select(Discount).where(Discount.code == code)
        ).scalar_one_or_none()

    def get_active_percentage(self, code: str, on_date: date) -> Decimal:
        """
        Percentage for a code that is active on `on_date`.
        Unknown, inactive or expired codes are rejected.
        """
        discount = self.get_by_code(code)
        if discount is None:
            raise PaymentValidationError(f"Unknown discount code: {code}")
        if not discount.is_active:
            raise PaymentValidationError(f"Discount code {code} is not active")
        if not discount.valid_from <= on_date <= discount.valid_to:
            raise PaymentValidationError(f"Discount code {code} is not valid on {on_date}")
        return Decimal(discount.percentage)
