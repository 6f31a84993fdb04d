"""Installment schedule generation for credit-funded purchases"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from fintrack_engine.domain.exceptions import ValidationError
from fintrack_engine.domain.models import Frequency, InstallmentSlice
from fintrack_engine.domain.schedule import schedule_dates

CENT = Decimal("0.01")


def generate_installment_schedule(
    total_amount: Decimal,
    installment_count: int,
    base_date: date,
) -> List[InstallmentSlice]:
    """
    Split a credit purchase into equal monthly installments.

    Requirements:
    - ``installment_count`` slices of ``total_amount / installment_count`` each
    - first slice due on ``base_date``, then monthly on the same day-of-month
    - no remainder redistribution: each slice is rounded to the cent, so the sum
      may drift from the total by at most half a cent per slice

    Example:
        300.00 over 3 from 2025-01-15 -> 100.00 on 01-15, 02-15, 03-15
        100.00 over 3 -> 33.33 x 3 (sum 99.99)

    Raises:
        ValidationError: Non-positive amount or count
    """
    total_amount = Decimal(total_amount)
    if total_amount <= 0:
        raise ValidationError("Purchase amount must be positive")
    if installment_count < 1:
        raise ValidationError("At least one installment is required")

    per_installment = (total_amount / installment_count).quantize(CENT, rounding=ROUND_HALF_UP)

    return [
        InstallmentSlice(
            installment_number=i + 1,
            total_installments=installment_count,
            due_date=due,
            amount=per_installment,
        )
        for i, due in enumerate(schedule_dates(base_date, installment_count, Frequency.MONTHLY))
    ]
