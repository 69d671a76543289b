"""Installment schedule construction for reconciled purchases"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from installment_ledger.domain.exceptions import InvalidPaymentRowError
from installment_ledger.domain.models import (
    AmountDiscrepancy,
    CompletedPayment,
    PlannedPayment,
    ProjectedPayment,
    to_amount,
)
from installment_ledger.utils.date_utils import generate_charge_dates


def charge_date(deal_date: date, index: int, interval_days: int = 30) -> date:
    """Expected charge date of payment `index` (1-based)"""
    return generate_charge_dates(deal_date, index, interval_days)[-1]


def first_payment_amount(total: Decimal, regular_amount: Decimal, payment_total: int) -> Decimal:
    """
    Amount of payment 1 when reconstructing a plan from its regular payment.

    Payment 1 absorbs the whole rounding remainder so that
    payment1 + regular * (N - 1) == total exactly.

    Example:
        3099 over 24 payments of 129 → 3099 - 129 * 23 = 132
    """
    return to_amount(total) - to_amount(regular_amount) * (payment_total - 1)


def first_arrival_plan(
    deal_date: date,
    payment_total: int,
    amount: Decimal,
    actual_charge_date: Optional[date] = None,
    interval_days: int = 30,
) -> List[PlannedPayment]:
    """
    Rows for a purchase first seen at payment 1.

    Payment 1 is completed on its charge date (deal date by default);
    payments 2..N are projected every `interval_days` at the same amount.
    """
    dates = generate_charge_dates(deal_date, payment_total, interval_days)
    amount = to_amount(amount)

    plan: List[PlannedPayment] = [
        CompletedPayment(index=1, amount=amount, actual_charge_date=actual_charge_date or deal_date)
    ]
    for index in range(2, payment_total + 1):
        plan.append(ProjectedPayment(index=index, amount=amount, projected_charge_date=dates[index - 1]))
    return plan


def backfill_plan(
    deal_date: date,
    current_index: int,
    payment_total: int,
    current_amount: Decimal,
    regular_amount: Decimal,
    canonical_total: Decimal,
    actual_charge_date: Optional[date] = None,
    interval_days: int = 30,
) -> List[PlannedPayment]:
    """
    Rows for a purchase first seen at a mid-sequence payment.

    Requirements:
    - Payments 1..k-1 are reconstructed as completed history on their
      scheduled dates; payment 1 carries the rounding remainder
    - Payment k is completed with the observed amount and date
    - Payments k+1..N are projected at the regular amount
    - The deal total must leave a positive payment 1
    """
    dates = generate_charge_dates(deal_date, payment_total, interval_days)
    regular_amount = to_amount(regular_amount)
    payment1 = first_payment_amount(canonical_total, regular_amount, payment_total)
    if payment1 <= 0:
        raise InvalidPaymentRowError(
            f"Deal total {to_amount(canonical_total):.2f} does not cover "
            f"{payment_total - 1} payments of {regular_amount:.2f}"
        )

    plan: List[PlannedPayment] = []
    for index in range(1, current_index):
        plan.append(
            CompletedPayment(
                index=index,
                amount=payment1 if index == 1 else regular_amount,
                actual_charge_date=dates[index - 1],
            )
        )

    plan.append(
        CompletedPayment(
            index=current_index,
            amount=to_amount(current_amount),
            actual_charge_date=actual_charge_date or dates[current_index - 1],
        )
    )

    for index in range(current_index + 1, payment_total + 1):
        plan.append(ProjectedPayment(index=index, amount=regular_amount, projected_charge_date=dates[index - 1]))
    return plan


def amount_discrepancy(expected: Decimal, observed: Decimal, threshold: float) -> Optional[AmountDiscrepancy]:
    """Relative difference between expected and observed, when above threshold"""
    if expected == 0:
        return None

    ratio = abs(to_amount(observed) - to_amount(expected)) / to_amount(expected)
    if ratio <= Decimal(str(threshold)):
        return None

    return AmountDiscrepancy(
        expected=to_amount(expected),
        observed=to_amount(observed),
        percent=round(float(ratio) * 100, 1),
    )
