"""Group construction for newly observed installment purchases"""

import logging
from typing import List

from installment_ledger.config import settings
from installment_ledger.domain.identity import group_identity, salted_identity
from installment_ledger.domain.models import (
    GroupBackfill,
    GroupCreation,
    GroupIdentity,
    IncomingPayment,
    PlannedPayment,
)
from installment_ledger.domain.schedule import backfill_plan, first_arrival_plan
from installment_ledger.infrastructure.database.models import PaymentRecord
from installment_ledger.infrastructure.database.repositories import PaymentRepository
from installment_ledger.infrastructure.observability.metrics import record_rows_written, salted_group_counter

logger = logging.getLogger(__name__)


def base_group_identity(row: IncomingPayment) -> GroupIdentity:
    """Deterministic identity of the purchase the row belongs to"""
    return GroupIdentity(
        group_identity(row.business_name, row.deal_total, row.payment_total, row.deal_date)
    )


class GroupBuilder:
    """Creates the full set of ledger rows for a purchase seen for the first time"""

    def __init__(self, repository: PaymentRepository, interval_days: int | None = None):
        self.repository = repository
        self.interval_days = interval_days or settings.payment_interval_days

    def _free_identity(self, row: IncomingPayment) -> GroupIdentity:
        """Base identity, or a salted one when a twin purchase already holds it"""
        base = base_group_identity(row)
        if self.repository.find_any_in_group(base.value) is None:
            return base

        salted = GroupIdentity(salted_identity(base.value), salted=True)
        salted_group_counter.inc()
        logger.info(
            "Base group identity occupied, salting",
            extra={
                "business_id": row.business_id,
                "payment_index": row.payment_index,
                "payment_total": row.payment_total,
                "base_group_identity": base.value[:16],
                "salted_group_identity": salted.value[:16],
            },
        )
        return salted

    def _insert_plan(
        self,
        row: IncomingPayment,
        group: GroupIdentity,
        plan: List[PlannedPayment],
    ) -> List[PaymentRecord]:
        records = [self.repository.build_record(row, group, planned) for planned in plan]
        self.repository.insert_many(records)
        record_rows_written(plan)
        return records

    def create_group(self, row: IncomingPayment) -> GroupCreation:
        """
        Start a group from payment 1 of N.

        Payment 1 is recorded as completed and payments 2..N as projected
        at the same amount, one interval apart.
        """
        group = self._free_identity(row)
        plan = first_arrival_plan(
            deal_date=row.deal_date,
            payment_total=row.payment_total,
            amount=row.canonical_amount,
            actual_charge_date=row.charge_date,
            interval_days=self.interval_days,
        )
        records = self._insert_plan(row, group, plan)

        logger.info(
            "Installment group created",
            extra={
                "business_id": row.business_id,
                "payment_total": row.payment_total,
                "group_identity": group.value[:16],
                "salted": group.salted,
            },
        )
        return GroupCreation(
            group_identity=group,
            completed_payment_id=records[0].id,
            projected_count=len(records) - 1,
        )

    def create_group_from_middle(self, row: IncomingPayment) -> GroupBackfill:
        """
        Start a group from payment k of N (k > 1).

        Payments 1..k-1 are backfilled as completed history, payment k is
        recorded as observed and payments k+1..N are projected.
        """
        group = self._free_identity(row)
        plan = backfill_plan(
            deal_date=row.deal_date,
            current_index=row.payment_index,
            payment_total=row.payment_total,
            current_amount=row.canonical_amount,
            regular_amount=row.canonical_amount,
            canonical_total=row.canonical_total,
            actual_charge_date=row.charge_date,
            interval_days=self.interval_days,
        )
        records = self._insert_plan(row, group, plan)
        current = records[row.payment_index - 1]

        logger.info(
            "Installment group backfilled",
            extra={
                "business_id": row.business_id,
                "payment_index": row.payment_index,
                "payment_total": row.payment_total,
                "group_identity": group.value[:16],
                "salted": group.salted,
            },
        )
        return GroupBackfill(
            group_identity=group,
            current_payment_id=current.id,
            backfilled_count=row.payment_index - 1,
            projected_count=row.payment_total - row.payment_index,
        )
