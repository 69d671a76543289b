"""Per-row reconciliation of incoming installment payments against the ledger"""

from decimal import Decimal
from typing import Optional

from installment_ledger.config import settings
from installment_ledger.domain.models import (
    IncomingPayment,
    PaymentStatus,
    Resolution,
    ResolutionResult,
)
from installment_ledger.domain.schedule import amount_discrepancy
from installment_ledger.infrastructure.database.models import PaymentRecord
from installment_ledger.infrastructure.database.repositories import PaymentRepository
from installment_ledger.infrastructure.observability.logging import log_discrepancy, log_resolution
from installment_ledger.infrastructure.observability.metrics import discrepancy_counter, record_resolution
from installment_ledger.services.group_builder import GroupBuilder, base_group_identity


class MatchResolver:
    """
    Decides what an incoming installment row means for the ledger.

    Decision order (first match wins):
    A. Completed payment already recorded by an earlier batch → no-op
    B. Projected payment awaiting this charge → promote to completed
    C. Payment 1 whose backfilled twin lives under another identity → reconcile
    D. Nothing matches → start a new group (first arrival or backfill)

    Holds no state between calls; every decision is re-derived from the
    store, so a row can be resolved again after a failure.
    """

    def __init__(
        self,
        repository: PaymentRepository,
        builder: GroupBuilder | None = None,
        exact_match_tolerance: float | None = None,
        orphan_match_tolerance: float | None = None,
        discrepancy_threshold: float | None = None,
    ):
        self.repository = repository
        self.builder = builder or GroupBuilder(repository)
        self.exact_match_tolerance = (
            settings.exact_match_tolerance if exact_match_tolerance is None else exact_match_tolerance
        )
        self.orphan_match_tolerance = (
            settings.orphan_match_tolerance if orphan_match_tolerance is None else orphan_match_tolerance
        )
        self.discrepancy_threshold = (
            settings.discrepancy_threshold if discrepancy_threshold is None else discrepancy_threshold
        )

    def resolve(self, row: IncomingPayment) -> ResolutionResult:
        result = self._resolve(row)
        record_resolution(result.resolution.value)
        log_resolution(row.source_batch, row.source_row, row.payment_index, row.payment_total, result)
        return result

    def _resolve(self, row: IncomingPayment) -> ResolutionResult:
        duplicate = self.repository.find_exact_duplicate(row, self.exact_match_tolerance)
        if duplicate is not None:
            return self._already_recorded(duplicate)

        slot = self.repository.find_projected_slot(row, self.exact_match_tolerance)
        if slot is not None:
            return self._fulfil_projection(slot, row)

        if row.payment_index == 1:
            result = self._reconcile_first_payment(row)
            if result is not None:
                return result

        return self._start_group(row)

    def _already_recorded(self, record: PaymentRecord) -> ResolutionResult:
        return ResolutionResult(
            resolution=Resolution.ALREADY_RECORDED,
            group_identity=record.group_identity,
            payment_id=record.id,
        )

    def _fulfil_projection(self, slot: PaymentRecord, row: IncomingPayment) -> ResolutionResult:
        expected = Decimal(slot.canonical_amount)
        charged_on = row.charge_date or slot.projected_charge_date or row.deal_date
        self.repository.complete_projection(slot, row, charged_on)

        discrepancy = self._check_amount(slot, expected, row, source="projection")
        return ResolutionResult(
            resolution=Resolution.PROJECTION_FULFILLED,
            group_identity=slot.group_identity,
            payment_id=slot.id,
            discrepancy=discrepancy,
        )

    def _reconcile_first_payment(self, row: IncomingPayment) -> Optional[ResolutionResult]:
        base = base_group_identity(row)
        existing = self.repository.find_by_payment_identity(base.payment_identity(1))

        if existing is not None and existing.status == PaymentStatus.COMPLETED.value:
            if self._written_elsewhere(existing, row):
                return self._already_recorded(existing)
            # Another row of this batch holds the base payment 1: a twin purchase
            return None

        orphan = self.repository.find_orphaned_first_payment(row, base.value, self.orphan_match_tolerance)
        if orphan is None:
            return None

        expected = Decimal(orphan.canonical_amount)
        self.repository.reconcile_payment(orphan, row, row.charge_date or row.deal_date)

        discrepancy = self._check_amount(orphan, expected, row, source="orphan")
        return ResolutionResult(
            resolution=Resolution.ORPHAN_RECONCILED,
            group_identity=orphan.group_identity,
            payment_id=orphan.id,
            discrepancy=discrepancy,
        )

    def _start_group(self, row: IncomingPayment) -> ResolutionResult:
        if row.payment_index == 1:
            creation = self.builder.create_group(row)
            return ResolutionResult(
                resolution=Resolution.GROUP_CREATED,
                group_identity=creation.group_identity.value,
                payment_id=creation.completed_payment_id,
                created_count=creation.projected_count + 1,
                projected_count=creation.projected_count,
            )

        backfill = self.builder.create_group_from_middle(row)
        return ResolutionResult(
            resolution=Resolution.GROUP_BACKFILLED,
            group_identity=backfill.group_identity.value,
            payment_id=backfill.current_payment_id,
            created_count=row.payment_total,
            backfilled_count=backfill.backfilled_count,
            projected_count=backfill.projected_count,
        )

    @staticmethod
    def _written_elsewhere(record: PaymentRecord, row: IncomingPayment) -> bool:
        """Record was written by an earlier batch, or by this very row on a previous run"""
        if record.source_batch != row.source_batch:
            return True
        return row.source_row is not None and record.source_row == row.source_row

    def _check_amount(
        self,
        record: PaymentRecord,
        expected: Decimal,
        row: IncomingPayment,
        source: str,
    ):
        discrepancy = amount_discrepancy(expected, row.canonical_amount, self.discrepancy_threshold)
        if discrepancy is not None:
            discrepancy_counter.labels(source=source).inc()
            log_discrepancy(record.group_identity, row.payment_index, discrepancy)
        return discrepancy
