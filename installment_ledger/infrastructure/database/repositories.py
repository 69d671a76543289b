"""Data access layer for installment payment records"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from installment_ledger.infrastructure.database.models import PaymentRecord
from installment_ledger.domain.exceptions import DuplicatePaymentIdentityError
from installment_ledger.domain.models import (
    CompletedPayment,
    GroupIdentity,
    IncomingPayment,
    PaymentStatus,
    PaymentType,
    PlannedPayment,
    ProjectedPayment,
)


def _within_tolerance(column, amount: Decimal, tolerance: float):
    """Inclusive relative band around `amount`"""
    margin = amount * Decimal(str(tolerance))
    return column.between(amount - margin, amount + margin)


def _outside_current_row(source_batch: str, source_row: Optional[int]):
    """
    Exclude rows written by other rows of the same batch.

    Rows last touched by the very same (batch, row) stay visible so a
    re-run of that row finds its own earlier writes.
    """
    other_batch = PaymentRecord.source_batch != source_batch
    if source_row is None:
        return other_batch
    return or_(other_batch, PaymentRecord.source_row == source_row)


def _is_payment_identity_conflict(error: IntegrityError) -> bool:
    """
    Unique violation on payment_identity.

    PostgreSQL names the constraint (installment_payment_payment_identity_key),
    SQLite names the column; both mention payment_identity.
    """
    message = str(error.orig).lower()
    is_unique = "unique" in message or "duplicate key" in message
    return is_unique and "payment_identity" in message


class PaymentRepository:
    """Repository for installment payment records"""

    def __init__(self, db: Session):
        self.db = db

    # Lookups by identity

    def get_by_id(self, payment_id: uuid.UUID) -> Optional[PaymentRecord]:
        return self.db.query(PaymentRecord).filter(PaymentRecord.id == payment_id).first()

    def find_by_payment_identity(self, payment_identity: str) -> Optional[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.payment_identity == payment_identity)
            .first()
        )

    def find_by_group_identity(self, group_identity: str) -> List[PaymentRecord]:
        """All payments of a purchase, ordered by installment index"""
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.group_identity == group_identity)
            .order_by(PaymentRecord.payment_index)
            .all()
        )

    def find_any_in_group(self, group_identity: str) -> Optional[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.group_identity == group_identity)
            .first()
        )

    # Lookups by metadata

    def _bucket(self, row: IncomingPayment, index: int):
        return self.db.query(PaymentRecord).filter(
            PaymentRecord.payment_type == PaymentType.INSTALLMENT.value,
            PaymentRecord.business_id == row.business_id,
            PaymentRecord.card_id == row.card_id,
            PaymentRecord.deal_date == row.deal_date,
            PaymentRecord.payment_total == row.payment_total,
            PaymentRecord.payment_index == index,
        )

    def find_exact_duplicate(self, row: IncomingPayment, tolerance: float) -> Optional[PaymentRecord]:
        """Completed payment already recorded for this row by an earlier batch"""
        return (
            self._bucket(row, row.payment_index)
            .filter(
                PaymentRecord.status == PaymentStatus.COMPLETED.value,
                _within_tolerance(PaymentRecord.original_amount, row.deal_total, tolerance),
                _outside_current_row(row.source_batch, row.source_row),
            )
            .order_by(PaymentRecord.created_at, PaymentRecord.group_identity)
            .first()
        )

    def find_projected_slot(self, row: IncomingPayment, tolerance: float) -> Optional[PaymentRecord]:
        """Projected payment this row can fulfil"""
        return (
            self._bucket(row, row.payment_index)
            .filter(
                PaymentRecord.status == PaymentStatus.PROJECTED.value,
                _within_tolerance(PaymentRecord.original_amount, row.deal_total, tolerance),
            )
            .order_by(PaymentRecord.created_at, PaymentRecord.group_identity)
            .first()
        )

    def find_orphaned_first_payment(
        self,
        row: IncomingPayment,
        base_group_identity: str,
        tolerance: float,
    ) -> Optional[PaymentRecord]:
        """Completed payment 1 stored under an identity other than the base one"""
        return (
            self._bucket(row, 1)
            .filter(
                PaymentRecord.status == PaymentStatus.COMPLETED.value,
                PaymentRecord.group_identity != base_group_identity,
                _within_tolerance(PaymentRecord.original_amount, row.deal_total, tolerance),
                _outside_current_row(row.source_batch, row.source_row),
            )
            .order_by(PaymentRecord.created_at, PaymentRecord.group_identity)
            .first()
        )

    # Writes

    @staticmethod
    def build_record(row: IncomingPayment, group: GroupIdentity, planned: PlannedPayment) -> PaymentRecord:
        """Ledger row for one planned payment of the row's purchase"""
        return PaymentRecord(
            business_id=row.business_id,
            card_id=row.card_id,
            deal_date=row.deal_date,
            original_amount=row.deal_total,
            original_currency=row.original_currency,
            exchange_rate=row.exchange_rate,
            canonical_amount=planned.amount,
            payment_type=PaymentType.INSTALLMENT.value,
            status=planned.status.value,
            group_identity=group.value,
            payment_index=planned.index,
            payment_total=row.payment_total,
            payment_identity=group.payment_identity(planned.index),
            actual_charge_date=planned.actual_charge_date if isinstance(planned, CompletedPayment) else None,
            projected_charge_date=planned.projected_charge_date if isinstance(planned, ProjectedPayment) else None,
            source_batch=row.source_batch,
            source_row=row.source_row,
        )

    def insert_one(self, record: PaymentRecord) -> PaymentRecord:
        return self.insert_many([record])[0]

    def insert_many(self, records: List[PaymentRecord]) -> List[PaymentRecord]:
        """Stage records and flush; the caller owns the commit"""
        self.db.add_all(records)
        try:
            self.db.flush()
        except IntegrityError as e:
            if not _is_payment_identity_conflict(e):
                raise
            identity = records[0].payment_identity if len(records) == 1 else None
            raise DuplicatePaymentIdentityError(identity) from e
        return records

    def complete_projection(
        self,
        record: PaymentRecord,
        row: IncomingPayment,
        actual_charge_date: date,
    ) -> PaymentRecord:
        """Promote a projected payment to completed with the observed charge"""
        record.status = PaymentStatus.COMPLETED.value
        record.projected_charge_date = None
        return self.reconcile_payment(record, row, actual_charge_date)

    def reconcile_payment(
        self,
        record: PaymentRecord,
        row: IncomingPayment,
        actual_charge_date: date,
    ) -> PaymentRecord:
        """Overwrite a completed payment with the observed charge"""
        record.actual_charge_date = actual_charge_date
        record.canonical_amount = row.canonical_amount
        record.exchange_rate = row.exchange_rate
        record.source_batch = row.source_batch
        record.source_row = row.source_row
        self.db.flush()
        return record
