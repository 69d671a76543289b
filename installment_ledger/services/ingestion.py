"""Sequential ingestion of classified installment rows, one unit of work per row"""

import dataclasses
import logging
import uuid
from typing import Iterable, List

from sqlalchemy.orm import Session

from installment_ledger.domain.exceptions import PaymentNotFoundError
from installment_ledger.domain.models import BatchSummary, IncomingPayment, ResolutionResult
from installment_ledger.infrastructure.database.models import PaymentRecord
from installment_ledger.infrastructure.database.repositories import PaymentRepository
from installment_ledger.services.match_resolver import MatchResolver

logger = logging.getLogger(__name__)


class IngestionService:
    """
    Feeds parsed installment rows to the resolver in source-file order.

    Each row is committed on its own, including every row a new group
    creates, so a failure never leaves a partially written group. Later rows
    depend on the writes of earlier ones, so rows are never reordered.
    """

    def __init__(self, db: Session, resolver: MatchResolver | None = None):
        self.db = db
        self.repository = PaymentRepository(db)
        self.resolver = resolver or MatchResolver(self.repository)

    def process_row(self, row: IncomingPayment) -> ResolutionResult:
        try:
            result = self.resolver.resolve(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result

    def process_batch(self, source_batch: str, rows: Iterable[IncomingPayment]) -> BatchSummary:
        """
        Resolve every row of one ingestion batch.

        Rows without an explicit ordinal get their 1-based position, which
        lets a re-run of the batch recognise its own writes.
        """
        summary = BatchSummary(source_batch=source_batch)
        logger.info("Starting installment batch", extra={"source_batch": source_batch})

        for position, row in enumerate(rows, start=1):
            row = dataclasses.replace(
                row,
                source_batch=source_batch,
                source_row=row.source_row if row.source_row is not None else position,
            )
            try:
                summary.add(self.process_row(row))
            except Exception as e:
                logger.error(
                    f"Installment row failed: {e}",
                    extra={"source_batch": source_batch, "source_row": row.source_row},
                )
                raise

        logger.info(
            "Installment batch completed",
            extra={
                "source_batch": source_batch,
                "row_count": summary.row_count,
                "rows_created": summary.rows_created,
                "rows_updated": summary.rows_updated,
                "discrepancies": summary.discrepancies,
            },
        )
        return summary

    def get_group(self, group_identity: str) -> List[PaymentRecord]:
        """Every payment of one purchase, ordered by index"""
        payments = self.repository.find_by_group_identity(group_identity)
        if not payments:
            raise PaymentNotFoundError(f"Installment group {group_identity[:16]} not found")
        return payments

    def get_installment_group(self, payment_id: uuid.UUID) -> List[PaymentRecord]:
        """Group timeline for the purchase a payment belongs to"""
        payment = self.repository.get_by_id(payment_id)
        if payment is None or not payment.group_identity:
            raise PaymentNotFoundError("Payment is not part of an installment group")
        return self.get_group(payment.group_identity)
