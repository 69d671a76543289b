"""Integration tests for ledger store lookups and writes"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from installment_ledger.domain.exceptions import DuplicatePaymentIdentityError
from installment_ledger.domain.models import CompletedPayment, GroupIdentity, PaymentStatus, ProjectedPayment
from installment_ledger.infrastructure.database.repositories import PaymentRepository

DEAL_DATE = date(2024, 1, 15)


def _seed(repository: PaymentRepository, row, group: str, planned) -> None:
    repository.insert_many([repository.build_record(row, GroupIdentity(group), p) for p in planned])


def test_insert_and_find_by_identity(repository: PaymentRepository, make_row):
    row = make_row()
    record = repository.insert_one(
        repository.build_record(row, GroupIdentity("group-a"), CompletedPayment(1, Decimal("132"), DEAL_DATE))
    )

    found = repository.find_by_payment_identity(GroupIdentity("group-a").payment_identity(1))
    assert found is not None
    assert found.id == record.id
    assert found.status == PaymentStatus.COMPLETED.value
    assert found.actual_charge_date == DEAL_DATE
    assert found.projected_charge_date is None
    assert found.original_amount == Decimal("3099.00")
    assert found.source_batch == "batch-1"


def test_duplicate_payment_identity_rejected(db: Session, repository: PaymentRepository, make_row):
    row = make_row()
    planned = CompletedPayment(1, Decimal("132"), DEAL_DATE)
    repository.insert_one(repository.build_record(row, GroupIdentity("group-a"), planned))
    db.commit()

    with pytest.raises(DuplicatePaymentIdentityError):
        repository.insert_one(repository.build_record(row, GroupIdentity("group-a"), planned))
    db.rollback()

    assert len(repository.find_by_group_identity("group-a")) == 1


def test_other_constraint_failures_propagate(db: Session, repository: PaymentRepository, make_row):
    """Only a taken payment identity is reported as a duplicate"""
    planned = CompletedPayment(1, Decimal("132"), DEAL_DATE)
    record = repository.build_record(make_row(), GroupIdentity("group-a"), planned)
    record.source_batch = None

    with pytest.raises(IntegrityError):
        repository.insert_one(record)
    db.rollback()

    assert repository.find_any_in_group("group-a") is None


def test_find_by_group_identity_ordered(repository: PaymentRepository, make_row):
    row = make_row()
    _seed(
        repository,
        row,
        "group-a",
        [
            ProjectedPayment(3, Decimal("129"), date(2024, 3, 15)),
            CompletedPayment(1, Decimal("132"), DEAL_DATE),
            ProjectedPayment(2, Decimal("129"), date(2024, 2, 14)),
        ],
    )

    payments = repository.find_by_group_identity("group-a")
    assert [p.payment_index for p in payments] == [1, 2, 3]
    assert repository.find_any_in_group("group-a") is not None
    assert repository.find_any_in_group("group-b") is None


def test_exact_duplicate_excludes_same_batch(repository: PaymentRepository, make_row):
    _seed(repository, make_row(source_row=1), "group-a", [CompletedPayment(1, Decimal("132"), DEAL_DATE)])

    # Another row of the same batch: a twin, not a duplicate
    assert repository.find_exact_duplicate(make_row(source_row=2), 0.01) is None
    # Same batch without row ordinals
    assert repository.find_exact_duplicate(make_row(source_row=None), 0.01) is None
    # Re-run of the row that wrote it
    assert repository.find_exact_duplicate(make_row(source_row=1), 0.01) is not None
    # A later upload of the same file
    assert repository.find_exact_duplicate(make_row(source_batch="batch-2"), 0.01) is not None


def test_exact_duplicate_tolerance_band(repository: PaymentRepository, make_row):
    seed_row = make_row(original_amount=Decimal("3000"))
    _seed(repository, seed_row, "group-a", [CompletedPayment(1, Decimal("125"), DEAL_DATE)])

    within = make_row(original_amount=Decimal("3030"), source_batch="batch-2")
    outside = make_row(original_amount=Decimal("3031"), source_batch="batch-2")

    assert repository.find_exact_duplicate(within, 0.01) is not None
    assert repository.find_exact_duplicate(outside, 0.01) is None


def test_exact_duplicate_matches_full_bucket(repository: PaymentRepository, make_row):
    _seed(repository, make_row(), "group-a", [CompletedPayment(1, Decimal("132"), DEAL_DATE)])

    assert repository.find_exact_duplicate(make_row(source_batch="b2", card_id="other"), 0.01) is None
    assert repository.find_exact_duplicate(make_row(source_batch="b2", business_id="other"), 0.01) is None
    assert repository.find_exact_duplicate(make_row(source_batch="b2", deal_date=date(2024, 1, 16)), 0.01) is None
    assert repository.find_exact_duplicate(make_row(source_batch="b2", payment_total=12), 0.01) is None
    assert repository.find_exact_duplicate(make_row(source_batch="b2", payment_index=2), 0.01) is None


def test_projected_slot_ignores_completed(repository: PaymentRepository, make_row):
    _seed(
        repository,
        make_row(),
        "group-a",
        [
            CompletedPayment(1, Decimal("132"), DEAL_DATE),
            ProjectedPayment(2, Decimal("129"), date(2024, 2, 14)),
        ],
    )

    slot = repository.find_projected_slot(make_row(payment_index=2), 0.01)
    assert slot is not None
    assert slot.payment_index == 2
    assert slot.status == PaymentStatus.PROJECTED.value

    assert repository.find_projected_slot(make_row(payment_index=1), 0.01) is None


def test_complete_projection(repository: PaymentRepository, make_row):
    _seed(repository, make_row(), "group-a", [ProjectedPayment(2, Decimal("129"), date(2024, 2, 14))])
    slot = repository.find_projected_slot(make_row(payment_index=2), 0.01)

    observed = make_row(payment_index=2, canonical_amount=Decimal("130.50"), source_batch="batch-2", source_row=7)
    repository.complete_projection(slot, observed, date(2024, 2, 16))

    updated = repository.get_by_id(slot.id)
    assert updated.status == PaymentStatus.COMPLETED.value
    assert updated.actual_charge_date == date(2024, 2, 16)
    assert updated.projected_charge_date is None
    assert updated.canonical_amount == Decimal("130.50")
    assert updated.source_batch == "batch-2"
    assert updated.source_row == 7


def test_orphaned_first_payment_lookup(repository: PaymentRepository, make_row):
    _seed(repository, make_row(), "salted-group", [CompletedPayment(1, Decimal("132"), DEAL_DATE)])

    incoming = make_row(original_amount=Decimal("3200"), source_batch="batch-2")

    # ~3.2% away: outside the exact band, inside the orphan band
    assert repository.find_exact_duplicate(incoming, 0.01) is None
    orphan = repository.find_orphaned_first_payment(incoming, "base-group", 0.05)
    assert orphan is not None
    assert orphan.group_identity == "salted-group"

    # Never returns the base group's own payment 1
    assert repository.find_orphaned_first_payment(incoming, "salted-group", 0.05) is None
    # Rows written earlier in the same batch are excluded
    assert repository.find_orphaned_first_payment(make_row(original_amount=Decimal("3200")), "base-group", 0.05) is None
