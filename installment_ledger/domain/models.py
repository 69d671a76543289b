"""Domain models - pure Python dataclasses representing installment ledger entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Union

from installment_ledger.domain.exceptions import InvalidPaymentRowError
from installment_ledger.domain.identity import payment_identity

CENT = Decimal("0.01")


def to_amount(value: Union[Decimal, int, float, str]) -> Decimal:
    """Coerce a monetary value to a 2-place Decimal"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentType(str, Enum):
    SINGLE = "single"
    INSTALLMENT = "installment"


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    PROJECTED = "projected"
    CANCELLED = "cancelled"


@dataclass
class IncomingPayment:
    """Parsed statement row already classified as an installment payment"""

    business_id: str
    business_name: str  # normalized business name
    card_id: str
    deal_date: date
    payment_index: int
    payment_total: int
    canonical_amount: Decimal  # this payment, in the canonical currency
    source_batch: str
    original_amount: Optional[Decimal] = None  # full deal sum as charged
    original_currency: str = "ILS"
    exchange_rate: Optional[Decimal] = None
    charge_date: Optional[date] = None
    source_row: Optional[int] = None

    def __post_init__(self) -> None:
        if self.payment_total < 1:
            raise InvalidPaymentRowError(f"Installment total must be positive, got {self.payment_total}")
        if not 1 <= self.payment_index <= self.payment_total:
            raise InvalidPaymentRowError(
                f"Installment index {self.payment_index} outside 1..{self.payment_total}"
            )

        self.canonical_amount = to_amount(self.canonical_amount)
        if self.canonical_amount <= 0:
            raise InvalidPaymentRowError("Installment amount must be positive")

        if self.original_amount is not None:
            self.original_amount = to_amount(self.original_amount)
            if self.original_amount <= 0:
                raise InvalidPaymentRowError("Deal total must be positive")

        if self.exchange_rate is not None and not isinstance(self.exchange_rate, Decimal):
            self.exchange_rate = Decimal(str(self.exchange_rate))

    @property
    def deal_total(self) -> Decimal:
        """Full purchase sum shared by every payment line of the deal"""
        if self.original_amount is not None:
            return self.original_amount
        return self.canonical_amount * self.payment_total

    @property
    def canonical_total(self) -> Decimal:
        """Deal total expressed in the canonical currency"""
        if self.original_amount is None:
            # Derived from canonical payments, already converted
            return self.canonical_amount * self.payment_total
        if self.exchange_rate is None:
            return self.original_amount
        return to_amount(self.original_amount * self.exchange_rate)


# Planned ledger rows. One variant per status; each carries only the fields
# that are valid for that status.


@dataclass(frozen=True)
class CompletedPayment:
    status: ClassVar[PaymentStatus] = PaymentStatus.COMPLETED

    index: int
    amount: Decimal
    actual_charge_date: date


@dataclass(frozen=True)
class ProjectedPayment:
    status: ClassVar[PaymentStatus] = PaymentStatus.PROJECTED

    index: int
    amount: Decimal
    projected_charge_date: date


@dataclass(frozen=True)
class CancelledPayment:
    status: ClassVar[PaymentStatus] = PaymentStatus.CANCELLED

    index: int
    amount: Decimal


PlannedPayment = Union[CompletedPayment, ProjectedPayment, CancelledPayment]


@dataclass(frozen=True)
class GroupIdentity:
    """Identity shared by every payment of one purchase (base or salted)"""

    value: str
    salted: bool = False

    def payment_identity(self, index: int) -> str:
        return payment_identity(self.value, index)

    def __str__(self) -> str:
        return self.value


@dataclass
class GroupCreation:
    """Result of starting a group from its first payment"""

    group_identity: GroupIdentity
    completed_payment_id: uuid.UUID
    projected_count: int


@dataclass
class GroupBackfill:
    """Result of starting a group from a mid-sequence payment"""

    group_identity: GroupIdentity
    current_payment_id: uuid.UUID
    backfilled_count: int
    projected_count: int


@dataclass
class AmountDiscrepancy:
    """Observed charge differs from the amount the ledger expected"""

    expected: Decimal
    observed: Decimal
    percent: float


class Resolution(str, Enum):
    ALREADY_RECORDED = "already_recorded"
    PROJECTION_FULFILLED = "projection_fulfilled"
    ORPHAN_RECONCILED = "orphan_reconciled"
    GROUP_CREATED = "group_created"
    GROUP_BACKFILLED = "group_backfilled"


@dataclass
class ResolutionResult:
    """Outcome of resolving one incoming installment row"""

    resolution: Resolution
    group_identity: Optional[str] = None
    payment_id: Optional[uuid.UUID] = None
    created_count: int = 0
    backfilled_count: int = 0
    projected_count: int = 0
    discrepancy: Optional[AmountDiscrepancy] = None


@dataclass
class BatchSummary:
    """Aggregated outcome of one ingestion batch"""

    source_batch: str
    row_count: int = 0
    rows_created: int = 0
    rows_updated: int = 0
    discrepancies: int = 0
    resolutions: Dict[Resolution, int] = field(default_factory=lambda: {r: 0 for r in Resolution})
    results: List[ResolutionResult] = field(default_factory=list)

    def add(self, result: ResolutionResult) -> None:
        self.row_count += 1
        self.resolutions[result.resolution] += 1
        self.rows_created += result.created_count
        if result.resolution in (Resolution.PROJECTION_FULFILLED, Resolution.ORPHAN_RECONCILED):
            self.rows_updated += 1
        if result.discrepancy is not None:
            self.discrepancies += 1
        self.results.append(result)
