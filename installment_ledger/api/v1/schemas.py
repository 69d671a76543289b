"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from installment_ledger.config import settings


class InstallmentRowSchema(BaseModel):
    """Parsed statement row classified as an installment payment"""

    business_id: str = Field(..., min_length=1, description="Resolved business identifier")
    business_name: str = Field(..., min_length=1, description="Normalized business name")
    card_id: str = Field(..., min_length=1, description="Resolved card identifier")
    deal_date: date = Field(..., description="Original purchase date")
    payment_index: int = Field(..., ge=1, description="Position of this payment in the plan")
    payment_total: int = Field(..., ge=1, description="Number of payments in the plan")
    canonical_amount: Decimal = Field(..., gt=0, description="This payment in the canonical currency")
    original_amount: Optional[Decimal] = Field(None, gt=0, description="Full deal sum as charged")
    original_currency: str = Field(settings.canonical_currency, min_length=3, max_length=3)
    exchange_rate: Optional[Decimal] = Field(None, gt=0)
    charge_date: Optional[date] = None
    source_row: Optional[int] = Field(None, ge=1, description="Row ordinal within the batch")


class IngestRequest(BaseModel):
    """Request body for POST /v1/batches/{source_batch}/installments"""

    rows: List[InstallmentRowSchema] = Field(..., min_length=1)


class RowResultSchema(BaseModel):
    """Outcome for one submitted row"""

    resolution: str
    group_identity: Optional[str] = None
    payment_id: Optional[str] = None
    created_count: int = 0
    discrepancy_percent: Optional[float] = None


class IngestResponse(BaseModel):
    """Response for POST /v1/batches/{source_batch}/installments"""

    source_batch: str
    row_count: int
    rows_created: int
    rows_updated: int
    discrepancies: int
    resolutions: Dict[str, int]
    results: List[RowResultSchema]


class InstallmentSchema(BaseModel):
    """Single payment in an installment group"""

    id: str
    payment_index: int
    payment_total: int
    status: str
    deal_date: date
    charge_date: date
    canonical_amount: Decimal
    original_amount: Decimal
    original_currency: str


class GroupResponse(BaseModel):
    """Response for group timeline lookups"""

    group_identity: str
    installments: List[InstallmentSchema]
