"""GET endpoints for installment group timelines"""

import uuid
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from installment_ledger.api.v1.schemas import GroupResponse, InstallmentSchema
from installment_ledger.api.dependencies import get_ingestion_service
from installment_ledger.domain.exceptions import PaymentNotFoundError
from installment_ledger.infrastructure.database.models import PaymentRecord
from installment_ledger.services.ingestion import IngestionService

router = APIRouter()


def _to_response(payments: List[PaymentRecord]) -> GroupResponse:
    return GroupResponse(
        group_identity=payments[0].group_identity,
        installments=[
            InstallmentSchema(
                id=str(p.id),
                payment_index=p.payment_index,
                payment_total=p.payment_total,
                status=p.status,
                deal_date=p.deal_date,
                charge_date=p.charge_date,
                canonical_amount=p.canonical_amount,
                original_amount=p.original_amount,
                original_currency=p.original_currency,
            )
            for p in payments
        ],
    )


@router.get("/payments/{payment_id}/installments", response_model=GroupResponse)
def get_payment_installments(payment_id: str, service: IngestionService = Depends(get_ingestion_service)):
    """Every payment of the purchase the given payment belongs to"""
    try:
        payment_uuid = uuid.UUID(payment_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payment ID format")

    try:
        payments = service.get_installment_group(payment_uuid)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return _to_response(payments)


@router.get("/groups/{group_identity}", response_model=GroupResponse)
def get_group(group_identity: str, service: IngestionService = Depends(get_ingestion_service)):
    """Group timeline by group identity"""
    try:
        payments = service.get_group(group_identity)
    except PaymentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return _to_response(payments)
