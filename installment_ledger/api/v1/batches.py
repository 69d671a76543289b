"""POST /v1/batches/{source_batch}/installments - Reconcile a batch of installment rows"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from installment_ledger.api.v1.schemas import IngestRequest, IngestResponse, RowResultSchema
from installment_ledger.api.dependencies import get_ingestion_service, get_request_id
from installment_ledger.domain.exceptions import DuplicatePaymentIdentityError, InvalidPaymentRowError
from installment_ledger.domain.models import IncomingPayment
from installment_ledger.services.ingestion import IngestionService

router = APIRouter()


@router.post("/batches/{source_batch}/installments", response_model=IngestResponse)
def ingest_installments(
    source_batch: str,
    request_body: IngestRequest,
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
):
    """
    Reconcile classified installment rows of one ingestion batch.

    Flow:
    1. Build incoming payments in source-file order
    2. Resolve each row (duplicate, projection, orphan or new group)
    3. Commit per row
    4. Return per-row outcomes and batch counters

    Rows committed before a failing row stay committed; re-submitting the
    batch is safe.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        rows = [IncomingPayment(source_batch=source_batch, **row.model_dump()) for row in request_body.rows]
        summary = service.process_batch(source_batch, rows)

    except InvalidPaymentRowError as e:
        logging.warning(f"Invalid installment row: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except DuplicatePaymentIdentityError as e:
        logging.warning(f"Concurrent write conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail="Payment recorded concurrently, retry the batch")

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    logging.info(
        "Batch reconciled",
        extra={
            "request_id": request_id,
            "source_batch": source_batch,
            "row_count": summary.row_count,
            "duration_ms": (time.time() - start_time) * 1000,
        },
    )

    return IngestResponse(
        source_batch=summary.source_batch,
        row_count=summary.row_count,
        rows_created=summary.rows_created,
        rows_updated=summary.rows_updated,
        discrepancies=summary.discrepancies,
        resolutions={resolution.value: count for resolution, count in summary.resolutions.items()},
        results=[
            RowResultSchema(
                resolution=result.resolution.value,
                group_identity=result.group_identity,
                payment_id=str(result.payment_id) if result.payment_id else None,
                created_count=result.created_count,
                discrepancy_percent=result.discrepancy.percent if result.discrepancy else None,
            )
            for result in summary.results
        ],
    )
