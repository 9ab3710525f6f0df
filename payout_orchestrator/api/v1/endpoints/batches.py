"""
Batch lifecycle endpoints: ingest, plan, quote, execute, reopen and export.

Domain errors (NotFoundError, InvalidStateError, CsvValidationError) propagate
to the exception handlers registered in ``main``.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session
import time
from payout_orchestrator.api.deps import (
    get_db,
    get_execution_config,
    get_quote_provider,
    get_transfer_executor,
)
from payout_orchestrator.config import ExecutionConfig
from payout_orchestrator.integrations import QuoteProvider, TransferExecutor
from payout_orchestrator.models.enums import BatchStatus
from payout_orchestrator.models.schemas.base import ResponseBase
from payout_orchestrator.models.schemas.batches import BatchCreate
from payout_orchestrator.models.schemas.execution import ExecuteRequest
from payout_orchestrator.models.schemas.quotes import QuoteBatchRequest
from payout_orchestrator.services import batch_service
from payout_orchestrator.services.executor import ExecutionEngine
from payout_orchestrator.services.export import export_batch_csv, export_batch_json
from payout_orchestrator.services.planner import plan_batch
from payout_orchestrator.services.quoting import quote_batch
from payout_orchestrator.utils import get_logger, log_performance
from payout_orchestrator.utils.observability import request_id_from

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/",
    response_model=ResponseBase,
    status_code=201,
    summary="Create a batch from CSV"
)
async def create_batch(
    payload: BatchCreate,
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    """Ingest CSV rows into a new draft batch. Any invalid row rejects the upload."""
    request_id = request_id_from(request)
    batch = batch_service.create_batch(db, payload.csv_text, payload.platform_id, request_id=request_id)
    return ResponseBase(
        success=True,
        message="Batch created",
        data={"id": batch.id, "status": batch.status.value, "item_count": len(batch.items)},
    )


@router.get(
    "/",
    response_model=ResponseBase,
    summary="List batches"
)
async def list_batches(
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    batches = batch_service.list_batches(db)
    logger.info("Batches listed", count=len(batches), request_id=request_id_from(request))
    return ResponseBase(
        success=True,
        message=f"{len(batches)} batch(es)",
        data={"batches": [b.model_dump(mode="json", exclude={"items"}) for b in batches]},
    )


@router.get(
    "/{batch_id}",
    response_model=ResponseBase,
    summary="Get batch with items"
)
async def get_batch(
    batch_id: str,
    db: Session = Depends(get_db)
) -> ResponseBase:
    batch = batch_service.get_batch_detail(db, batch_id)
    return ResponseBase(success=True, data=batch.model_dump(mode="json"))


@router.post(
    "/{batch_id}/plan",
    response_model=ResponseBase,
    summary="Plan a draft batch"
)
async def plan(
    batch_id: str,
    request: Request,
    db: Session = Depends(get_db)
) -> ResponseBase:
    """Group items by routing key and assign HUB/DIRECT mode; draft -> planned."""
    result = plan_batch(db, batch_id, request_id=request_id_from(request))
    plan_read = batch_service.serialize_plan(batch_id, BatchStatus.PLANNED, result)
    return ResponseBase(
        success=True,
        message=f"Planned {result.summary.total_items} item(s) into {len(result.groups)} group(s)",
        data=plan_read.model_dump(mode="json"),
    )


@router.post(
    "/{batch_id}/quote",
    response_model=ResponseBase,
    summary="Quote all items of a planned batch"
)
async def quote(
    batch_id: str,
    request: Request,
    payload: Optional[QuoteBatchRequest] = None,
    db: Session = Depends(get_db),
    config: ExecutionConfig = Depends(get_execution_config),
    quote_provider: QuoteProvider = Depends(get_quote_provider),
) -> ResponseBase:
    """Per-item quote failures are reported in the result and do not fail the request."""
    payload = payload or QuoteBatchRequest()
    result = await quote_batch(
        db,
        batch_id,
        payload.from_address,
        quote_provider,
        config,
        request_id=request_id_from(request),
    )
    return ResponseBase(
        success=True,
        message=f"Quoted {result.summary.quoted}/{result.summary.total} item(s)",
        data=result.model_dump(mode="json"),
    )


@router.post(
    "/{batch_id}/execute",
    response_model=ResponseBase,
    summary="Execute a planned batch"
)
async def execute(
    batch_id: str,
    request: Request,
    payload: Optional[ExecuteRequest] = None,
    db: Session = Depends(get_db),
    config: ExecutionConfig = Depends(get_execution_config),
    quote_provider: QuoteProvider = Depends(get_quote_provider),
    transfer_executor: TransferExecutor = Depends(get_transfer_executor),
) -> ResponseBase:
    start_time = time.time()
    request_id = request_id_from(request)
    payload = payload or ExecuteRequest()
    engine = ExecutionEngine(db, config, quote_provider, transfer_executor)
    result = await engine.execute_batch(batch_id, mock=payload.mock, request_id=request_id)
    log_performance(
        operation="execute_batch_request",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"batch_id": batch_id, "mock": payload.mock},
    )
    return ResponseBase(
        success=True,
        message=f"Batch {result.status}: {result.summary.succeeded} succeeded, {result.summary.failed} failed",
        data=result.model_dump(mode="json"),
    )


@router.post(
    "/{batch_id}/reopen",
    response_model=ResponseBase,
    summary="Reopen a failed batch for retry"
)
async def reopen(
    batch_id: str,
    request: Request,
    db: Session = Depends(get_db),
    config: ExecutionConfig = Depends(get_execution_config),
) -> ResponseBase:
    batch = batch_service.reopen_batch(db, batch_id, max_retries=config.max_retries, request_id=request_id_from(request))
    return ResponseBase(
        success=True,
        message="Batch reopened for retry",
        data={"id": batch.id, "status": batch.status.value},
    )


@router.get(
    "/{batch_id}/export",
    summary="Export batch items as JSON or CSV"
)
async def export(
    batch_id: str,
    format: str = Query("json", pattern="^(json|csv)$"),
    db: Session = Depends(get_db)
):
    if format == "csv":
        return Response(
            content=export_batch_csv(db, batch_id),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="batch-{batch_id}.csv"'},
        )
    return ResponseBase(success=True, data=export_batch_json(db, batch_id))
