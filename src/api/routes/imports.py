from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.responses import JSONResponse

from src.api.dependencies import get_admission_controller, get_import_queue, get_job_intake, get_job_store
from src.core.admission import AdmissionController
from src.core.auth import AuthContext, require_auth_context
from src.core.config import settings
from src.core.intake import JobIntake
from src.core.queue import ImportQueue
from src.core.repositories.import_jobs import ImportJobStore
from src.models.import_job import ImportJob, ImportJobStatus
from src.schemas.imports import (
    ImportCancelResponse,
    ImportEmptyResponse,
    ImportJobResponse,
    ImportQueuedResponse,
    ImportRequest,
)

router = APIRouter(prefix="/imports", tags=["imports"])


def _job_response(job: ImportJob) -> ImportJobResponse:
    return ImportJobResponse(
        job_id=str(job.id),
        status=job.status,
        ebay_seller_username=job.ebay_seller_username,
        total_items=job.total_items,
        pages_total=job.pages_total,
        pages_processed=job.pages_processed,
        pages_failed=job.pages_failed,
        items_imported=job.items_imported,
        items_failed=job.items_failed,
        failures=job.failures or [],
        error_message=job.error_message,
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
    )


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=ImportQueuedResponse)
async def start_import(
    payload: ImportRequest,
    auth: AuthContext = Depends(require_auth_context),
    admission: AdmissionController = Depends(get_admission_controller),
    intake: JobIntake = Depends(get_job_intake),
) -> ImportQueuedResponse | JSONResponse:
    grant = await admission.admit(auth.shop_domain, settings.quota_cost_per_import)
    try:
        ticket = await intake.begin_import(auth.shop_domain, grant.seller_username, payload.import_options)
    except Exception:
        await admission.ledger.release(grant.reservation)
        raise

    if not ticket.queued:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=ImportEmptyResponse().model_dump(by_alias=True),
        )

    return ImportQueuedResponse(job_id=ticket.job_id, total_items=ticket.total_items, eta=ticket.eta)


@router.get("", response_model=list[ImportJobResponse])
async def list_imports(
    auth: AuthContext = Depends(require_auth_context),
    job_store: ImportJobStore = Depends(get_job_store),
) -> list[ImportJobResponse]:
    jobs = await job_store.list_recent(auth.shop_domain)
    return [_job_response(job) for job in jobs]


@router.get("/{job_id}", response_model=ImportJobResponse)
async def get_import(
    job_id: str,
    auth: AuthContext = Depends(require_auth_context),
    job_store: ImportJobStore = Depends(get_job_store),
) -> ImportJobResponse:
    job = await job_store.get(auth.shop_domain, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")
    return _job_response(job)


@router.post("/{job_id}/cancel", response_model=ImportCancelResponse)
async def cancel_import(
    job_id: str,
    auth: AuthContext = Depends(require_auth_context),
    job_store: ImportJobStore = Depends(get_job_store),
    queue: ImportQueue = Depends(get_import_queue),
) -> ImportCancelResponse:
    job = await job_store.get(auth.shop_domain, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")

    if ImportJobStatus(job.status).is_terminal:
        return ImportCancelResponse(job_id=str(job.id), cancel_requested=False, status=job.status)

    job = await job_store.request_cancel(auth.shop_domain, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")
    # Workers poll the flag between pages; the row outlives it.
    await queue.request_cancel(str(job.id))
    return ImportCancelResponse(job_id=str(job.id), cancel_requested=True, status=job.status)
