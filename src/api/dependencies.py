from __future__ import annotations

from functools import lru_cache

from src.core.admission import AdmissionController
from src.core.billing import QuotaLedger
from src.core.clients.ebay import EbayBrowseClient, EbayTokenCache
from src.core.intake import JobIntake
from src.core.queue import ImportQueue
from src.core.repositories.import_jobs import ImportJobStore


@lru_cache
def get_token_cache() -> EbayTokenCache:
    return EbayTokenCache()


@lru_cache
def get_browse_client() -> EbayBrowseClient:
    return EbayBrowseClient(get_token_cache())


@lru_cache
def get_quota_ledger() -> QuotaLedger:
    return QuotaLedger()


@lru_cache
def get_admission_controller() -> AdmissionController:
    return AdmissionController(get_quota_ledger())


@lru_cache
def get_import_queue() -> ImportQueue:
    return ImportQueue()


@lru_cache
def get_job_store() -> ImportJobStore:
    return ImportJobStore()


@lru_cache
def get_job_intake() -> JobIntake:
    return JobIntake(
        browse_client=get_browse_client(),
        queue=get_import_queue(),
        job_store=get_job_store(),
        ledger=get_quota_ledger(),
    )
