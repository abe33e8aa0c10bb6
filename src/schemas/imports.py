from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    import_options: dict[str, object] = Field(default_factory=dict, alias="importOptions")


class ImportQueuedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    total_items: int = Field(alias="totalItems")
    eta: datetime


class ImportEmptyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_items: int = Field(default=0, alias="totalItems")
    message: str = "No listings found for this seller."


class ImportFailure(BaseModel):
    scope: str
    kind: str
    reason: str
    page: int
    offset: int
    sku: str | None = None


class ImportJobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: str
    ebay_seller_username: str = Field(alias="ebaySellerUsername")
    total_items: int = Field(alias="totalItems")
    pages_total: int = Field(alias="pagesTotal")
    pages_processed: int = Field(alias="pagesProcessed")
    pages_failed: int = Field(alias="pagesFailed")
    items_imported: int = Field(alias="itemsImported")
    items_failed: int = Field(alias="itemsFailed")
    failures: list[ImportFailure] = Field(default_factory=list)
    error_message: str | None = Field(default=None, alias="errorMessage")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")


class ImportCancelResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    cancel_requested: bool = Field(alias="cancelRequested")
    status: str
