from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import ShopScopedBase


class ImportJobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in {ImportJobStatus.QUEUED, ImportJobStatus.RUNNING}


class ImportJob(ShopScopedBase):
    __tablename__ = "import_jobs"

    ebay_seller_username: Mapped[str] = mapped_column(String(255), nullable=False)
    total_items: Mapped[int] = mapped_column(nullable=False)
    import_options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ImportJobStatus.QUEUED.value, index=True
    )
    pages_total: Mapped[int] = mapped_column(nullable=False, default=0)
    pages_processed: Mapped[int] = mapped_column(nullable=False, default=0)
    pages_failed: Mapped[int] = mapped_column(nullable=False, default=0)
    items_imported: Mapped[int] = mapped_column(nullable=False, default=0)
    items_failed: Mapped[int] = mapped_column(nullable=False, default=0)
    failures: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    cancel_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
