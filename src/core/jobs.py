from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Literal

from src.models.import_job import ImportJobStatus

FailureScope = Literal["page", "item"]


@dataclass(slots=True, frozen=True)
class ImportJobMessage:
    """Queue payload for one bulk import; ``job_id`` doubles as the idempotency key."""

    job_id: str
    shop_domain: str
    seller_username: str
    total: int
    import_options: dict[str, object] = field(default_factory=dict)

    def to_fields(self) -> dict[str, str]:
        payload = {
            "jobId": self.job_id,
            "shopDomain": self.shop_domain,
            "externalSellerIdentity": self.seller_username,
            "total": self.total,
            "importOptions": self.import_options,
        }
        return {"job_id": self.job_id, "payload": json.dumps(payload, default=str)}

    @classmethod
    def from_fields(cls, fields: dict[str, str]) -> ImportJobMessage:
        raw = fields.get("payload")
        if not raw:
            raise ValueError("import job message is missing its payload")
        payload = json.loads(raw)
        job_id = payload.get("jobId") or fields.get("job_id")
        shop_domain = payload.get("shopDomain")
        seller = payload.get("externalSellerIdentity")
        if not job_id or not shop_domain or not seller:
            raise ValueError("import job message missing jobId/shopDomain/externalSellerIdentity")
        return cls(
            job_id=str(job_id),
            shop_domain=str(shop_domain),
            seller_username=str(seller),
            total=int(payload.get("total") or 0),
            import_options=dict(payload.get("importOptions") or {}),
        )


@dataclass(slots=True)
class FailureRecord:
    scope: FailureScope
    kind: str
    reason: str
    page: int
    offset: int
    sku: str | None = None

    def as_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(slots=True)
class JobProgress:
    pages_total: int
    pages_processed: int = 0
    pages_failed: int = 0
    items_imported: int = 0
    items_failed: int = 0
    failures: list[FailureRecord] = field(default_factory=list)
    failure_limit: int = 200

    def record_page_failure(self, failure: FailureRecord) -> None:
        self.pages_failed += 1
        self._keep(failure)

    def record_item_failure(self, failure: FailureRecord) -> None:
        self.items_failed += 1
        self._keep(failure)

    def _keep(self, failure: FailureRecord) -> None:
        if len(self.failures) < self.failure_limit:
            self.failures.append(failure)

    @property
    def has_failures(self) -> bool:
        return self.pages_failed > 0 or self.items_failed > 0

    def resolve_status(self) -> ImportJobStatus:
        if not self.has_failures:
            return ImportJobStatus.COMPLETED
        if self.items_imported == 0:
            return ImportJobStatus.FAILED
        return ImportJobStatus.PARTIALLY_FAILED

    def failure_payload(self) -> list[dict[str, object]]:
        return [failure.as_dict() for failure in self.failures]

    @classmethod
    def from_record(cls, job: object, failure_limit: int = 200) -> JobProgress:
        """Rebuild progress from a persisted job so a redelivery resumes where it stopped."""
        failures = [
            FailureRecord(
                scope=entry.get("scope", "page"),
                kind=str(entry.get("kind", "unknown")),
                reason=str(entry.get("reason", "")),
                page=int(entry.get("page", 0)),
                offset=int(entry.get("offset", 0)),
                sku=entry.get("sku"),
            )
            for entry in (getattr(job, "failures", None) or [])
            if isinstance(entry, dict)
        ]
        return cls(
            pages_total=getattr(job, "pages_total", 0) or 0,
            pages_processed=getattr(job, "pages_processed", 0) or 0,
            pages_failed=getattr(job, "pages_failed", 0) or 0,
            items_imported=getattr(job, "items_imported", 0) or 0,
            items_failed=getattr(job, "items_failed", 0) or 0,
            failures=failures[:failure_limit],
            failure_limit=failure_limit,
        )
