from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by the import pipeline.

    ``status_code`` is the HTTP status used when the error reaches a request
    handler; ``payload()`` is merged into the JSON error body.
    """

    status_code = 500

    def payload(self) -> dict[str, object]:
        return {"error": str(self)}


class ConfigurationError(PipelineError):
    status_code = 500


class NotConfiguredError(ConfigurationError):
    status_code = 400


class CredentialError(ConfigurationError):
    pass


class UpstreamAuthError(PipelineError):
    status_code = 500

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class QuotaExceededError(PipelineError):
    status_code = 429

    def __init__(self, used: int, limit: int, message: str | None = None) -> None:
        super().__init__(message or f"Monthly quota exceeded ({used}/{limit}).")
        self.used = used
        self.limit = limit

    def payload(self) -> dict[str, object]:
        return {"error": str(self), "used": self.used, "limit": self.limit}


class UpstreamUnavailableError(PipelineError):
    status_code = 500

    def __init__(
        self,
        message: str,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after

    @property
    def throttled(self) -> bool:
        return self.status == 429 or (self.status is not None and self.status >= 500)

    @property
    def retryable(self) -> bool:
        return self.status is None or self.throttled


class DownstreamForwardError(PipelineError):
    status_code = 502

    def __init__(
        self,
        message: str,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after

    @property
    def throttled(self) -> bool:
        return self.status == 429 or (self.status is not None and self.status >= 500)


class QueuePublishError(PipelineError):
    status_code = 500


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
