from __future__ import annotations

import logging

from fastapi import Request
from starlette.responses import JSONResponse

from src.core.errors import PipelineError

logger = logging.getLogger(__name__)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())
