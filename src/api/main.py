from fastapi import FastAPI

from src.api.errors import pipeline_error_handler
from src.api.middleware import shop_context_middleware
from src.api.routes.imports import router as imports_router
from src.api.routes.internal import router as internal_router
from src.api.routes.lookup import router as lookup_router
from src.api.routes.quota import router as quota_router
from src.api.routes.settings import router as settings_router
from src.core.errors import PipelineError

app = FastAPI(title="Ebayify Import")
app.middleware("http")(shop_context_middleware)
app.add_exception_handler(PipelineError, pipeline_error_handler)
app.include_router(settings_router, prefix="/api/v1")
app.include_router(lookup_router, prefix="/api/v1")
app.include_router(imports_router, prefix="/api/v1")
app.include_router(quota_router, prefix="/api/v1")
app.include_router(internal_router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
