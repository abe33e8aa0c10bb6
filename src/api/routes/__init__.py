from src.api.routes.imports import router as imports_router
from src.api.routes.internal import router as internal_router
from src.api.routes.lookup import router as lookup_router
from src.api.routes.quota import router as quota_router
from src.api.routes.settings import router as settings_router

__all__ = [
    "imports_router",
    "internal_router",
    "lookup_router",
    "quota_router",
    "settings_router",
]
