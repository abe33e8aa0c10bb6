from src.models.base import Base, ShopScopedBase
from src.models.import_job import ImportJob, ImportJobStatus
from src.models.shop import Shop

__all__ = [
    "Base",
    "ShopScopedBase",
    "Shop",
    "ImportJob",
    "ImportJobStatus",
]
