from src.core.repositories.base import ShopContextMissingError, ShopScopedRepository
from src.core.repositories.import_jobs import ImportJobRepository, ImportJobStore
from src.core.repositories.shops import ShopRepository

__all__ = [
    "ShopContextMissingError",
    "ShopScopedRepository",
    "ImportJobRepository",
    "ImportJobStore",
    "ShopRepository",
]
