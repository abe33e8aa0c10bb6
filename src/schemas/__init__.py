from src.schemas.imports import (
    ImportCancelResponse,
    ImportEmptyResponse,
    ImportFailure,
    ImportJobResponse,
    ImportQueuedResponse,
    ImportRequest,
)
from src.schemas.internal import ShopInstallRequest, ShopInstallResponse
from src.schemas.lookup import ListingLookupRequest
from src.schemas.quota import QuotaResponse
from src.schemas.settings import SellerSettingsRequest, SellerSettingsResponse

__all__ = [
    "ImportRequest",
    "ImportQueuedResponse",
    "ImportEmptyResponse",
    "ImportFailure",
    "ImportJobResponse",
    "ImportCancelResponse",
    "ListingLookupRequest",
    "QuotaResponse",
    "SellerSettingsRequest",
    "SellerSettingsResponse",
    "ShopInstallRequest",
    "ShopInstallResponse",
]
