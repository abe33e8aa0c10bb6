from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.dependencies import get_admission_controller, get_browse_client
from src.core.admission import AdmissionController
from src.core.auth import AuthContext, require_auth_context
from src.core.clients.ebay import EbayBrowseClient
from src.core.config import settings
from src.schemas.lookup import ListingLookupRequest

router = APIRouter(prefix="/ebay", tags=["ebay"])


@router.post("/lookup")
async def lookup_listings(
    payload: ListingLookupRequest,
    auth: AuthContext = Depends(require_auth_context),
    admission: AdmissionController = Depends(get_admission_controller),
    browse_client: EbayBrowseClient = Depends(get_browse_client),
) -> dict:
    grant = await admission.admit(auth.shop_domain, settings.quota_cost_per_lookup)
    try:
        page = await browse_client.search_seller_listings(
            grant.seller_username,
            limit=payload.limit,
            offset=payload.offset,
        )
    except Exception:
        # Only successful lookups count against the quota.
        await admission.ledger.release(grant.reservation)
        raise
    return page.raw
