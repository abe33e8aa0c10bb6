from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.dependencies import get_quota_ledger
from src.core.auth import AuthContext, require_auth_context
from src.core.billing import QuotaLedger
from src.schemas.quota import QuotaResponse

router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("", response_model=QuotaResponse)
async def get_quota(
    auth: AuthContext = Depends(require_auth_context),
    ledger: QuotaLedger = Depends(get_quota_ledger),
) -> QuotaResponse:
    usage = await ledger.usage(auth.shop_domain)
    return QuotaResponse(used=usage.used, limit=usage.limit, plan_tier=usage.tier, reset_at=usage.reset_at)
