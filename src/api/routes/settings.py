from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthContext, require_auth_context
from src.core.billing import next_quota_reset
from src.core.db import get_db_session
from src.core.repositories.shops import ShopRepository
from src.schemas.settings import SellerSettingsRequest, SellerSettingsResponse

router = APIRouter(prefix="/settings", tags=["settings"])


@router.post("", response_model=SellerSettingsResponse)
async def save_seller_settings(
    payload: SellerSettingsRequest,
    auth: AuthContext = Depends(require_auth_context),
    session: AsyncSession = Depends(get_db_session),
) -> SellerSettingsResponse:
    username = payload.ebay_seller_username.strip()
    if not username:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="eBay seller username is required",
        )

    shop = await ShopRepository(session).save_seller_username(
        auth.shop_domain,
        username,
        quota_reset_at=next_quota_reset(datetime.now(timezone.utc)),
    )
    await session.commit()

    return SellerSettingsResponse(
        shop_domain=shop.shop_domain,
        ebay_seller_username=shop.ebay_seller_username or username,
    )
