from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import require_internal_caller
from src.core.billing import next_quota_reset
from src.core.db import get_db_session
from src.core.repositories.shops import ShopRepository
from src.core.security.dependencies import get_security_cipher
from src.schemas.internal import ShopInstallRequest, ShopInstallResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_caller)],
)


@router.post("/shops/install", response_model=ShopInstallResponse)
async def record_shop_install(
    payload: ShopInstallRequest,
    session: AsyncSession = Depends(get_db_session),
) -> ShopInstallResponse:
    shop_domain = payload.shop_domain.strip().lower()
    cipher = get_security_cipher()

    await ShopRepository(session).save_install_token(
        shop_domain,
        cipher.encrypt(payload.access_token),
        quota_reset_at=next_quota_reset(datetime.now(timezone.utc)),
    )
    await session.commit()
    logger.info("Recorded storefront install for shop=%s", shop_domain)

    return ShopInstallResponse(shop_domain=shop_domain)
