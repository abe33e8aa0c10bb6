from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.shop import Shop


class ShopRepository:
    """Tenant directory access for the ``shops`` table.

    Quota mutations are single conditional UPDATE statements so that the
    check and the write happen atomically in the database, whatever the
    number of API processes competing for the same shop row.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_domain(self, shop_domain: str) -> Shop | None:
        return await self.session.scalar(select(Shop).where(Shop.shop_domain == shop_domain))

    async def save_seller_username(
        self,
        shop_domain: str,
        ebay_seller_username: str,
        quota_reset_at: datetime,
    ) -> Shop:
        stmt = (
            insert(Shop)
            .values(
                shop_domain=shop_domain,
                ebay_seller_username=ebay_seller_username,
                quota_reset_at=quota_reset_at,
            )
            .on_conflict_do_update(
                index_elements=[Shop.shop_domain],
                set_={"ebay_seller_username": ebay_seller_username},
            )
            .returning(Shop)
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def save_install_token(
        self,
        shop_domain: str,
        access_token_encrypted: str,
        quota_reset_at: datetime,
    ) -> Shop:
        stmt = (
            insert(Shop)
            .values(
                shop_domain=shop_domain,
                storefront_access_token_encrypted=access_token_encrypted,
                quota_reset_at=quota_reset_at,
            )
            .on_conflict_do_update(
                index_elements=[Shop.shop_domain],
                set_={"storefront_access_token_encrypted": access_token_encrypted},
            )
            .returning(Shop)
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def reset_quota_window_if_due(
        self,
        shop_domain: str,
        now: datetime,
        next_reset_at: datetime,
    ) -> bool:
        # Only the first caller past the boundary matches; later callers see the advanced reset_at.
        result = await self.session.execute(
            update(Shop)
            .where(Shop.shop_domain == shop_domain, Shop.quota_reset_at < now)
            .values(api_lookups_used=0, quota_reset_at=next_reset_at)
        )
        return (result.rowcount or 0) > 0

    async def get_quota_state(self, shop_domain: str) -> tuple[int, datetime]:
        result = await self.session.execute(
            select(Shop.api_lookups_used, Shop.quota_reset_at).where(Shop.shop_domain == shop_domain)
        )
        row = result.one()
        return int(row.api_lookups_used), row.quota_reset_at

    async def reserve_quota(
        self,
        shop_domain: str,
        cost: int,
        limit: int,
    ) -> tuple[int, datetime] | None:
        result = await self.session.execute(
            update(Shop)
            .where(
                Shop.shop_domain == shop_domain,
                Shop.api_lookups_used + cost <= limit,
            )
            .values(api_lookups_used=Shop.api_lookups_used + cost)
            .returning(Shop.api_lookups_used, Shop.quota_reset_at)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return int(row.api_lookups_used), row.quota_reset_at

    async def release_quota(self, shop_domain: str, cost: int, window_reset_at: datetime) -> bool:
        result = await self.session.execute(
            update(Shop)
            .where(Shop.shop_domain == shop_domain, Shop.quota_reset_at == window_reset_at)
            .values(
                api_lookups_used=case(
                    (Shop.api_lookups_used >= cost, Shop.api_lookups_used - cost),
                    else_=0,
                )
            )
        )
        return (result.rowcount or 0) > 0
