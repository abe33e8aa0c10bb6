from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import ClassVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.db import AsyncSessionLocal
from src.core.errors import ConfigurationError, NotConfiguredError
from src.core.repositories.shops import ShopRepository

logger = logging.getLogger(__name__)

DEFAULT_TIER = "free"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_quota_reset(now: datetime) -> datetime:
    return now + timedelta(days=settings.quota_window_days)


@dataclass(slots=True)
class PlanEntitlements:
    tier: str
    quota_limit: int


def tier_to_entitlements(tier: str | None) -> PlanEntitlements:
    quotas = settings.plan_quotas()
    normalized = (tier or DEFAULT_TIER).strip().lower()
    if normalized not in quotas:
        logger.warning("Unknown plan tier=%s, falling back to %s", normalized, DEFAULT_TIER)
        normalized = DEFAULT_TIER
    if normalized not in quotas:
        raise ConfigurationError(f"PLAN_QUOTAS_JSON has no quota for tier '{normalized}'")
    return PlanEntitlements(tier=normalized, quota_limit=quotas[normalized])


@dataclass(slots=True, frozen=True)
class QuotaReservation:
    shop_domain: str
    cost: int
    window_reset_at: datetime


@dataclass(slots=True, frozen=True)
class QuotaAllowed:
    allowed: ClassVar[bool] = True

    used: int
    limit: int
    reservation: QuotaReservation


@dataclass(slots=True, frozen=True)
class QuotaDenied:
    allowed: ClassVar[bool] = False

    used: int
    limit: int


QuotaDecision = QuotaAllowed | QuotaDenied


@dataclass(slots=True, frozen=True)
class QuotaUsage:
    tier: str
    used: int
    limit: int
    reset_at: datetime


class QuotaLedger:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        repository_factory: Callable[[AsyncSession], ShopRepository] = ShopRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._repository_factory = repository_factory
        self._clock = clock

    async def check_and_reserve(self, shop_domain: str, cost: int) -> QuotaDecision:
        if cost < 0:
            raise ValueError("quota cost must be non-negative")

        now = self._clock()
        async with self._session_factory() as session:
            repository = self._repository_factory(session)
            shop = await repository.get_by_domain(shop_domain)
            if shop is None:
                raise NotConfiguredError(f"Shop {shop_domain} is not configured")

            if await repository.reset_quota_window_if_due(shop_domain, now, next_quota_reset(now)):
                logger.info("Quota window reset for shop=%s", shop_domain)

            entitlements = tier_to_entitlements(shop.plan_tier)
            reserved = await repository.reserve_quota(shop_domain, cost, entitlements.quota_limit)
            if reserved is None:
                used, _ = await repository.get_quota_state(shop_domain)
                await session.commit()
                logger.info(
                    "Quota denied shop=%s used=%s cost=%s limit=%s",
                    shop_domain,
                    used,
                    cost,
                    entitlements.quota_limit,
                )
                return QuotaDenied(used=used, limit=entitlements.quota_limit)

            await session.commit()

        used, window_reset_at = reserved
        return QuotaAllowed(
            used=used,
            limit=entitlements.quota_limit,
            reservation=QuotaReservation(
                shop_domain=shop_domain,
                cost=cost,
                window_reset_at=window_reset_at,
            ),
        )

    async def release(self, reservation: QuotaReservation) -> bool:
        if reservation.cost == 0:
            return False
        async with self._session_factory() as session:
            repository = self._repository_factory(session)
            released = await repository.release_quota(
                reservation.shop_domain,
                reservation.cost,
                reservation.window_reset_at,
            )
            await session.commit()
        if released:
            logger.info("Released %s quota unit(s) for shop=%s", reservation.cost, reservation.shop_domain)
        return released

    async def usage(self, shop_domain: str) -> QuotaUsage:
        now = self._clock()
        async with self._session_factory() as session:
            repository = self._repository_factory(session)
            shop = await repository.get_by_domain(shop_domain)
            if shop is None:
                raise NotConfiguredError(f"Shop {shop_domain} is not configured")
            await repository.reset_quota_window_if_due(shop_domain, now, next_quota_reset(now))
            used, reset_at = await repository.get_quota_state(shop_domain)
            await session.commit()

        entitlements = tier_to_entitlements(shop.plan_tier)
        return QuotaUsage(tier=entitlements.tier, used=used, limit=entitlements.quota_limit, reset_at=reset_at)
