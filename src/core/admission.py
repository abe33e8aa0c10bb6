from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.billing import QuotaLedger, QuotaReservation
from src.core.db import AsyncSessionLocal
from src.core.errors import NotConfiguredError, QuotaExceededError
from src.core.repositories.shops import ShopRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AdmissionGrant:
    shop_domain: str
    seller_username: str
    reservation: QuotaReservation
    used: int
    limit: int


class AdmissionController:
    """Synchronous gate in front of every chargeable call.

    Only the tenant directory and the quota ledger are consulted; eBay is
    never contacted here so the request path stays fast.
    """

    def __init__(
        self,
        ledger: QuotaLedger,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        repository_factory: Callable[[AsyncSession], ShopRepository] = ShopRepository,
    ) -> None:
        self.ledger = ledger
        self._session_factory = session_factory
        self._repository_factory = repository_factory

    async def admit(self, shop_domain: str, cost: int) -> AdmissionGrant:
        async with self._session_factory() as session:
            shop = await self._repository_factory(session).get_by_domain(shop_domain)

        seller_username = (shop.ebay_seller_username or "").strip() if shop is not None else ""
        if not seller_username:
            raise NotConfiguredError("eBay seller username is not configured.")

        decision = await self.ledger.check_and_reserve(shop_domain, cost)
        if not decision.allowed:
            raise QuotaExceededError(decision.used, decision.limit)

        logger.debug(
            "Admitted shop=%s cost=%s used=%s limit=%s",
            shop_domain,
            cost,
            decision.used,
            decision.limit,
        )
        return AdmissionGrant(
            shop_domain=shop_domain,
            seller_username=seller_username,
            reservation=decision.reservation,
            used=decision.used,
            limit=decision.limit,
        )
