from __future__ import annotations

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from src.core.context import get_current_shop_domain
from src.core.db import apply_rls_shop_context
from src.models.base import ShopScopedBase

ModelT = TypeVar("ModelT", bound=ShopScopedBase)


class ShopContextMissingError(RuntimeError):
    pass


class ShopScopedRepository(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    @property
    def shop_domain(self) -> str:
        shop_domain = get_current_shop_domain()
        if shop_domain is None:
            raise ShopContextMissingError("Shop context is missing from the current request")
        return shop_domain

    async def _apply_rls(self) -> None:
        await apply_rls_shop_context(self.session, self.shop_domain)

    def _scoped_select(self) -> Select[tuple[ModelT]]:
        return select(self.model).where(self.model.shop_domain == self.shop_domain)

    async def create(self, **values: object) -> ModelT:
        await self._apply_rls()
        payload = dict(values)
        payload.setdefault("shop_domain", self.shop_domain)
        instance = self.model(**payload)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get(self, entity_id: UUID) -> ModelT | None:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select().where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def list(self, *, limit: int = 100, offset: int = 0) -> list[ModelT]:
        await self._apply_rls()
        result = await self.session.execute(
            self._scoped_select()
            .order_by(self.model.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
