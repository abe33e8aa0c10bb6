from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator, AsyncIterator, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings
from src.core.context import reset_current_shop_domain, set_current_shop_domain

engine = create_async_engine(settings.database_url, future=True, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def apply_rls_shop_context(session: AsyncSession, shop_domain: str) -> None:
    await session.execute(
        text("SELECT set_config('app.current_shop_domain', :shop_domain, true)"),
        {"shop_domain": shop_domain},
    )


@contextlib.asynccontextmanager
async def shop_session(
    shop_domain: str,
    session_factory: Callable[[], AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """One short transaction bound to ``shop_domain``, for callers outside a request.

    The shop context is set for the duration of the block and restored after,
    so concurrent worker slots never see each other's shop. Commits on a clean
    exit; an exception leaves the session to roll back on close.
    """
    token = set_current_shop_domain(shop_domain)
    try:
        async with (session_factory or AsyncSessionLocal)() as session:
            yield session
            await session.commit()
    finally:
        reset_current_shop_domain(token)
