from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request
from starlette.responses import Response

from src.core.context import reset_current_shop_domain, set_current_shop_domain


async def shop_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    # Each request starts unscoped; require_auth_context fills in the shop.
    token = set_current_shop_domain(None)
    try:
        return await call_next(request)
    finally:
        reset_current_shop_domain(token)
