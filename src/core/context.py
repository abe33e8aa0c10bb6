from __future__ import annotations

from contextvars import ContextVar
from typing import Final

_CURRENT_SHOP_DOMAIN: Final[ContextVar[str | None]] = ContextVar(
    "current_shop_domain",
    default=None,
)


def set_current_shop_domain(shop_domain: str | None) -> object:
    return _CURRENT_SHOP_DOMAIN.set(shop_domain)


def get_current_shop_domain() -> str | None:
    return _CURRENT_SHOP_DOMAIN.get()


def reset_current_shop_domain(token: object) -> None:
    _CURRENT_SHOP_DOMAIN.reset(token)
