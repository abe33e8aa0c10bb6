from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import ShopScopedBase


class Shop(ShopScopedBase):
    __tablename__ = "shops"
    __table_args__ = (UniqueConstraint("shop_domain", name="uq_shops_shop_domain"),)

    ebay_seller_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    plan_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    api_lookups_used: Mapped[int] = mapped_column(nullable=False, default=0)
    quota_reset_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    storefront_access_token_encrypted: Mapped[str | None] = mapped_column(String(1024), nullable=True)
