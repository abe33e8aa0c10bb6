from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SellerSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ebay_seller_username: str = Field(default="", alias="ebaySellerUsername", max_length=255)


class SellerSettingsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    shop_domain: str = Field(alias="shopDomain")
    ebay_seller_username: str = Field(alias="ebaySellerUsername")
