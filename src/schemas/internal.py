from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ShopInstallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shop_domain: str = Field(alias="shopDomain", min_length=3, max_length=255)
    access_token: str = Field(alias="accessToken", min_length=8, max_length=1024)


class ShopInstallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    shop_domain: str = Field(alias="shopDomain")
