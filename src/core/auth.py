from __future__ import annotations

import secrets
from dataclasses import dataclass
from urllib.parse import urlparse

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.core.config import settings
from src.core.context import set_current_shop_domain

bearer_scheme = HTTPBearer(auto_error=True)

SHOP_DOMAIN_SUFFIX = ".myshopify.com"


@dataclass(slots=True)
class AuthContext:
    shop_domain: str
    subject: str
    claims: dict


def shop_domain_from_claims(claims: dict) -> str | None:
    dest = claims.get("dest")
    if not dest:
        return None
    host = urlparse(dest).hostname if "://" in dest else dest
    if not host:
        return None
    host = host.lower()
    if not host.endswith(SHOP_DOMAIN_SUFFIX):
        return None
    return host


def _decode_session_token(token: str) -> dict:
    if not settings.shopify_api_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="SHOPIFY_API_SECRET is not configured",
        )

    options = {"verify_aud": bool(settings.shopify_api_key)}
    try:
        return jwt.decode(
            token,
            settings.shopify_api_secret,
            algorithms=["HS256"],
            audience=settings.shopify_api_key or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session token",
        ) from exc


async def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AuthContext:
    claims = _decode_session_token(credentials.credentials)

    shop_domain = shop_domain_from_claims(claims)
    subject = claims.get("sub") or ""
    if not shop_domain:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session token does not identify a shop",
        )

    request.state.shop_domain = shop_domain
    set_current_shop_domain(shop_domain)

    return AuthContext(shop_domain=shop_domain, subject=str(subject), claims=claims)


async def require_internal_caller(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> None:
    expected = settings.internal_api_secret
    if not expected or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized internal call",
        )
