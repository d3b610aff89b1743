"""
API auth helpers.

Callers authenticate with a merchant token (``Authorization: Bearer``
or ``X-API-Key``). The token is resolved to a merchant id once, here,
and that id is passed explicitly to every engine operation.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from ..config import settings
from ..errors import AuthenticationError


def _extract_token(authorization: str | None, x_api_key: str | None) -> str | None:
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def resolve_merchant(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
) -> str:
    """
    Resolve the calling merchant from its token.

    With no tokens configured (development), every caller acts as
    ``default_merchant_id``.
    """
    token_map = settings.merchant_token_map
    if not token_map:
        return settings.default_merchant_id

    token = _extract_token(authorization, x_api_key)
    merchant_id = token_map.get(token) if token else None
    if not merchant_id:
        raise AuthenticationError("Invalid or missing API token")
    return merchant_id


MerchantID = Annotated[str, Depends(resolve_merchant)]


def require_metrics_token(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
) -> None:
    """Require metrics token if configured."""
    if not settings.metrics_token:
        return
    token = _extract_token(authorization, x_api_key)
    if token != settings.metrics_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
