"""Shared request dependencies: API key check and the error envelope."""

import secrets

from fastapi import Header, HTTPException, status

from api.models.responses import ErrorCodes
from core.config import RECONCILE_API_KEY


def api_error(status_code: int, error: str, code: str, details: list[str] | None = None) -> HTTPException:
    """HTTPException carrying the {"error", "code", "details"} body every endpoint returns."""
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "code": code, "details": details or []},
    )


async def verify_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> str:
    """
    Raises:
        HTTPException: 500 when the server has no key configured, 401 on a mismatch
    """
    if not RECONCILE_API_KEY:
        raise api_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "API key not configured on server",
            ErrorCodes.INTERNAL_ERROR,
            ["RECONCILE_API_KEY"],
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_api_key.encode(), RECONCILE_API_KEY.encode()):
        raise api_error(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API key", ErrorCodes.UNAUTHORIZED)

    return x_api_key
