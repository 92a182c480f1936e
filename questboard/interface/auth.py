"""Bearer-token authentication against the identity provider."""

import logging

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from questboard.core.config import constants, settings
from questboard.core.errors import UnauthorizedError


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def fetch_user_id(token: str) -> str:
    """Exchange an access token for the caller's user id.

    Raises:
        UnauthorizedError: If the provider rejects the token or cannot be reached
    """
    headers = {"Authorization": f"Bearer {token}"}
    if settings.supabase_anon_key:
        headers["apikey"] = settings.supabase_anon_key

    try:
        async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
            response = await client.get(f"{settings.supabase_url}/auth/v1/user", headers=headers)
    except httpx.HTTPError as e:
        logger.warning("auth_provider_unreachable", extra={"error": str(e)})
        raise UnauthorizedError("Invalid or expired token") from e

    if not response.is_success:
        logger.info("auth_token_rejected", extra={"status_code": response.status_code})
        raise UnauthorizedError("Invalid or expired token")

    try:
        user_id = response.json().get("id")
    except ValueError as e:
        logger.warning("auth_provider_bad_payload", extra={"status_code": response.status_code})
        raise UnauthorizedError("Invalid or expired token") from e
    if not user_id:
        raise UnauthorizedError("Invalid or expired token")
    return user_id


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """FastAPI dependency resolving the authenticated caller's id."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    return await fetch_user_id(credentials.credentials)
