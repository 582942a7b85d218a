import asyncio
import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp

from tradezen.config import get_store_config
from tradezen.exceptions import AuthorizationError, TransportError

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


def raise_for_google_status(status: int, body: str, url: str) -> None:
    """Map a Google HTTP status onto the store's error taxonomy."""
    if status < 400:
        return
    message = f"{status} from {url}: {body[:300]}"
    if status in (401, 403):
        raise AuthorizationError(message, status=status)
    raise TransportError(message, status=status)


async def google_request(
    method: str,
    url: str,
    access_token: Optional[str] = None,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Any] = None,
    data: Any = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Issue one HTTP call against a Google endpoint and decode the JSON reply.

    Raises:
        AuthorizationError: the credential was rejected.
        TransportError: any other HTTP or network failure.
    """
    headers = {}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    client_timeout = aiohttp.ClientTimeout(total=timeout or get_store_config().request_timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as s:
            async with s.request(method, url, headers=headers, params=params, json=json_body, data=data) as r:
                body = await r.text()
                raise_for_google_status(r.status, body, url)
    except aiohttp.ClientError as e:
        raise TransportError(f"{method} {url} failed: {e}") from e
    except asyncio.TimeoutError as e:
        raise TransportError(f"{method} {url} timed out") from e

    if not body:
        return {}
    try:
        return json.loads(body)
    except ValueError as e:
        raise TransportError(f"Invalid JSON from {url}") from e


def build_authorization_url(client_id: str, redirect_uri: str, scopes: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scopes,
        "access_type": "offline",  # Request refresh token
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_authorization_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
) -> Dict[str, Any]:
    """Trade the consent callback code for access and refresh tokens."""
    return await google_request(
        "POST",
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
    )


async def refresh_access_token(client_id: str, client_secret: str, refresh_token: str) -> Dict[str, Any]:
    """
    Refresh the Google OAuth access token using the refresh token.

    Returns the token endpoint payload (``access_token`` and, sometimes, a
    rotated ``refresh_token``).
    """
    if not all([client_id, client_secret, refresh_token]):
        raise AuthorizationError("Cannot refresh without client credentials and a refresh token")

    return await google_request(
        "POST",
        GOOGLE_TOKEN_URL,
        data={
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
    )


async def fetch_user_info(access_token: str) -> Dict[str, Any]:
    """Identity introspection; doubles as the cheapest credential validity check."""
    return await google_request("GET", GOOGLE_USERINFO_URL, access_token)
