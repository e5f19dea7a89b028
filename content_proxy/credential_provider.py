"""
OAuth2 client-credentials grant against the identity service (IDCS).
POST {idcsURL}/oauth2/v1/token with Basic client auth; returns a Bearer header value and its lifetime.
"""
import base64
import logging
from dataclasses import dataclass
from urllib.parse import quote, urljoin

import httpx

from content_proxy.config import TOKEN_PATH

logger = logging.getLogger(__name__)


class TokenAcquisitionError(Exception):
    """Token request failed: transport error, non-2xx status, or malformed response."""


@dataclass(frozen=True)
class BearerToken:
    header_value: str
    expires_in: int


def basic_auth_value(client_id: str, client_secret: str) -> str:
    """'Basic <base64(client_id:client_secret)>' (RFC 6749 §2.3.1)."""
    encoded = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def token_endpoint(identity_service_url: str) -> str:
    """Absolute token path resolved against the identity service URL (any path on it is replaced)."""
    return urljoin(identity_service_url, TOKEN_PATH)


async def fetch_bearer_token(
    client: httpx.AsyncClient,
    client_id: str,
    client_secret: str,
    scope_url: str,
    identity_service_url: str,
) -> BearerToken:
    """
    Request a new access token with grant_type=client_credentials.
    Raises TokenAcquisitionError on any failure; nothing is cached here.
    """
    url = token_endpoint(identity_service_url)
    body = f"grant_type=client_credentials&scope={quote(scope_url, safe='')}"
    try:
        r = await client.post(
            url,
            content=body.encode("ascii"),
            headers={
                "Authorization": basic_auth_value(client_id, client_secret),
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
        )
    except httpx.HTTPError as e:
        raise TokenAcquisitionError(f"token request to {url} failed: {e}") from e

    if not r.is_success:
        raise TokenAcquisitionError(f"token endpoint returned {r.status_code}")

    try:
        data = r.json()
    except ValueError as e:
        raise TokenAcquisitionError("token response is not valid JSON") from e
    if not isinstance(data, dict):
        raise TokenAcquisitionError("token response is not a JSON object")

    access_token = data.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise TokenAcquisitionError("token response has no access_token")

    expires_in = data.get("expires_in")
    # bool is an int subclass; reject it explicitly
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, str)):
        raise TokenAcquisitionError("token response has no expires_in")
    try:
        expires_in = int(expires_in)
    except ValueError as e:
        raise TokenAcquisitionError(f"invalid expires_in: {expires_in!r}") from e

    logger.debug("client_credentials token received for client_id=%s (expires_in=%s)", client_id, expires_in)
    return BearerToken(header_value=f"Bearer {access_token}", expires_in=expires_in)
