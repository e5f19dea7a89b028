"""
Proxy routes: /content/... on this server -> {serverUrl}/content/... on the content service.
Only GET is forwarded. The Authorization header is added here so the browser never sees it.
"""
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from content_proxy.config import ContentSettings
from content_proxy.credential_provider import TokenAcquisitionError
from content_proxy.credential_store import CredentialStore
from content_proxy.proxy_executor import execute

logger = logging.getLogger(__name__)
router = APIRouter()

def get_settings(request: Request) -> ContentSettings:
    return request.app.state.settings


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def build_upstream_url(server_url: str, remainder: str) -> str:
    """
    server_url + '/content/' + remainder with exactly one '/' on each side of 'content'.
    remainder is the inbound path after '/content/' plus its query string, kept verbatim.
    """
    content = "content" if server_url.endswith("/") else "/content"
    if not remainder.startswith("/"):
        content = f"{content}/"
    return f"{server_url}{content}{remainder}"


def _path_after_prefix(request: Request) -> str:
    """Raw path and query after the /content prefix, not percent-decoded."""
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    path = raw_path.decode("latin-1")
    # raw_path may carry the query on some servers; strip it to avoid doubling
    path = path.split("?", 1)[0]
    remainder = path[len("/content"):]
    query = request.url.query
    return f"{remainder}?{query}" if query else remainder


@router.get("/content/{path:path}")
async def proxy_content(
    request: Request,
    settings: ContentSettings = Depends(get_settings),
    store: CredentialStore = Depends(get_credential_store),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Forward GET to the content service, streaming the response back."""
    upstream_url = build_upstream_url(settings.server_url, _path_after_prefix(request))

    extra_headers = {}
    if store.auth_required:
        try:
            auth_value = await store.get_authorization_value()
        except TokenAcquisitionError as e:
            logger.warning("Token acquisition failed for %s: %s", request.url.path, e)
            raise HTTPException(
                status_code=502,
                detail={"error": "token_acquisition_failed", "error_description": "Could not obtain access token"},
            )
        extra_headers["Authorization"] = auth_value

    return await execute(client, request, upstream_url, extra_headers)


class UnansweredRequest:
    """
    ASGI endpoint for every other method on /content/ (read-only proxy).
    Reads the request and never answers: no upstream call, no response, returns once the client disconnects.
    """

    async def __call__(self, scope, receive, send) -> None:
        logger.debug("Ignoring %s %s (only GET is proxied)", scope["method"], scope["path"])
        while (await receive())["type"] != "http.disconnect":
            pass


# Registered after the GET route; a plain ASGI endpoint with no method list matches any verb
router.add_route("/content/{path:path}", UnansweredRequest(), methods=None, include_in_schema=False)
