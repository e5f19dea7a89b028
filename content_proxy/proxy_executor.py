"""
Streams one proxied request to the content service and the response back.
Bodies are relayed chunk by chunk in both directions; nothing is buffered whole.
"""
import logging
from typing import AsyncIterator, Iterable, Mapping
from urllib.parse import urlsplit

import httpx
from fastapi import HTTPException, Request
from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

# RFC 9110 hop-by-hop headers; never forwarded in either direction
HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def upstream_scheme(upstream_url: str) -> str:
    """'https' (TLS transport) or 'http' (plain transport) for the upstream URL."""
    return "https" if urlsplit(upstream_url).scheme.lower() == "https" else "http"


def build_request_headers(
    inbound: Iterable[tuple[str, str]], extra_headers: Mapping[str, str]
) -> list[tuple[str, str]]:
    """
    Inbound (name, value) pairs without hop-by-hop and Host, then extra_headers replacing same-named ones.
    Repeated inbound headers are kept as separate pairs.
    """
    overridden = {k.lower() for k in extra_headers}
    headers = [
        (k, v)
        for k, v in inbound
        if k.lower() not in HOP_BY_HOP and k.lower() != "host" and k.lower() not in overridden
    ]
    headers.extend(extra_headers.items())
    return headers


def _has_body(request: Request) -> bool:
    return "content-length" in request.headers or "transfer-encoding" in request.headers


async def _relay(upstream: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except httpx.HTTPError as e:
        logger.warning("Upstream stream broken for %s: %s", upstream.request.url, e)
        raise
    finally:
        await upstream.aclose()


async def execute(
    client: httpx.AsyncClient,
    request: Request,
    upstream_url: str,
    extra_headers: Mapping[str, str],
) -> StreamingResponse:
    """
    Open the upstream request and return a response that streams status, headers, then body.
    Raises HTTPException 502 if the content service cannot be reached.
    """
    scheme = upstream_scheme(upstream_url)
    headers = build_request_headers(request.headers.items(), extra_headers)
    content = request.stream() if _has_body(request) else None
    upstream_request = client.build_request(request.method, upstream_url, headers=headers, content=content)
    logger.debug("Proxying %s %s over %s", request.method, upstream_url, scheme)

    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.HTTPError as e:
        logger.error("Upstream request to %s failed: %s", upstream_url, e)
        raise HTTPException(
            status_code=502,
            detail={"error": "upstream_unavailable", "error_description": "Content service unreachable"},
        )

    response = StreamingResponse(_relay(upstream), status_code=upstream.status_code)
    # Raw pairs keep repeated headers (e.g. Set-Cookie) and the upstream content-encoding/length
    response.raw_headers = [
        (name.lower(), value)
        for name, value in upstream.headers.raw
        if name.decode("latin-1").lower() not in HOP_BY_HOP
    ]
    return response
