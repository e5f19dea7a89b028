"""
Pytest configuration for content_proxy. Upstream content service and identity service are faked with httpx.MockTransport.
"""
import json
import os

import httpx
import pytest

from content_proxy.config import ContentSettings

# Keep env overrides from leaking into settings built by tests
for _name in ("CONTENT_PROXY_PORT", "CONTENT_CONFIG_PATH"):
    os.environ.pop(_name, None)

SERVER_URL = "https://example.com/oce"
IDCS_URL = "https://idcs.example.com"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ChunkStream(httpx.AsyncByteStream):
    """Unread upstream body, yielded chunk by chunk like a real connection. Records when it is closed."""

    def __init__(self, *chunks: bytes):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self):
        self.closed = True


def streamed_response(status_code: int, body: bytes = b"", headers=None) -> httpx.Response:
    """Upstream response whose body has not been read yet (Response(content=...) would pre-read it)."""
    return httpx.Response(status_code, stream=ChunkStream(body) if body else ChunkStream(), headers=headers)


class FakeServices:
    """
    Routes requests to the identity service (POST .../oauth2/v1/token) or the content service.
    Records every request so tests can assert what went upstream.
    """

    def __init__(self):
        self.token_requests: list[httpx.Request] = []
        self.content_requests: list[httpx.Request] = []
        self.tokens = ["token-A", "token-B", "token-C"]
        self.expires_in = 3600
        self.token_status = 200
        self.content_handler = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth2/v1/token":
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            token = self.tokens[len(self.token_requests) - 1]
            return httpx.Response(
                200, json={"access_token": token, "token_type": "Bearer", "expires_in": self.expires_in}
            )
        self.content_requests.append(request)
        if self.content_handler is not None:
            return self.content_handler(request)
        return streamed_response(
            200, json.dumps({"items": []}).encode(), headers={"Content-Type": "application/json", "X-Upstream": "oce"}
        )


@pytest.fixture
def make_upstream_response():
    return streamed_response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def upstream_client(services):
    return httpx.AsyncClient(transport=httpx.MockTransport(services))


@pytest.fixture
def no_auth_settings():
    return ContentSettings(server_url=SERVER_URL, mount_root="/blog")


@pytest.fixture
def static_auth_settings():
    return ContentSettings(server_url=SERVER_URL, static_auth_value="Basic c3RhdGljOnZhbHVl", mount_root="/blog")


@pytest.fixture
def oauth_settings():
    return ContentSettings(
        server_url=SERVER_URL,
        client_id="blog-client",
        client_secret="s3cret",
        client_scope_url="https://example.com:443/urn:opc:cec:all",
        identity_service_url=IDCS_URL,
        mount_root="/blog",
    )
