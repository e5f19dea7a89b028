"""
Content proxy server for the blog sample.
Serves the static blog under the mount root and proxies GET /content/... to the content service,
adding the Authorization header (static value or client-credentials bearer token) when configured.
"""
import argparse
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from content_proxy.config import (
    CONFIG_PATH,
    DEFAULT_ROOT,
    STATIC_DIR,
    ConfigurationError,
    ContentSettings,
    load_settings,
)
from content_proxy.credential_store import CredentialStore
from content_proxy.router import router as proxy_router

logger = logging.getLogger(__name__)


def create_app(
    settings: ContentSettings,
    *,
    http_client: httpx.AsyncClient | None = None,
    credential_store: CredentialStore | None = None,
    static_dir: str | None = STATIC_DIR,
) -> FastAPI:
    """
    Build the app for the given settings. One shared HTTP client and one credential store per app.
    static_dir=None skips the static mount.
    """
    # No timeout beyond the transport's own; long content downloads must not be cut off
    client = http_client or httpx.AsyncClient(timeout=None, follow_redirects=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Announce the listening address on startup; close the upstream client on shutdown."""
        logger.info(
            "Server running on : http://localhost:%s%s/index.html",
            settings.listen_port,
            settings.mount_root.rstrip("/"),
        )
        yield
        await client.aclose()

    app = FastAPI(title="Content Proxy", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.http_client = client
    app.state.credential_store = credential_store or CredentialStore.from_settings(settings, client)
    app.include_router(proxy_router, tags=["proxy"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "content_proxy", "auth_required": settings.auth_required}

    if static_dir is not None:
        app.mount(settings.mount_root, StaticFiles(directory=static_dir, check_dir=False), name="static")
    return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Blog sample server and content proxy")
    # A bare --root with no value falls back to the default root
    parser.add_argument("--root", nargs="?", const=DEFAULT_ROOT, default=DEFAULT_ROOT, help="path the static blog is served under")
    parser.add_argument("--config", default=None, help="path to content.json")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    args = parse_args(argv)
    try:
        settings = load_settings(args.config or CONFIG_PATH, mount_root=args.root)
    except ConfigurationError as e:
        logger.error("Startup aborted: %s", e)
        raise SystemExit(1)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.listen_port)


if __name__ == "__main__":
    main()
