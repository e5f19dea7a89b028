"""
Content proxy configuration.
Constants from env; content service settings read once from the JSON config file (src/config/content.json).
"""
import json
import os
from dataclasses import dataclass
from pathlib import Path

# JSON file shared with the browser client (serverUrl, apiVersion, channelToken, auth, clientId, ...)
CONFIG_PATH = os.environ.get("CONTENT_CONFIG_PATH", "src/config/content.json")

# Directory with the static blog assets, served under the mount root
STATIC_DIR = os.environ.get("CONTENT_PROXY_STATIC_DIR", "src")

# Path the static assets are mounted on when --root is not given
DEFAULT_ROOT = os.environ.get("CONTENT_PROXY_ROOT", "/oce-javascript-blog-sample")

DEFAULT_PORT = 8080

# Seconds before expiry at which a bearer token is treated as stale
REFRESH_SKEW_SECONDS = 5

# Fixed path prefix proxied to the content service (independent of the mount root)
PROXY_PREFIX = "/content/"

# Identity service token endpoint, resolved against idcsURL
TOKEN_PATH = "/oauth2/v1/token"

AUTH_SOURCE_STATIC = "static"
AUTH_SOURCE_CLIENT_CREDENTIALS = "client_credentials"


class ConfigurationError(Exception):
    """Required startup value missing or invalid. Fatal."""


@dataclass(frozen=True)
class ContentSettings:
    server_url: str
    api_version: str | None = None
    channel_token: str | None = None
    preview: bool = False
    static_auth_value: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    client_scope_url: str | None = None
    identity_service_url: str | None = None
    listen_port: int = DEFAULT_PORT
    mount_root: str = DEFAULT_ROOT

    @property
    def auth_source(self) -> str | None:
        """Active credential source. A static value wins over client credentials."""
        if self.static_auth_value:
            return AUTH_SOURCE_STATIC
        if self.client_id:
            return AUTH_SOURCE_CLIENT_CREDENTIALS
        return None

    @property
    def auth_required(self) -> bool:
        return self.auth_source is not None


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return str(value)


def settings_from_dict(data: dict, *, mount_root: str | None = None) -> ContentSettings:
    """
    Build and validate settings from the parsed config record.
    Raises ConfigurationError if serverUrl is missing or the client-credentials set is incomplete.
    """
    server_url = _optional_str(data, "serverUrl")
    if not server_url:
        raise ConfigurationError("serverUrl is required")

    port_value = os.environ.get("CONTENT_PROXY_PORT") or data.get("expressServerPort") or DEFAULT_PORT
    try:
        listen_port = int(port_value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"invalid port: {port_value!r}")

    settings = ContentSettings(
        server_url=server_url,
        api_version=_optional_str(data, "apiVersion"),
        channel_token=_optional_str(data, "channelToken"),
        preview=bool(data.get("preview", False)),
        static_auth_value=_optional_str(data, "auth"),
        client_id=_optional_str(data, "clientId"),
        client_secret=_optional_str(data, "clientSecret"),
        client_scope_url=_optional_str(data, "clientScopeURL"),
        identity_service_url=_optional_str(data, "idcsURL"),
        listen_port=listen_port,
        mount_root=mount_root or DEFAULT_ROOT,
    )

    if settings.auth_source == AUTH_SOURCE_CLIENT_CREDENTIALS:
        missing = [
            key
            for key, value in (
                ("clientSecret", settings.client_secret),
                ("clientScopeURL", settings.client_scope_url),
                ("idcsURL", settings.identity_service_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"clientId is set but {', '.join(missing)} missing")
    return settings


def load_settings(path: str | Path = CONFIG_PATH, *, mount_root: str | None = None) -> ContentSettings:
    """Read the JSON config file once. Raises ConfigurationError if it is missing or malformed."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read config file {path}: {e}")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"config file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a JSON object")
    return settings_from_dict(data, mount_root=mount_root)
