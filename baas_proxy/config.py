"""
Process-wide proxy configuration loaded from the environment
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Supabase names used by existing deployments are accepted as fall-backs
UPSTREAM_URL_VARS = ("UPSTREAM_BASE_URL", "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL")
UPSTREAM_KEY_VARS = (
    "UPSTREAM_ANON_KEY",
    "SUPABASE_ANON_KEY",
    "NEXT_PUBLIC_SUPABASE_ANON_KEY",
)

DEFAULT_ROUTE_PREFIX = "/api/proxy"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 8192

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised when the proxy cannot start because its configuration is broken."""


@dataclass(frozen=True)
class ProxyConfig:
    upstream_base_url: str
    upstream_api_key: str = field(repr=False)
    route_prefix: str = DEFAULT_ROUTE_PREFIX
    timeout: float = DEFAULT_TIMEOUT
    answer_preflight: bool = False
    chunk_size: int = DEFAULT_CHUNK_SIZE


def _first_value(environ: Mapping[str, str], names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = (environ.get(name) or "").strip()
        if value:
            return value
    return None


def _normalize_base_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(
            f"{UPSTREAM_URL_VARS[0]} must be an absolute http(s) URL, got: {url!r}"
        )
    return url.rstrip("/")


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip().strip("/")
    return f"/{prefix}" if prefix else ""


def _parse_number(environ: Mapping[str, str], name: str, default, cast):
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got: {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got: {raw!r}")
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """
    Build the proxy configuration from environment variables.

    Raises:
        ConfigurationError: if the upstream URL or API key is missing or empty,
            or if any optional setting is malformed.
    """
    if environ is None:
        environ = os.environ

    base_url = _first_value(environ, UPSTREAM_URL_VARS)
    api_key = _first_value(environ, UPSTREAM_KEY_VARS)

    missing = []
    if not base_url:
        missing.append(" / ".join(UPSTREAM_URL_VARS))
    if not api_key:
        missing.append(" / ".join(UPSTREAM_KEY_VARS))
    if missing:
        raise ConfigurationError(
            "Missing required proxy configuration: " + "; ".join(missing)
        )

    config = ProxyConfig(
        upstream_base_url=_normalize_base_url(base_url),
        upstream_api_key=api_key,
        route_prefix=_normalize_prefix(
            environ.get("PROXY_ROUTE_PREFIX", DEFAULT_ROUTE_PREFIX)
        ),
        timeout=_parse_number(environ, "PROXY_TIMEOUT", DEFAULT_TIMEOUT, float),
        answer_preflight=(environ.get("PROXY_ANSWER_PREFLIGHT") or "").strip().lower()
        in _TRUE_VALUES,
        chunk_size=_parse_number(
            environ, "PROXY_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, int
        ),
    )

    logger.info(
        f"Loaded proxy configuration: upstream={config.upstream_base_url} "
        f"prefix={config.route_prefix or '/'} timeout={config.timeout}s "
        f"preflight={'local' if config.answer_preflight else 'forwarded'}"
    )
    return config
