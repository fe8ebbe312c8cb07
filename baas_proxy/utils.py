"""
Header and URL helpers for the BaaS proxy
"""

import logging
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)

API_KEY_HEADER = "apikey"
DEFAULT_CONTENT_TYPE = "application/json"

BODYLESS_METHODS = {"GET", "HEAD"}
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Dropped from the inbound request so the upstream sees its own host
EXCLUDED_REQUEST_HEADERS = {"host"}

# Transport encodings that do not survive re-framing through the proxy
EXCLUDED_RESPONSE_HEADERS = {"transfer-encoding"}
# Describe the upstream bytes, not the decoded body the relay yields
DECODED_BODY_HEADERS = {"content-encoding", "content-length"}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(PROXY_METHODS),
    "Access-Control-Allow-Headers": (
        "Content-Type, Authorization, apikey, x-client-info, x-client-version"
    ),
}

HeaderItems = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _iter_headers(headers: HeaderItems) -> Iterable[Tuple[str, str]]:
    if hasattr(headers, "items"):
        return headers.items()  # type: ignore
    return headers


def get_header_case_insensitive(
    headers: HeaderItems, header_name: str
) -> Optional[str]:
    """
    Get header value in a case-insensitive manner. The last occurrence wins.
    """
    header_lower = header_name.lower()
    found = None
    for key, val in _iter_headers(headers):
        if key.lower() == header_lower:
            found = val
    return found


def split_path(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


def strip_route_prefix(path: str, prefix: str) -> str:
    if prefix and (path == prefix or path.startswith(prefix + "/")):
        return path[len(prefix) :]
    return path


def build_target_url(base_url: str, path_segments: List[str], query_string: str) -> str:
    target_url = f"{base_url}/{'/'.join(path_segments)}"
    if query_string:
        target_url += f"?{query_string}"
    return target_url


def build_outbound_headers(
    headers: HeaderItems, api_key: str, method: str
) -> CaseInsensitiveDict:
    outbound = CaseInsensitiveDict()
    for key, value in _iter_headers(headers):
        if key.lower() in EXCLUDED_REQUEST_HEADERS:
            continue
        outbound[key] = value

    # Never trust a caller-supplied credential of the same name
    outbound[API_KEY_HEADER] = api_key

    # Keep an existing content-type so multipart boundaries survive
    if method.upper() not in BODYLESS_METHODS and "content-type" not in outbound:
        outbound["content-type"] = DEFAULT_CONTENT_TYPE

    return outbound


def filter_response_headers(
    headers: HeaderItems, decoded: bool = False
) -> CaseInsensitiveDict:
    """
    Copy upstream response headers minus the transfer framing.

    When ``decoded`` is set the relayed body is the decoded content, so the
    upstream content-encoding and content-length are dropped as well.
    Otherwise the bytes pass through untouched and keep both.
    """
    excluded = set(EXCLUDED_RESPONSE_HEADERS)
    if decoded:
        excluded |= DECODED_BODY_HEADERS

    filtered = CaseInsensitiveDict()
    for key, value in _iter_headers(headers):
        if key.lower() not in excluded:
            filtered[key] = value
    return filtered


def apply_cors_headers(headers: CaseInsensitiveDict) -> CaseInsensitiveDict:
    for key, value in CORS_HEADERS.items():
        headers[key] = value
    return headers


def redact(text: str, secret: Optional[str]) -> str:
    if secret and secret in text:
        return text.replace(secret, "[REDACTED]")
    return text
