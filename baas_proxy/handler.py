"""
Generic forwarding proxy handler shared by the route and edge entry points
"""

import json
import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Union

import requests  # type: ignore
from requests.structures import CaseInsensitiveDict
from urllib3.response import HTTPResponse

from baas_proxy.config import ProxyConfig
from baas_proxy.messages import ProxyRequest, ProxyResponse
from baas_proxy.utils import (
    BODYLESS_METHODS,
    apply_cors_headers,
    build_outbound_headers,
    build_target_url,
    filter_response_headers,
    redact,
)

logger = logging.getLogger(__name__)

ERROR_REASONS = {400: "Bad Request", 500: "Internal Server Error"}


def handle(config: ProxyConfig, request: ProxyRequest) -> ProxyResponse:
    """
    Forward ``request`` to the configured upstream and relay its response.

    Transport failures become a 500 JSON envelope. Upstream statuses, including
    non-2xx ones, are relayed unchanged.
    """
    if request.method == "OPTIONS" and config.answer_preflight:
        return _create_preflight_response()

    try:
        target_url = build_target_url(
            config.upstream_base_url, request.path_segments, request.query_string
        )
        headers = build_outbound_headers(
            request.headers, config.upstream_api_key, request.method
        )

        body = None
        if request.method not in BODYLESS_METHODS:
            body = request.body

        upstream = _make_upstream_request(
            method=request.method,
            url=target_url,
            headers=headers,
            body=body,
            timeout=config.timeout,
        )
    except Exception as e:
        message = redact(str(e), config.upstream_api_key)
        logger.error(
            f"Error forwarding {request.method} /{'/'.join(request.path_segments)}: "
            f"{type(e).__name__}: {message}"
        )
        return create_internal_error_response(message)

    return _create_relay_response(upstream, config.chunk_size)


def _make_upstream_request(
    method: str,
    url: str,
    headers: CaseInsensitiveDict,
    body: Optional[Union[bytes, Iterable[bytes]]],
    timeout: float,
) -> requests.Response:
    kwargs = {
        "headers": headers,
        "stream": True,
        "allow_redirects": False,
        "timeout": timeout,
    }
    if body is not None:
        kwargs["data"] = body

    logger.info(f"Forwarding {method} request upstream: {url.split('?', 1)[0]}")

    response = requests.request(method, url, **kwargs)

    logger.info(f"Upstream response: {response.status_code} {response.reason or ''}")
    return response


def _relay_body(upstream: requests.Response, chunk_size: int) -> Iterator[bytes]:
    try:
        for chunk in upstream.iter_content(chunk_size=chunk_size):
            if chunk:
                yield chunk
    finally:
        upstream.close()


def _is_decoded_by_transport(content_encoding: Optional[str]) -> bool:
    """
    True when urllib3 undoes every coding in ``content_encoding`` inside
    ``iter_content``. Codings it has no decoder for (``br`` without brotli,
    ``compress``) reach the caller as-is and keep their headers.
    """
    if not content_encoding:
        return False
    codings = [c.strip().lower() for c in content_encoding.split(",") if c.strip()]
    return bool(codings) and all(
        coding in HTTPResponse.CONTENT_DECODERS for coding in codings
    )


def _create_relay_response(
    upstream: requests.Response, chunk_size: int
) -> ProxyResponse:
    decoded = _is_decoded_by_transport(upstream.headers.get("content-encoding"))
    headers = filter_response_headers(upstream.headers, decoded=decoded)

    return ProxyResponse(
        status_code=upstream.status_code,
        reason=upstream.reason or "",
        headers=apply_cors_headers(headers),
        body=_relay_body(upstream, chunk_size),
    )


def _create_preflight_response() -> ProxyResponse:
    return ProxyResponse(
        status_code=200,
        reason="OK",
        headers=apply_cors_headers(CaseInsensitiveDict()),
        body=[b"ok"],
    )


def create_error_response(status_code: int, payload: Dict[str, Any]) -> ProxyResponse:
    """Build a JSON error envelope carrying the CORS headers."""
    headers = CaseInsensitiveDict({"Content-Type": "application/json"})
    return ProxyResponse(
        status_code=status_code,
        reason=ERROR_REASONS.get(status_code, ""),
        headers=apply_cors_headers(headers),
        body=[json.dumps(payload).encode("utf-8")],
    )


def create_internal_error_response(message: str) -> ProxyResponse:
    return create_error_response(
        500,
        {"error": "Internal server error", "details": message or "Unknown error"},
    )
