"""
API Gateway / Lambda Function URL event adapter for the proxy handler
"""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import requests  # type: ignore

from baas_proxy.config import ProxyConfig
from baas_proxy.handler import (
    create_error_response,
    create_internal_error_response,
    handle,
)
from baas_proxy.messages import ProxyRequest, ProxyResponse
from baas_proxy.utils import (
    get_header_case_insensitive,
    redact,
    split_path,
    strip_route_prefix,
)

logger = logging.getLogger(__name__)


class RequestBodyError(Exception):
    """The inbound event body could not be decoded."""


def _is_v2_event(event: Dict[str, Any]) -> bool:
    return event.get("version") == "2.0"


def _extract_method_and_path(event: Dict[str, Any]) -> Tuple[str, str]:
    if _is_v2_event(event):
        # Lambda Function URL / HTTP API v2.0 format
        return event["requestContext"]["http"]["method"], event.get("rawPath", "")
    # API Gateway REST API v1.0 format
    return event.get("httpMethod", "GET"), event.get("path", "")


def _extract_query_string(event: Dict[str, Any]) -> str:
    if _is_v2_event(event):
        return event.get("rawQueryString") or ""

    multi_params = event.get("multiValueQueryStringParameters")
    if multi_params:
        return urlencode(
            [(key, value) for key, values in multi_params.items() for value in values],
            safe="*,()",
        )
    params = event.get("queryStringParameters")
    if params:
        return urlencode(params, safe="*,()")
    return ""


def _extract_headers(event: Dict[str, Any]) -> List[Tuple[str, str]]:
    headers: List[Tuple[str, str]] = list((event.get("headers") or {}).items())
    for key, values in (event.get("multiValueHeaders") or {}).items():
        if values:
            # Last value wins, as with a plain header collection
            headers.append((key, values[-1]))
    cookies = event.get("cookies")
    if cookies:
        # v2 events lift cookies out of the header map
        headers.append(("Cookie", "; ".join(cookies)))
    return headers


def _extract_body(event: Dict[str, Any]) -> Optional[bytes]:
    body = event.get("body")
    if body is None or body == "":
        return None
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RequestBodyError(str(e))
    return body.encode("utf-8")


def _extract_caller_info(event: Dict[str, Any], headers: List[Tuple[str, str]]) -> str:
    """Extract caller information from the event for logging purposes."""
    caller_parts = []
    request_context = event.get("requestContext") or {}

    source_ip = None
    if "identity" in request_context:
        source_ip = request_context["identity"].get("sourceIp")
    elif "http" in request_context:
        source_ip = request_context["http"].get("sourceIp")
    if source_ip:
        caller_parts.append(f"ip={source_ip}")

    user_agent = get_header_case_insensitive(headers, "User-Agent")
    if user_agent:
        if len(user_agent) > 100:
            user_agent = user_agent[:97] + "..."
        caller_parts.append(f"ua={user_agent}")

    request_id = request_context.get("requestId")
    if request_id:
        caller_parts.append(f"req_id={request_id}")

    if _is_v2_event(event):
        caller_parts.append("source=lambda_url")
    elif "apiId" in request_context:
        caller_parts.append("source=api_gateway")

    return " | ".join(caller_parts) if caller_parts else "unknown"


def _to_lambda_response(result: ProxyResponse) -> Dict[str, Any]:
    # Lambda replies are buffered; the relay is drained here
    payload = b"".join(result.body)
    try:
        body, is_base64 = payload.decode("utf-8"), False
    except UnicodeDecodeError:
        body, is_base64 = base64.b64encode(payload).decode("ascii"), True

    return {
        "statusCode": result.status_code,
        "headers": dict(result.headers.items()),
        "body": body,
        "isBase64Encoded": is_base64,
    }


def handle_event(
    event: Dict[str, Any], context: Any, config: ProxyConfig
) -> Dict[str, Any]:
    method, raw_path = _extract_method_and_path(event)
    headers = _extract_headers(event)
    path = strip_route_prefix(raw_path, config.route_prefix)

    logger.info(
        f"Processing {method} request to {path or '/'} "
        f"(caller: {_extract_caller_info(event, headers)}, "
        f"request: {getattr(context, 'aws_request_id', 'unknown')})"
    )

    try:
        body = _extract_body(event)
    except RequestBodyError as e:
        logger.error(f"Error reading request body: {e}")
        return _to_lambda_response(
            create_error_response(400, {"error": "Failed to read request body"})
        )

    result = handle(
        config,
        ProxyRequest(
            method=method,
            path_segments=split_path(path),
            query_string=_extract_query_string(event),
            headers=headers,
            body=body,
        ),
    )

    try:
        return _to_lambda_response(result)
    except requests.exceptions.RequestException as e:
        message = redact(str(e), config.upstream_api_key)
        logger.error(
            f"Error reading upstream body for {method} {path or '/'}: "
            f"{type(e).__name__}: {message}"
        )
        return _to_lambda_response(create_internal_error_response(message))

