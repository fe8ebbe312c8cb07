"""
Route-handler entry point: a Flask app with a wildcard proxy route
"""

import logging
import os
from typing import Optional

from flask import (
    Blueprint,
    Flask,
    Response,
    current_app,
    request,
    stream_with_context,
)

from baas_proxy.config import ProxyConfig, load_config
from baas_proxy.handler import handle
from baas_proxy.messages import ProxyRequest, body_stream
from baas_proxy.utils import BODYLESS_METHODS, PROXY_METHODS, split_path

logger = logging.getLogger(__name__)

bp = Blueprint("proxy", __name__)


class ProxiedResponse(Response):
    # Relay the upstream content-type as-is, never a synthesized default
    default_mimetype = None


def _has_body() -> bool:
    if request.content_length is not None:
        return True
    transfer_encoding = request.headers.get("Transfer-Encoding", "")
    return "chunked" in transfer_encoding.lower()


@bp.route("/", defaults={"path": ""}, methods=PROXY_METHODS, strict_slashes=False)
@bp.route("/<path:path>", methods=PROXY_METHODS)
def proxy(path: str):
    config: ProxyConfig = current_app.config["PROXY_CONFIG"]

    body = None
    if request.method not in BODYLESS_METHODS and _has_body():
        body = body_stream(request.stream, request.content_length, config.chunk_size)

    result = handle(
        config,
        ProxyRequest(
            method=request.method,
            path_segments=split_path(path),
            query_string=request.environ.get("QUERY_STRING", ""),
            headers=list(request.headers.items()),
            body=body,
        ),
    )

    return ProxiedResponse(
        stream_with_context(iter(result.body)),
        status=result.status_line,
        headers=list(result.headers.items()),
    )


def create_app(config: Optional[ProxyConfig] = None) -> Flask:
    """
    Build the proxy app. Configuration is loaded here when not supplied so a
    broken environment fails before the server starts listening.
    """
    if config is None:
        config = load_config()

    app = Flask(__name__, static_folder=None)
    app.config["PROXY_CONFIG"] = config
    app.register_blueprint(bp, url_prefix=config.route_prefix or None)

    logger.info(f"Proxy route mounted at {config.route_prefix or '/'}")
    return app


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = create_app()
    app.run(
        host=os.environ.get("PROXY_HOST", "0.0.0.0"),
        port=int(os.environ.get("PROXY_PORT", "8080")),
        threaded=True,
    )


if __name__ == "__main__":
    main()
