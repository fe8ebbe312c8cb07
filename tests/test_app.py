"""
Tests for the Flask route-handler entry point
"""

import json
from unittest.mock import Mock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from baas_proxy.app import create_app
from baas_proxy.config import ConfigurationError, ProxyConfig

UPSTREAM = "https://project.supabase.co"
SECRET = "service-secret-key"


def _upstream(status=200, reason="OK", headers=None, chunks=(b"[]",)):
    response = Mock()
    response.status_code = status
    response.reason = reason
    response.headers = CaseInsensitiveDict(headers or {})
    response.iter_content.return_value = iter(chunks)
    return response


@pytest.fixture
def client():
    app = create_app(ProxyConfig(upstream_base_url=UPSTREAM, upstream_api_key=SECRET))
    app.testing = True
    return app.test_client()


class TestProxyRoute:
    @patch("baas_proxy.handler.requests.request")
    def test_get_end_to_end(self, mock_request, client):
        events = [{"id": 1, "title": "Hackathon"}]
        upstream = _upstream(
            headers={"Content-Type": "application/json", "Content-Encoding": "gzip"},
            chunks=(json.dumps(events).encode(),),
        )
        mock_request.return_value = upstream

        response = client.get(
            "/api/proxy/rest/v1/events?select=*",
            headers={"Authorization": "Bearer abc"},
        )

        assert mock_request.call_args.args == (
            "GET",
            f"{UPSTREAM}/rest/v1/events?select=*",
        )
        sent = mock_request.call_args.kwargs["headers"]
        assert sent["Authorization"] == "Bearer abc"
        assert sent["apikey"] == SECRET
        assert "host" not in sent

        assert response.status_code == 200
        assert response.get_json() == events
        assert "Content-Encoding" not in response.headers
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        upstream.close.assert_called_once()

    @patch("baas_proxy.handler.requests.request")
    def test_post_body_streamed_upstream(self, mock_request, client):
        received = {}

        def fake_request(method, url, **kwargs):
            received["body"] = b"".join(kwargs["data"])
            received["length"] = len(kwargs["data"])
            return _upstream(status=201, reason="Created")

        mock_request.side_effect = fake_request
        payload = b"--X\r\nContent-Disposition: form-data\r\n\r\n" + b"\x00" * 10000

        response = client.post(
            "/api/proxy/storage/v1/object/gallery/photo.jpg",
            data=payload,
            headers={"Content-Type": "multipart/form-data; boundary=X"},
        )

        assert response.status == "201 Created"
        assert received["body"] == payload
        assert received["length"] == len(payload)
        sent = mock_request.call_args.kwargs["headers"]
        assert sent["content-type"] == "multipart/form-data; boundary=X"

    @patch("baas_proxy.handler.requests.request")
    def test_delete_without_body(self, mock_request, client):
        mock_request.return_value = _upstream(status=204, reason="No Content")

        response = client.delete("/api/proxy/rest/v1/gallery?id=eq.3")

        assert "data" not in mock_request.call_args.kwargs
        assert mock_request.call_args.kwargs["headers"]["content-type"] == (
            "application/json"
        )
        assert response.status_code == 204

    @patch("baas_proxy.handler.requests.request")
    def test_no_content_type_synthesized(self, mock_request, client):
        mock_request.return_value = _upstream(headers={}, chunks=(b"",))

        response = client.get("/api/proxy/storage/v1/bucket")

        assert "Content-Type" not in response.headers

    @patch("baas_proxy.handler.requests.request")
    def test_custom_reason_phrase_relayed(self, mock_request, client):
        mock_request.return_value = _upstream(
            status=406, reason="Not Acceptable", chunks=(b'{"code":"PGRST116"}',)
        )

        response = client.get("/api/proxy/rest/v1/profiles?id=eq.9")

        assert response.status == "406 Not Acceptable"
        assert response.get_json() == {"code": "PGRST116"}

    @patch("baas_proxy.handler.requests.request")
    def test_prefix_root_forwards_to_base(self, mock_request, client):
        mock_request.return_value = _upstream()

        client.get("/api/proxy/")

        assert mock_request.call_args.args == ("GET", f"{UPSTREAM}/")

    @patch("baas_proxy.handler.requests.request")
    def test_bare_prefix_is_not_redirected(self, mock_request, client):
        mock_request.return_value = _upstream()

        response = client.get("/api/proxy")

        assert response.status_code == 200
        assert mock_request.call_args.args == ("GET", f"{UPSTREAM}/")

    @patch("baas_proxy.handler.requests.request")
    def test_options_forwarded(self, mock_request, client):
        mock_request.return_value = _upstream(status=200)

        response = client.options("/api/proxy/rest/v1/events")

        assert mock_request.call_args.args[0] == "OPTIONS"
        assert response.headers["Access-Control-Allow-Methods"] == (
            "GET, POST, PUT, PATCH, DELETE, HEAD, OPTIONS"
        )

    @patch("baas_proxy.handler.requests.request")
    def test_unsupported_method_rejected(self, mock_request, client):
        response = client.open("/api/proxy/rest/v1/events", method="TRACE")

        assert response.status_code == 405
        mock_request.assert_not_called()

    @patch("baas_proxy.handler.requests.request")
    def test_unreachable_upstream(self, mock_request, client):
        mock_request.side_effect = requests.exceptions.ConnectionError(
            "Max retries exceeded with url: /rest/v1/events"
        )

        response = client.get("/api/proxy/rest/v1/events")

        assert response.status_code == 500
        assert response.get_json() == {
            "error": "Internal server error",
            "details": "Max retries exceeded with url: /rest/v1/events",
        }
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestCreateApp:
    @patch.dict("os.environ", {}, clear=True)
    def test_fails_fast_without_configuration(self):
        with pytest.raises(ConfigurationError):
            create_app()

    @patch.dict(
        "os.environ",
        {
            "UPSTREAM_BASE_URL": UPSTREAM,
            "UPSTREAM_ANON_KEY": SECRET,
            "PROXY_ROUTE_PREFIX": "/functions/v1/supabase-proxy",
        },
        clear=True,
    )
    @patch("baas_proxy.handler.requests.request")
    def test_loads_configuration_and_prefix(self, mock_request):
        mock_request.return_value = _upstream()
        client = create_app().test_client()

        response = client.get("/functions/v1/supabase-proxy/rest/v1/events")

        assert response.status_code == 200
        assert mock_request.call_args.args == ("GET", f"{UPSTREAM}/rest/v1/events")
