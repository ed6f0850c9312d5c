"""
Tests for the upstream optimize client.

Tests cover:
- Outbound headers and proxy selection
- Request body encoding
- Success, HTTP error, envelope and transport failure handling
"""

import json
from dataclasses import replace

import httpx
import pytest

from conftest import RecordingUpstream
from errors import GenerationError, UpstreamError, UpstreamHTTPError, UpstreamProtocolError
from upstream import UpstreamClient


def _client(test_config, handler):
    return UpstreamClient(test_config, transport=httpx.MockTransport(handler))


class TestHeaders:
    """Test outbound request settings."""

    def test_get_headers(self, test_config):
        """Test content type, user agent and identity headers."""
        headers = UpstreamClient(test_config).get_headers()
        assert headers["Content-Type"] == "application/json"
        assert headers["User-Agent"] == "test-agent"
        assert headers["email"] == "ops@example.com"

    def test_no_identity_header_without_email(self, test_config):
        """Test the identity header is omitted when not configured."""
        headers = UpstreamClient(replace(test_config, upstream_email="")).get_headers()
        assert "email" not in headers

    def test_proxy_url(self, test_config):
        """Test proxy selection from config."""
        assert UpstreamClient(test_config).get_proxy_url() is None
        proxied = UpstreamClient(replace(test_config, upstream_proxy="http://proxy:3128"))
        assert proxied.get_proxy_url() == "http://proxy:3128"


class TestEncodePayload:
    """Test request body serialization."""

    def test_plain_prompt(self):
        """Test the body is a {text} JSON object."""
        assert json.loads(UpstreamClient.encode_payload("héllo")) == {"text": "héllo"}

    def test_lone_surrogate_prompt(self):
        """Test a lone surrogate is sent as a JSON escape."""
        body = UpstreamClient.encode_payload("a\ud800b")
        assert b"\\ud800" in body
        assert json.loads(body) == {"text": "a\ud800b"}


class TestOptimize:
    """Test the optimize call end to end against a mock transport."""

    async def test_success_returns_data_verbatim(self, test_config):
        """Test data comes back untrimmed and the request is well formed."""
        upstream = RecordingUpstream(payload={"success": True, "data": "  Better prompt\n"})
        result = await _client(test_config, upstream).optimize("make it better", "/api/v1/prompt/optimize_auth")

        assert result == "  Better prompt\n"
        req = upstream.requests[0]
        assert req.method == "POST"
        assert str(req.url) == "https://upstream.test/api/v1/prompt/optimize_auth"
        assert req.headers["email"] == "ops@example.com"
        assert req.headers["content-type"] == "application/json"
        assert upstream.last_body == {"text": "make it better"}

    async def test_lone_surrogate_prompt_reaches_upstream(self, test_config):
        """Test a prompt UTF-8 cannot carry is still delivered."""
        upstream = RecordingUpstream()
        assert await _client(test_config, upstream).optimize("a\ud800b", "/p") == "optimized"
        assert upstream.last_body == {"text": "a\ud800b"}

    async def test_lone_surrogate_result_returned(self, test_config):
        """Test a result holding a lone surrogate is returned verbatim."""
        upstream = RecordingUpstream(payload={"success": True, "data": "x\ud800y"})
        assert await _client(test_config, upstream).optimize("x", "/p") == "x\ud800y"

    async def test_empty_data_is_a_valid_result(self, test_config):
        """Test an empty data string is a valid result."""
        upstream = RecordingUpstream(payload={"success": True, "data": ""})
        assert await _client(test_config, upstream).optimize("x", "/p") == ""

    async def test_http_error_carries_status_and_body(self, test_config):
        """Test a non-2xx status raises with status and raw body."""
        upstream = RecordingUpstream(status_code=429, text="quota exceeded")
        with pytest.raises(UpstreamHTTPError) as exc_info:
            await _client(test_config, upstream).optimize("x", "/p")
        err = exc_info.value
        assert err.upstream_status == 429
        assert err.body == "quota exceeded"
        assert "429" in err.message and "quota exceeded" in err.message
        assert isinstance(err, GenerationError)

    @pytest.mark.parametrize(
        "payload",
        [
            {"success": False},
            {"success": False, "data": "nope"},
            {"success": True},
            {"success": "true", "data": "x"},
            {"success": True, "data": 42},
            ["success", True],
        ],
    )
    async def test_bad_envelope_is_protocol_error(self, test_config, payload):
        """Test every malformed or failed envelope raises a protocol error."""
        upstream = RecordingUpstream(payload=payload)
        with pytest.raises(UpstreamProtocolError) as exc_info:
            await _client(test_config, upstream).optimize("x", "/p")
        assert exc_info.value.payload == payload

    async def test_non_json_body_is_protocol_error(self, test_config):
        """Test a non-JSON 200 body raises a protocol error."""
        upstream = RecordingUpstream(text="<html>gateway</html>")
        with pytest.raises(UpstreamProtocolError) as exc_info:
            await _client(test_config, upstream).optimize("x", "/p")
        assert "<html>gateway</html>" in exc_info.value.message

    async def test_transport_failure(self, test_config):
        """Test connection errors become UpstreamError."""
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError, match="connection refused"):
            await _client(test_config, boom).optimize("x", "/p")
