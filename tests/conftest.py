"""
Pytest configuration and shared fixtures.

Provides:
- project root on sys.path (flat module layout)
- test environment variables set before the service module is imported
- a ready AppConfig and helpers to build apps against a mocked upstream
"""

import json
import os
import sys
from pathlib import Path

import httpx
import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# The service module loads config at import time.
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_PATH", "/tmp/teleprompt_relay_test.log")
os.environ.setdefault("LOG_COLOR", "false")

from config import DEFAULT_MODEL_MAP, AppConfig  # noqa: E402


@pytest.fixture
def test_config():
    """Configuration with auth enabled and no stream pacing."""
    return AppConfig(
        api_master_key="sk-test-master",
        auth_disabled=False,
        upstream_base_url="https://upstream.test",
        upstream_email="ops@example.com",
        upstream_proxy="",
        user_agent="test-agent",
        request_timeout_s=5.0,
        default_model="teleprompt-reason",
        model_owner="teleprompt-relay",
        stream_delay_s=0.0,
        stream_chunk_size=2,
        port=8000,
        log_level="DEBUG",
        log_path="/tmp/teleprompt_relay_test.log",
        model_map=dict(DEFAULT_MODEL_MAP),
    )


class RecordingUpstream:
    """httpx.MockTransport handler that records requests and replays a canned reply.

    Replies are ASCII JSON so payloads may hold text UTF-8 cannot carry.
    """

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.payload = {"success": True, "data": "optimized"} if payload is None else payload
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(
            self.status_code,
            content=json.dumps(self.payload).encode("ascii"),
            headers={"Content-Type": "application/json"},
        )

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def recording_upstream():
    return RecordingUpstream()
