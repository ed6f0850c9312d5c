"""Upstream prompt-optimization API communication."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from config import AppConfig
from errors import UpstreamError, UpstreamHTTPError, UpstreamProtocolError
from logger import LOGGER_NAME
from schemas import UpstreamResult

log = logging.getLogger(LOGGER_NAME)


class UpstreamClient:
    """Handle communication with the prompt-optimization backend."""

    def __init__(
        self,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def get_headers(self) -> Dict[str, str]:
        """Get headers for upstream requests."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "User-Agent": self._config.user_agent,
        }
        if self._config.upstream_email:
            headers["email"] = self._config.upstream_email
        return headers

    def get_proxy_url(self) -> str | None:
        """Get proxy URL for httpx AsyncClient, or None if no proxy configured."""
        return self._config.upstream_proxy or None

    @staticmethod
    def encode_payload(prompt: str) -> bytes:
        """
        Serialize ``{"text": prompt}`` as ASCII JSON.

        Lone surrogates in the prompt go out as ``\\uXXXX`` escapes; they have
        no UTF-8 encoding.
        """
        return json.dumps({"text": prompt}).encode("ascii")

    def _make_client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(timeout=self._config.request_timeout_s, transport=self._transport)
        return httpx.AsyncClient(timeout=self._config.request_timeout_s, proxy=self.get_proxy_url())

    async def optimize(self, prompt: str, endpoint: str) -> str:
        """
        POST ``{"text": prompt}`` to ``endpoint`` and return the optimized text.

        Raises UpstreamHTTPError for a non-2xx status, UpstreamProtocolError when
        the body is not a ``{"success": true, "data": str}`` envelope, and
        UpstreamError for transport failures. ``data`` is returned verbatim.
        """
        url = f"{self._config.upstream_base_url}{endpoint}"
        t0 = time.time()
        try:
            async with self._make_client() as client:
                resp = await client.post(url, headers=self.get_headers(), content=self.encode_payload(prompt))
        except httpx.HTTPError as e:
            log.warning("Upstream request failed endpoint=%s err=%r", endpoint, e)
            raise UpstreamError(f"Upstream request failed: {e}") from e

        dt = (time.time() - t0) * 1000
        log.info("Upstream optimize endpoint=%s status=%s ms=%.1f", endpoint, resp.status_code, dt)

        if not resp.is_success:
            log.warning(
                "Upstream error endpoint=%s status=%s content-type=%s",
                endpoint,
                resp.status_code,
                resp.headers.get("content-type", ""),
            )
            raise UpstreamHTTPError(resp.status_code, resp.text)

        return self.extract_result(resp)

    @staticmethod
    def extract_result(resp: httpx.Response) -> str:
        """Validate the upstream envelope and pull out ``data``."""
        try:
            payload: Any = resp.json()
        except ValueError:
            log.warning("Upstream returned non-JSON body len=%d", len(resp.content))
            raise UpstreamProtocolError(resp.text) from None

        try:
            result = UpstreamResult.model_validate(payload)
        except ValidationError:
            log.warning("Upstream envelope failed validation payload=%r", payload)
            raise UpstreamProtocolError(payload) from None

        if not result.success:
            log.warning("Upstream reported failure payload=%.500r", payload)
            raise UpstreamProtocolError(payload)
        return result.data
