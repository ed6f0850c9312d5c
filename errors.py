"""Error taxonomy for teleprompt-relay, mapped onto the OpenAI error envelope."""

from __future__ import annotations

import json
from typing import Any, Dict

from schemas import ErrorDetail, ErrorEnvelope


class ProxyError(Exception):
    """Base error carrying the HTTP status and error code sent to the client."""

    status_code: int = 500
    code: str = "api_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> Dict[str, Any]:
        return ErrorEnvelope(error=ErrorDetail(message=self.message, code=self.code)).model_dump()


class AuthError(ProxyError):
    """Missing (401) or wrong (403) bearer token."""

    def __init__(self, message: str, status_code: int = 401, code: str = "unauthorized") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class RequestValidationError(ProxyError):
    status_code = 400
    code = "invalid_request"


class NotFoundError(ProxyError):
    status_code = 404
    code = "not_found"


class GenerationError(ProxyError):
    """Anything that goes wrong while producing a completion."""

    status_code = 500
    code = "generation_failed"


class UpstreamError(GenerationError):
    """Upstream call failed before a usable response was received."""


class UpstreamHTTPError(UpstreamError):
    def __init__(self, upstream_status: int, body: str) -> None:
        super().__init__(f"Upstream service error ({upstream_status}): {body}")
        self.upstream_status = upstream_status
        self.body = body


class UpstreamProtocolError(UpstreamError):
    def __init__(self, payload: Any) -> None:
        super().__init__(f"Upstream returned an error payload: {_render_payload(payload)}")
        self.payload = payload


def _render_payload(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(payload)
