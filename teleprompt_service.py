"""
teleprompt-relay: OpenAI-compatible chat completions on top of a single-shot
prompt-optimization backend.

Logical models:
  teleprompt-reason / teleprompt-standard / teleprompt-apps
  (unknown names fall back to DEFAULT_MODEL)

The backend answers with one finished text; stream=true replays that text as
SSE chunks of STREAM_CHUNK_SIZE characters, STREAM_DELAY_MS apart.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.responses import HTMLResponse, StreamingResponse
from pydantic import BaseModel
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from config import AppConfig, load_config
from errors import AuthError, GenerationError, NotFoundError, ProxyError, RequestValidationError
from logger import LOGGER_NAME, setup_logging
from models import ModelRouter
from sse_handler import PseudoStreamer, build_completion, dump_json, iter_stream_frames
from upstream import UpstreamClient
from utils import dump_config, load_env_files

log = logging.getLogger(LOGGER_NAME)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

COCKPIT_TEMPLATE = Path(__file__).parent / "templates" / "cockpit.html"


class PermissiveCORSMiddleware:
    """
    Answer every OPTIONS request with 204 and stamp CORS headers on all responses.

    Starlette's CORSMiddleware only short-circuits real preflights (Origin +
    Access-Control-Request-Method); plain OPTIONS would fall through to 405.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=204, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.update(CORS_HEADERS)
            await send(message)

        await self.app(scope, receive, send_with_cors)


def json_response(body: Union[BaseModel, Dict[str, Any]], status_code: int = 200) -> Response:
    return Response(content=dump_json(body), status_code=status_code, media_type="application/json")


def error_response(exc: ProxyError) -> Response:
    return json_response(exc.to_envelope(), exc.status_code)


def _content_text(content: Any) -> str:
    """Flatten a message content field (plain string or OpenAI text parts)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
                parts.append(item["text"])
        return "\n".join(parts)
    if content is None:
        return ""
    return str(content)


def get_last_user_prompt(messages: Any) -> str:
    """
    Return the content of the last ``role == "user"`` message in input order.

    Trailing assistant/system/tool messages are skipped over.
    """
    if messages is None:
        messages = []
    if not isinstance(messages, list):
        raise RequestValidationError("Invalid request: 'messages' field must be an array")
    for m in reversed(messages):
        if isinstance(m, dict) and m.get("role") == "user":
            return _content_text(m.get("content"))
    raise RequestValidationError("No user message found (role: user)")


async def require_api_key(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> None:
    """Bearer check for every /v1 route; skipped entirely in open mode."""
    config: AppConfig = request.app.state.config
    if not config.auth_enabled:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Bearer token authentication is required.", 401, "unauthorized")
    token = authorization[len("Bearer "):]
    if not hmac.compare_digest(token.encode("utf-8"), config.api_master_key.encode("utf-8")):
        client_ip = request.client.host if request.client else "unknown"
        log.info("Rejected API key from=%s path=%s", client_ip, request.url.path)
        raise AuthError("Invalid API key.", 403, "invalid_api_key")


def _get_cockpit_html() -> str:
    try:
        return COCKPIT_TEMPLATE.read_text(encoding="utf-8")
    except FileNotFoundError:
        log.error("Cockpit template not found at %s", COCKPIT_TEMPLATE)
        return "<html><body><h1>teleprompt-relay</h1><p>Cockpit template missing.</p></body></html>"


def create_app(
    config: AppConfig,
    upstream_client: Optional[UpstreamClient] = None,
) -> FastAPI:
    """Build the ASGI app around one immutable configuration."""
    app = FastAPI(title="teleprompt-relay", version="1.0.0")
    app.state.config = config
    app.state.router = ModelRouter.from_config(config)
    app.state.upstream = upstream_client or UpstreamClient(config)
    app.state.streamer = PseudoStreamer(config.stream_delay_s)

    app.add_middleware(PermissiveCORSMiddleware)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> Response:
        if exc.status_code >= 500:
            log.warning("Request failed path=%s code=%s err=%s", request.url.path, exc.code, exc.message)
        else:
            log.info("Request rejected path=%s status=%s code=%s", request.url.path, exc.status_code, exc.code)
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code == 404:
            return error_response(NotFoundError(f"Path not found: {request.url.path}"))
        err = ProxyError(str(exc.detail))
        err.status_code = exc.status_code
        err.code = "method_not_allowed" if exc.status_code == 405 else "api_error"
        return error_response(err)

    @app.get("/", response_class=HTMLResponse)
    async def cockpit() -> HTMLResponse:
        """Manual testing page; talks to the same public /v1 API."""
        return HTMLResponse(_get_cockpit_html())

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/v1/models", dependencies=[Depends(require_api_key)])
    async def v1_models(request: Request) -> Dict[str, Any]:
        """List logical models."""
        return request.app.state.router.list_models().model_dump()

    @app.post("/v1/chat/completions", dependencies=[Depends(require_api_key)])
    async def v1_chat_completions(request: Request) -> Response:
        """Translate one chat request into one upstream optimize call."""
        state = request.app.state
        req_id = f"chatcmpl-{uuid.uuid4().hex}"

        try:
            body = await request.json()
        except ValueError as e:
            raise GenerationError(f"Invalid JSON body: {e}") from e
        if not isinstance(body, dict):
            raise GenerationError("Invalid JSON body: expected object")

        prompt = get_last_user_prompt(body.get("messages"))
        model = str(body.get("model") or state.router.default_model)
        endpoint = state.router.resolve(model)
        stream = bool(body.get("stream", False))

        client_ip = request.client.host if request.client else "unknown"
        log.info(
            "Incoming chat req_id=%s from=%s model=%r endpoint=%s stream=%s prompt_len=%d",
            req_id,
            client_ip,
            model,
            endpoint,
            stream,
            len(prompt),
        )

        text = await state.upstream.optimize(prompt, endpoint)

        if not stream:
            return json_response(build_completion(text, model, req_id))

        frames = iter_stream_frames(text, model, req_id, state.config.stream_chunk_size)
        return StreamingResponse(
            state.streamer.stream(frames, request.is_disconnected, req_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.api_route(
        "/v1/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        dependencies=[Depends(require_api_key)],
    )
    async def v1_unknown(request: Request) -> Response:
        raise NotFoundError(f"Unsupported API path: {request.url.path}")

    return app


load_env_files()

config = load_config()
config.validate()

setup_logging(config)
dump_config(config)

app = create_app(config)


def main() -> None:
    import uvicorn

    # log_config=None keeps uvicorn on the handlers installed by setup_logging.
    uvicorn.run(app, host="0.0.0.0", port=config.port, reload=False, log_config=None)


if __name__ == "__main__":
    main()
