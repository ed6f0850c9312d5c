"""Server-Sent Events (SSE) formatting and pseudo-streaming of finished completions."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Iterator, Optional, Union

from pydantic import BaseModel

from logger import LOGGER_NAME
from schemas import (
    AssistantMessage,
    ChatCompletion,
    ChatCompletionChunk,
    ChunkChoice,
    CompletionChoice,
)

log = logging.getLogger(LOGGER_NAME)

DEFAULT_CHUNK_SIZE = 2
SSE_DONE = b"data: [DONE]\n\n"


def split_text(text: str, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[str]:
    """
    Yield ``text`` in order as slices of ``size`` characters.

    Slicing is over Python code points, so a character outside the BMP
    (emoji, CJK extension B) is never split across two slices.
    """
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    for i in range(0, len(text), size):
        yield text[i:i + size]


def build_completion(text: str, model: str, req_id: str) -> ChatCompletion:
    """Non-streaming response; token usage is always reported as zero."""
    return ChatCompletion(
        id=req_id,
        created=int(time.time()),
        model=model,
        choices=[CompletionChoice(message=AssistantMessage(content=text))],
    )


def create_chunk(
    req_id: str,
    model: str,
    delta: Optional[Dict[str, str]] = None,
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    """Create a standard OpenAI chat completion chunk."""
    return ChatCompletionChunk(
        id=req_id,
        created=int(time.time()),
        model=model,
        choices=[ChunkChoice(delta=delta or {}, finish_reason=finish_reason)],
    )


def dump_json(obj: Union[BaseModel, Dict[str, Any]]) -> bytes:
    """
    Serialize a response body as compact UTF-8 JSON.

    Text with lone surrogates (which UTF-8 cannot carry) falls back to ASCII
    JSON, where they survive as ``\\uXXXX`` escapes.
    """
    payload = obj.model_dump() if isinstance(obj, BaseModel) else obj
    try:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except UnicodeEncodeError:
        return json.dumps(payload, separators=(",", ":")).encode("ascii")


def sse_data(obj: BaseModel) -> bytes:
    """Encode a response model as an SSE data event."""
    return b"data: " + dump_json(obj) + b"\n\n"


def iter_stream_frames(
    text: str,
    model: str,
    req_id: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """
    Lazily produce every SSE frame for an already complete ``text``.

    One content chunk per slice, then a stop chunk with an empty delta,
    then the ``[DONE]`` sentinel. Empty text still yields the last two.
    """
    for piece in split_text(text, chunk_size):
        yield sse_data(create_chunk(req_id, model, {"content": piece}))
    yield sse_data(create_chunk(req_id, model, {}, "stop"))
    yield SSE_DONE


class PseudoStreamer:
    """Pace pre-built SSE frames out to a client that may go away."""

    def __init__(self, delay_s: float = 0.010) -> None:
        if delay_s < 0:
            raise ValueError("stream delay must be >= 0")
        self.delay_s = delay_s

    async def stream(
        self,
        frames: Iterator[bytes],
        is_disconnected: Callable[[], Awaitable[bool]],
        req_id: str = "",
    ) -> AsyncGenerator[bytes, None]:
        """
        Yield ``frames`` in order, ``delay_s`` apart.

        The client is polled before every frame; on disconnect the loop ends
        without further writes or sleeps. The producer is closed on any exit.
        """
        sent = 0
        try:
            for frame in frames:
                if sent and self.delay_s > 0:
                    await asyncio.sleep(self.delay_s)
                if await is_disconnected():
                    log.info("Client disconnected mid-stream req_id=%s frames_sent=%d", req_id, sent)
                    return
                yield frame
                sent += 1
        except asyncio.CancelledError:
            log.info("Stream cancelled req_id=%s frames_sent=%d", req_id, sent)
            raise
        finally:
            close = getattr(frames, "close", None)
            if close is not None:
                close()
        log.debug("Stream finished req_id=%s frames_sent=%d", req_id, sent)
