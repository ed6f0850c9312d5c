"""Wire schemas: OpenAI-shaped responses and the upstream result envelope."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr


class UpstreamResult(BaseModel):
    """Envelope returned by the prompt-optimization backend."""

    model_config = ConfigDict(extra="allow")

    success: StrictBool
    data: StrictStr


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionChoice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: Literal["stop"] = "stop"


class ChatCompletion(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[CompletionChoice]
    usage: Usage = Usage()


class ChunkChoice(BaseModel):
    index: int = 0
    delta: Dict[str, str]
    finish_reason: Optional[Literal["stop"]] = None


class ChatCompletionChunk(BaseModel):
    """One streamed chunk; a content chunk or the terminating stop chunk."""

    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelCard]


class ErrorDetail(BaseModel):
    message: str
    type: Literal["api_error"] = "api_error"
    code: str


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
