# src/llmgate/models.py
"""
Core data models for the LLMGate library.

This module defines the Pydantic models shared by every provider and
pipeline component: chat requests and responses, streamed chunks, token
usage, model inventory entries, provider configuration and the per-provider
metrics counters. Keeping a single uniform shape lets virtual providers,
extensions and interceptors treat every upstream service the same way.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """Handles case-insensitive matching and the "agent" alias."""
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value == "agent":
                return cls.ASSISTANT
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class ProviderType(str, Enum):
    """Known provider families. Unknown vendors use CUSTOM."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"
    STATIC = "static"
    LOADBALANCE = "loadbalance"
    RACING = "racing"
    FALLBACK = "fallback"


class ToolFormat(str, Enum):
    """Wire format a provider expects for tool definitions."""
    NONE = "none"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class ChatMessage(BaseModel):
    """A single message of a structured chat request."""
    role: Role = Field(description="The role of the message sender.")
    content: str = Field(default="", description="The textual content of the message.")
    name: Optional[str] = Field(default=None, description="Optional author name.")


class ChatRequest(BaseModel):
    """
    Uniform chat-completion request handed to providers.

    Attributes:
        provider: Optional name of the provider that should serve the request.
        model: Model identifier; empty means the provider's default model.
        prompt: Plain prompt, used when ``messages`` is empty.
        messages: Structured message list.
        max_tokens: Maximum number of tokens to generate (0 = provider default).
        temperature: Sampling temperature, ``None`` for the provider default.
        stream: Whether the caller consumes the result as a stream.
        metadata: Opaque caller metadata. The key ``extension_config`` is
            reserved for per-request extension settings.
    """
    provider: str = ""
    model: str = ""
    prompt: str = ""
    messages: List[ChatMessage] = Field(default_factory=list)
    max_tokens: int = 0
    temperature: Optional[float] = None
    stream: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def text_content(self) -> str:
        """Returns the prompt followed by all message contents."""
        parts = [self.prompt] if self.prompt else []
        parts.extend(m.content for m in self.messages if m.content)
        return "\n".join(parts)


class Usage(BaseModel):
    """Token usage reported by a provider."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChunkDelta(BaseModel):
    """Incremental content of one choice within a chunk."""
    role: str = ""
    content: str = ""


class ChunkChoice(BaseModel):
    """One choice of a streamed chunk."""
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str = ""


class Chunk(BaseModel):
    """
    One element of a streaming completion.

    A chunk with ``done=True`` is the last one a stream produces.
    Wrappers may add metadata keys but never remove or overwrite them.
    """
    id: str = ""
    content: str = ""
    choices: List[ChunkChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    done: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def text(self) -> str:
        """Returns the chunk content plus the delta content of every choice."""
        return self.content + "".join(c.delta.content for c in self.choices)


class ChatResponse(BaseModel):
    """Non-streaming result of a chat completion."""
    content: str = ""
    model: str = ""
    provider: str = ""
    usage: Optional[Usage] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ModelInfo(BaseModel):
    """An entry of a provider's model inventory."""
    id: str
    name: str = ""
    provider: str = ""
    description: str = ""
    max_tokens: int = 0
    supports_streaming: bool = True
    supports_tool_calling: bool = False


class AuthConfig(BaseModel):
    """Credentials handed to ``authenticate``."""
    method: str = "api_key"
    api_key: str = ""
    base_url: str = ""


class ProviderConfig(BaseModel):
    """
    Configuration for a single provider instance.

    ``provider_config`` carries type-specific settings; virtual providers
    read their child list and strategy from it.
    """
    name: str
    type: str = ProviderType.CUSTOM.value
    description: str = ""
    api_key: str = ""
    base_url: str = ""
    default_model: str = ""
    timeout_s: float = Field(default=60.0, gt=0)
    provider_config: Dict[str, Any] = Field(default_factory=dict)


class ProviderMetrics(BaseModel):
    """Request counters a provider keeps about itself."""
    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_latency_ms: float = 0.0
    average_latency_ms: float = 0.0
    last_request_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None
    last_error_time: Optional[datetime] = None
    last_error: str = ""
    tokens_used: int = 0
