from __future__ import annotations

from typing import Any
from pydantic import BaseModel, Field


class Usage(BaseModel):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    def __add__(self, other: Usage) -> Usage:
        # total is summed, never re-derived from the other two fields
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    role: str  # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None  # for role="tool" responses
    usage: Usage | None = None  # set on assistant turns returned by a provider


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema object


class Response(BaseModel):
    content: str
    usage: Usage | None = None
    tools_used: list[str] = Field(default_factory=list)


class ProviderConfig(BaseModel):
    api_key: str = ""
    base_url: str = ""  # empty means the vendor's public endpoint
    model: str = ""
    provider: str = ""  # "openai" | "anthropic"
    timeout: float = 120.0
