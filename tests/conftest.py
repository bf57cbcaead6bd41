from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from clippy.agent import Agent
from clippy.models import Message, ProviderConfig, ToolCall, Usage


class ScriptedProvider:
    """In-memory provider that replays replies (or raises) in order."""

    def __init__(self, replies: list[Message | Exception] | Callable[[int], Message]) -> None:
        self.replies = replies
        self.calls: list[list[Message]] = []
        self.tools: list = []
        self.config = ProviderConfig(provider="scripted", model="mock")
        self.closed = False

    def generate(self, messages, tools):
        self.calls.append(list(messages))
        self.tools = list(tools)
        if callable(self.replies):
            reply = self.replies(len(self.calls))
        else:
            reply = self.replies[len(self.calls) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def update_config(self, config: ProviderConfig) -> None:
        self.config = config

    def get_config(self) -> ProviderConfig:
        return self.config

    def close(self) -> None:
        self.closed = True


def assistant(content: str = "", calls: list[ToolCall] | None = None, total: int | None = None) -> Message:
    usage = None
    if total is not None:
        usage = Usage(prompt_tokens=total - 1, completion_tokens=1, total_tokens=total)
    return Message(role="assistant", content=content, tool_calls=calls or [], usage=usage)


def call(name: str, call_id: str = "call_1", **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


@pytest.fixture
def make_agent():
    def _make(replies, **kwargs) -> tuple[Agent, ScriptedProvider]:
        provider = ScriptedProvider(replies)
        return Agent(provider=provider, **kwargs), provider
    return _make


@pytest.fixture
def mock_http():
    """
    Build an httpx.Client whose requests are recorded and answered by ``reply``.
    ``reply`` is a dict (200 JSON), an httpx.Response, or an exception to raise.
    """
    def _make(reply) -> tuple[httpx.Client, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if isinstance(reply, Exception):
                raise reply
            if isinstance(reply, httpx.Response):
                return reply
            return httpx.Response(200, json=reply)

        return httpx.Client(transport=httpx.MockTransport(handler)), seen
    return _make


def sent_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content.decode())

