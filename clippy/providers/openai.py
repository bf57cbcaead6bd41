from __future__ import annotations

import json
from typing import Any, Sequence

from clippy.models import Message, ToolCall, ToolDefinition, Usage
from clippy.providers.base import Provider, ProviderError


def _tool_to_openai(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters,
        },
    }


def _decode_arguments(raw: Any) -> dict[str, Any]:
    # arguments arrive as a JSON-encoded string; anything unparsable becomes {}
    # and is rejected later by the tool's own validation
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return args if isinstance(args, dict) else {}


class OpenAIProvider(Provider):
    default_base_url = "https://api.openai.com/v1"

    def generate(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> Message:
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._messages_to_openai(messages),
        }
        if tools:
            payload["tools"] = [_tool_to_openai(t) for t in tools]

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        body = self._post(f"{self._base_url()}/chat/completions", headers, payload)
        return self._parse_response(body)

    def _messages_to_openai(self, messages: Sequence[Message]) -> list[dict[str, Any]]:
        """Convert Message objects to chat-completions dicts, one per message."""
        result = []
        for msg in messages:
            d: dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                d["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.tool_call_id:
                d["tool_call_id"] = msg.tool_call_id
            result.append(d)
        return result

    def _parse_response(self, body: dict[str, Any]) -> Message:
        choices = body.get("choices") or []
        if not choices:
            raise ProviderError("no response from API")
        try:
            api_msg = choices[0]["message"]
            if not isinstance(api_msg, dict):
                raise ProviderError(f"malformed response: message is {type(api_msg).__name__}")
            content = api_msg.get("content") or ""
            tool_calls = [
                ToolCall(
                    id=tc.get("id") or "",
                    name=tc["function"]["name"],
                    arguments=_decode_arguments(tc["function"].get("arguments")),
                )
                for tc in api_msg.get("tool_calls") or []
            ]
            usage_data = body.get("usage") or {}
            usage = Usage(
                prompt_tokens=usage_data.get("prompt_tokens") or 0,
                completion_tokens=usage_data.get("completion_tokens") or 0,
                total_tokens=usage_data.get("total_tokens") or 0,
            )
            return Message(role="assistant", content=content, tool_calls=tool_calls, usage=usage)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ProviderError(f"malformed response: {exc}") from exc
