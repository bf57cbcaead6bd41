from __future__ import annotations

from typing import Any, Sequence

from clippy.models import Message, ToolCall, ToolDefinition, Usage
from clippy.providers.base import Provider, ProviderError

MAX_TOKENS = 1024
ANTHROPIC_VERSION = "2023-06-01"


def _tool_to_anthropic(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": tool.parameters,
    }


class AnthropicProvider(Provider):
    default_base_url = "https://api.anthropic.com"

    def generate(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> Message:
        system, api_messages = self._messages_to_anthropic(messages)
        payload: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": MAX_TOKENS,
            "messages": api_messages,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = [_tool_to_anthropic(t) for t in tools]

        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        body = self._post(f"{self._base_url()}/v1/messages", headers, payload)
        return self._parse_response(body)

    def _messages_to_anthropic(self, messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
        """
        Split out the system prompt and convert the rest to Messages API dicts.

        Tool results must travel as tool_result blocks inside a user turn, and
        a run of consecutive tool messages shares a single user turn. Only the
        outbound payload is reshaped; ``messages`` is left as is.
        """
        system = ""
        result: list[dict[str, Any]] = []
        i = 0
        while i < len(messages):
            msg = messages[i]

            if msg.role == "system":
                system = msg.content
                i += 1
                continue

            if msg.role == "tool":
                blocks = []
                while i < len(messages) and messages[i].role == "tool":
                    blocks.append({
                        "type": "tool_result",
                        "tool_use_id": messages[i].tool_call_id,
                        "content": messages[i].content,
                    })
                    i += 1
                result.append({"role": "user", "content": blocks})
                continue

            if msg.tool_calls:
                content: list[dict[str, Any]] = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments,
                    })
                result.append({"role": msg.role, "content": content})
            else:
                result.append({"role": msg.role, "content": msg.content})
            i += 1
        return system, result

    def _parse_response(self, body: dict[str, Any]) -> Message:
        blocks = body.get("content") or []
        if not blocks:
            raise ProviderError("no response from API")

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        try:
            for block in blocks:
                kind = block.get("type")
                if kind == "text":
                    text_parts.append(block.get("text") or "")
                elif kind == "tool_use":
                    tool_calls.append(ToolCall(
                        id=block.get("id") or "",
                        name=block["name"],
                        arguments=block.get("input") or {},
                    ))
            usage_data = body.get("usage") or {}
            input_tokens = usage_data.get("input_tokens") or 0
            output_tokens = usage_data.get("output_tokens") or 0
            usage = Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )
            return Message(
                role="assistant",
                content="".join(text_parts),
                tool_calls=tool_calls,
                usage=usage,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ProviderError(f"malformed response: {exc}") from exc
