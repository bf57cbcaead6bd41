from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable

from clippy.models import Message, ProviderConfig, Response, ToolCall, ToolDefinition, Usage
from clippy.providers.base import Provider, ProviderError
from clippy.tools import Tool, ToolError, default_tools

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 50

SYSTEM_PROMPT = """\
You are Clippy, the helpful Microsoft Office assistant, but with a Vaporwave aesthetic.
You are helpful, slightly annoying, and make corny coding jokes. You love the 80s/90s
aesthetic, synthwave music, and neon colors. Keep your responses concise and fun.

You can act on the user's machine through tools: read, write and edit files, list and
search directories, create, move and delete files, and run shell commands. Use them
when the request needs it, one step at a time, and answer in plain text once the job
is done. Do not repeat a tool call that has already produced its result.
"""

NO_PROVIDER_MESSAGE = "I have no brain! Please configure the LLM provider in your .env file so I can think."
LOOP_MESSAGE = (
    "It looks like I'm stuck in a loop, asking for the same thing over and over. "
    "I'll stop here. Try rephrasing your request!"
)
MAX_ITERATIONS_MESSAGE = (
    "I ran out of moves! That request took more steps than I'm allowed in one go. "
    "Try breaking it into smaller pieces."
)


class Agent:
    def __init__(
        self,
        provider: Provider | None = None,
        tools: Iterable[Tool] | None = None,
        name: str = "Clippy",
        system_prompt: str = SYSTEM_PROMPT,
        max_iterations: int = MAX_ITERATIONS,
        on_tool_call: Callable[[ToolCall], None] | None = None,
    ) -> None:
        self.name = name
        self.provider = provider
        self.tools: tuple[Tool, ...] = tuple(tools) if tools is not None else default_tools()
        self.max_iterations = max_iterations
        self.on_tool_call = on_tool_call
        self.history: list[Message] = [Message(role="system", content=system_prompt)]

    # -- configuration -----------------------------------------------------

    def set_provider(self, provider: Provider | None) -> None:
        self.provider = provider

    def update_config(self, config: ProviderConfig) -> None:
        if self.provider is not None:
            self.provider.update_config(config)

    def get_config(self) -> ProviderConfig:
        if self.provider is None:
            return ProviderConfig()
        return self.provider.get_config()

    # -- history -----------------------------------------------------------

    def clear_history(self) -> None:
        self.history = self.history[:1]

    def get_history(self) -> list[Message]:
        return list(self.history)

    def tool_definitions(self) -> list[ToolDefinition]:
        return [t.definition() for t in self.tools]

    # -- the loop ----------------------------------------------------------

    def get_response(self, text: str) -> Response:
        """
        Run one user turn: call the provider, execute requested tools, and
        repeat until the model answers without tools or a stop condition hits.
        Provider and tool failures come back as the Response content.
        """
        if self.provider is None:
            return Response(content=NO_PROVIDER_MESSAGE)

        self.history.append(Message(role="user", content=text))
        usage = Usage()
        tools_used: list[str] = []
        previous_calls: list[ToolCall] | None = None
        definitions = self.tool_definitions()

        for iteration in range(self.max_iterations):
            logger.debug("iteration %d: calling provider with %d messages", iteration + 1, len(self.history))
            try:
                message = self.provider.generate(self.history, definitions)
            except ProviderError as e:
                logger.warning("provider call failed: %s", e)
                return Response(
                    content=f"Error contacting the mainframe: {e}",
                    usage=usage,
                    tools_used=tools_used,
                )

            if message.usage is not None:
                usage = usage + message.usage
            self.history.append(message)

            if not message.tool_calls:
                return Response(content=message.content, usage=usage, tools_used=tools_used)

            if previous_calls is not None and _same_calls(previous_calls, message.tool_calls):
                logger.info("identical tool calls requested twice in a row; stopping")
                return Response(content=LOOP_MESSAGE, usage=usage, tools_used=tools_used)

            for call in message.tool_calls:
                tools_used.append(call.name)
                result = self._execute(call)
                self.history.append(Message(role="tool", content=result, tool_call_id=call.id))

            previous_calls = message.tool_calls

        logger.info("stopping after %d iterations", self.max_iterations)
        return Response(content=MAX_ITERATIONS_MESSAGE, usage=usage, tools_used=tools_used)

    def _execute(self, call: ToolCall) -> str:
        tool = self._find_tool(call.name)
        if tool is None:
            return f"Error: tool '{call.name}' not found"

        if self.on_tool_call is not None:
            try:
                self.on_tool_call(call)
            except Exception:
                logger.exception("on_tool_call observer failed for %s", call.name)
        logger.debug("executing %s(%s)", call.name, _fmt_args(call.arguments))
        try:
            return tool.execute(call.arguments)
        except ToolError as e:
            return f"Error: {e}"
        except Exception as e:
            logger.exception("tool %s raised", call.name)
            return f"Error executing {call.name}: {e}"

    def _find_tool(self, name: str) -> Tool | None:
        # first match wins; names are not checked for uniqueness
        for tool in self.tools:
            if tool.definition().name == name:
                return tool
        return None


def _same_calls(a: list[ToolCall], b: list[ToolCall]) -> bool:
    """Same tools with the same arguments in the same order; ids are ignored."""
    if len(a) != len(b):
        return False
    return all(x.name == y.name and _canonical(x.arguments) == _canonical(y.arguments) for x, y in zip(a, b))


def _canonical(args: dict[str, Any]) -> str:
    # 1, 1.0 and True are equal in Python but not in JSON
    return json.dumps(args, sort_keys=True, default=str)


def _fmt_args(args: dict[str, Any]) -> str:
    """Format tool arguments for display (truncated)."""
    parts = []
    for k, v in args.items():
        sv = str(v)
        if len(sv) > 40:
            sv = sv[:37] + "..."
        parts.append(f"{k}={sv!r}")
    return ", ".join(parts)
