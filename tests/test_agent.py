"""Agent loop tests — scripted provider, real tools where the filesystem is involved."""
from __future__ import annotations

from conftest import ScriptedProvider, assistant, call
from clippy.agent import (
    LOOP_MESSAGE,
    MAX_ITERATIONS,
    MAX_ITERATIONS_MESSAGE,
    NO_PROVIDER_MESSAGE,
    Agent,
)
from clippy.models import Message, ProviderConfig, Usage
from clippy.providers.base import ProviderError
from clippy.tools import Tool, _Args


class CountArgs(_Args):
    n: int


class CountTool(Tool):
    name = "count"
    description = "Record a number"
    parameters = {
        "type": "object",
        "properties": {"n": {"type": "integer"}},
        "required": ["n"],
    }
    args_model = CountArgs

    def __init__(self) -> None:
        self.seen: list[int] = []

    def run(self, args: CountArgs) -> str:
        self.seen.append(args.n)
        return f"counted {args.n}"


# ---------------------------------------------------------------------------
# Construction and history
# ---------------------------------------------------------------------------

def test_history_starts_with_one_system_message():
    agent = Agent()
    assert len(agent.history) == 1
    assert agent.history[0].role == "system"
    assert agent.name == "Clippy"


def test_no_provider_returns_no_brain_message():
    agent = Agent()
    resp = agent.get_response("hello")
    assert resp.content == NO_PROVIDER_MESSAGE
    assert resp.usage is None
    assert resp.tools_used == []
    assert len(agent.history) == 1


def test_history_grows_by_two_per_plain_turn(make_agent):
    agent, _ = make_agent(lambda n: assistant(f"Response {n}"))
    for i in range(3):
        agent.get_response(f"message {i}")

    assert len(agent.history) == 1 + 2 * 3
    roles = [m.role for m in agent.history[1:]]
    assert roles == ["user", "assistant"] * 3
    assert agent.history[1].content == "message 0"
    assert agent.history[5].content == "message 2"
    assert agent.history[6].content == "Response 3"


def test_clear_history_restores_system_message(make_agent):
    agent, _ = make_agent(lambda n: assistant("hi"))
    system = agent.history[0]
    agent.get_response("one")
    agent.get_response("two")
    agent.clear_history()
    assert agent.history == [system]


def test_get_history_is_a_copy(make_agent):
    agent, _ = make_agent(lambda n: assistant("hi"))
    snapshot = agent.get_history()
    snapshot.append(assistant("intruder"))
    assert len(agent.history) == 1


def test_config_without_provider_is_zero_value():
    agent = Agent()
    agent.update_config(ProviderConfig(model="x"))
    assert agent.get_config() == ProviderConfig()


def test_config_delegates_to_provider(make_agent):
    agent, provider = make_agent([])
    agent.update_config(ProviderConfig(provider="openai", model="gpt-4o"))
    assert provider.config.model == "gpt-4o"
    assert agent.get_config().model == "gpt-4o"


def test_set_provider_none_uncommissions(make_agent):
    agent, _ = make_agent([assistant("hi")])
    agent.set_provider(None)
    assert agent.get_response("hello").content == NO_PROVIDER_MESSAGE


# ---------------------------------------------------------------------------
# Replies and tool dispatch
# ---------------------------------------------------------------------------

def test_plain_reply_carries_usage(make_agent):
    agent, _ = make_agent([assistant("Hello from mock LLM!", total=10)])
    resp = agent.get_response("hello")
    assert resp.content == "Hello from mock LLM!"
    assert resp.usage is not None and resp.usage.total_tokens == 10


def test_reply_without_usage_gives_zero_usage(make_agent):
    agent, _ = make_agent([assistant("ok")])
    assert agent.get_response("hello").usage == Usage()


def test_provider_sees_full_history_and_tool_definitions(make_agent):
    agent, provider = make_agent([assistant("ok")])
    agent.get_response("hello")
    sent = provider.calls[0]
    assert [m.role for m in sent] == ["system", "user"]
    assert [t.name for t in provider.tools] == [t.definition().name for t in agent.tools]
    assert len(provider.tools) == 12


def test_list_directory_scenario(make_agent, tmp_path, monkeypatch):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "guide.md").write_text("hi")
    monkeypatch.chdir(tmp_path)

    agent, provider = make_agent([
        assistant(calls=[call("list_directory", "call_ls", path="./docs")], total=5),
        assistant("docs holds guide.md", total=7),
    ])
    resp = agent.get_response("list files in ./docs")

    assert resp.content == "docs holds guide.md"
    assert resp.tools_used == ["list_directory"]
    assert resp.usage.total_tokens == 12

    tool_msg = agent.history[3]
    assert tool_msg.role == "tool"
    assert tool_msg.tool_call_id == "call_ls"
    assert "[FILE] guide.md (2 bytes)" in tool_msg.content
    assert [m.role for m in agent.history] == ["system", "user", "assistant", "tool", "assistant"]
    # second provider call saw the tool result
    assert provider.calls[1][-1].role == "tool"


def test_one_tool_message_per_call_in_order(make_agent):
    counter = CountTool()
    agent, _ = make_agent(
        [
            assistant(calls=[call("count", "a", n=1), call("count", "b", n=2)]),
            assistant("done"),
        ],
        tools=[counter],
    )
    resp = agent.get_response("count twice")
    assert counter.seen == [1, 2]
    assert resp.tools_used == ["count", "count"]
    tool_msgs = [m for m in agent.history if m.role == "tool"]
    assert [m.tool_call_id for m in tool_msgs] == ["a", "b"]
    assert [m.content for m in tool_msgs] == ["counted 1", "counted 2"]


def test_unknown_tool_is_reported_inline(make_agent):
    agent, _ = make_agent([
        assistant(calls=[call("teleport", "t1")]),
        assistant("sorry"),
    ])
    resp = agent.get_response("beam me up")
    assert resp.content == "sorry"
    assert resp.tools_used == ["teleport"]
    assert agent.history[3].content == "Error: tool 'teleport' not found"


def test_invalid_arguments_are_reported_inline(make_agent):
    agent, _ = make_agent([
        assistant(calls=[call("read_file", "r1", path=42)]),
        assistant("let me retry"),
    ])
    resp = agent.get_response("read it")
    assert resp.content == "let me retry"
    assert agent.history[3].content == "Error: missing or invalid 'path' argument"


def test_tool_failure_does_not_abort_turn(make_agent, tmp_path):
    missing = str(tmp_path / "nope.txt")
    agent, _ = make_agent([
        assistant(calls=[call("read_file", "r1", path=missing)]),
        assistant("file is missing"),
    ])
    resp = agent.get_response("read it")
    assert resp.content == "file is missing"
    assert agent.history[3].content.startswith("Error: failed to read file")


def test_first_tool_with_matching_name_wins(make_agent):
    first, second = CountTool(), CountTool()
    agent, _ = make_agent(
        [assistant(calls=[call("count", n=3)]), assistant("ok")],
        tools=[first, second],
    )
    agent.get_response("count")
    assert first.seen == [3]
    assert second.seen == []


def test_on_tool_call_observer(make_agent):
    observed = []
    agent, _ = make_agent(
        [assistant(calls=[call("count", n=1)]), assistant("ok")],
        tools=[CountTool()],
        on_tool_call=observed.append,
    )
    agent.get_response("count")
    assert [c.name for c in observed] == ["count"]


def test_failing_observer_does_not_abort_turn(make_agent):
    def broken(_call):
        raise RuntimeError("terminal went away")

    counter = CountTool()
    agent, _ = make_agent(
        [assistant(calls=[call("count", n=4)]), assistant("ok")],
        tools=[counter],
        on_tool_call=broken,
    )
    resp = agent.get_response("count")
    assert resp.content == "ok"
    assert counter.seen == [4]
    assert agent.history[3].content == "counted 4"


# ---------------------------------------------------------------------------
# Usage accumulation
# ---------------------------------------------------------------------------

def test_usage_is_summed_across_calls(make_agent):
    counter = CountTool()
    agent, _ = make_agent(
        [
            assistant(calls=[call("count", "a", n=1)], total=100),
            assistant(calls=[call("count", "b", n=2)], total=50),
            assistant("done", total=25),
        ],
        tools=[counter],
    )
    resp = agent.get_response("go")
    assert resp.usage.total_tokens == 175
    assert resp.usage.prompt_tokens == 99 + 49 + 24
    assert resp.usage.completion_tokens == 3


def test_reported_total_is_trusted():
    reply = Message(
        role="assistant",
        content="ok",
        usage=Usage(prompt_tokens=1, completion_tokens=1, total_tokens=10),
    )
    agent = Agent(provider=ScriptedProvider([reply]))
    assert agent.get_response("hi").usage.total_tokens == 10


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------

def test_identical_calls_stop_with_loop_message(make_agent):
    counter = CountTool()
    agent, provider = make_agent(
        # ids differ; only names and arguments count
        lambda n: assistant(calls=[call("count", f"id_{n}", n=7)], total=3),
        tools=[counter],
    )
    resp = agent.get_response("loop forever")

    assert resp.content == LOOP_MESSAGE
    assert len(provider.calls) == 2
    assert counter.seen == [7]
    assert resp.tools_used == ["count"]
    assert resp.usage.total_tokens == 6
    # the repeated request is kept in history, without results
    assert agent.history[-1].role == "assistant"


def test_equal_values_of_different_json_types_are_not_a_loop(make_agent):
    counter = CountTool()
    agent, provider = make_agent(
        [
            assistant(calls=[call("count", "a", n=1)]),
            assistant(calls=[call("count", "b", n=1.0)]),
            assistant(calls=[call("count", "c", n=True)]),
            assistant("done"),
        ],
        tools=[counter],
    )
    resp = agent.get_response("count")

    assert resp.content == "done"
    assert len(provider.calls) == 4
    assert resp.tools_used == ["count", "count", "count"]
    # strict validation rejects the float and the bool
    assert counter.seen == [1]


def test_budget_exhaustion_after_fifty_calls(make_agent):
    counter = CountTool()
    agent, provider = make_agent(
        lambda n: assistant(calls=[call("count", f"id_{n}", n=n)], total=2),
        tools=[counter],
    )
    resp = agent.get_response("count forever")

    assert resp.content == MAX_ITERATIONS_MESSAGE
    assert len(provider.calls) == MAX_ITERATIONS == 50
    assert counter.seen == list(range(1, 51))
    assert len(resp.tools_used) == 50
    assert resp.usage.total_tokens == 100


def test_custom_iteration_cap(make_agent):
    agent, provider = make_agent(
        lambda n: assistant(calls=[call("count", n=n)]),
        tools=[CountTool()],
        max_iterations=3,
    )
    assert agent.get_response("go").content == MAX_ITERATIONS_MESSAGE
    assert len(provider.calls) == 3


def test_provider_error_aborts_turn_keeping_usage(make_agent):
    counter = CountTool()
    agent, _ = make_agent(
        [
            assistant(calls=[call("count", n=1)], total=40),
            ProviderError("API error: 500 Internal Server Error - boom"),
        ],
        tools=[counter],
    )
    resp = agent.get_response("go")

    assert resp.content.startswith("Error contacting the mainframe:")
    assert "500" in resp.content
    assert resp.usage.total_tokens == 40
    assert resp.tools_used == ["count"]
    # completed tool effects stay; nothing appended for the failed call
    assert counter.seen == [1]
    assert [m.role for m in agent.history] == ["system", "user", "assistant", "tool"]


def test_provider_error_on_first_call(make_agent):
    agent, _ = make_agent([ProviderError("no response from API")])
    resp = agent.get_response("hi")
    assert resp.content == "Error contacting the mainframe: no response from API"
    assert resp.usage == Usage()
    assert [m.role for m in agent.history] == ["system", "user"]
