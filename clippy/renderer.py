from __future__ import annotations

from typing import Callable

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from clippy.agent import Agent
from clippy.models import Response, ToolCall
from clippy.models_dev import fetch_models
from clippy.providers import PROVIDER_MAP, ProviderError, get_provider
from clippy.tools import describe_tool_call

console = Console()

MAX_LISTED_MODELS = 40

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
}


def handle_command(
    command: str,
    agent: Agent,
    fetch: Callable[[], list[str]] = fetch_models,
) -> bool:
    """
    Dispatch a / command. Returns True if handled, False if unknown.
    Quitting is the REPL's business and never reaches here.
    """
    parts = command.strip().split()
    cmd = parts[0].lstrip("/").lower()
    arg = parts[1] if len(parts) > 1 else ""

    if cmd in ("clear", "new", "reset"):
        agent.clear_history()
        console.print("[dim]History cleared. Fresh start![/dim]")
    elif cmd == "provider":
        _cmd_provider(agent, arg)
    elif cmd == "model":
        _cmd_model(agent, arg, fetch)
    elif cmd == "status":
        render_status(agent)
    elif cmd == "help":
        render_help()
    else:
        console.print(f"[red]Unknown command: {escape(command)}[/red]")
        return False
    return True


def _cmd_provider(agent: Agent, name: str) -> None:
    if not name:
        console.print(f"[magenta][⚙️] Available providers: {', '.join(PROVIDER_MAP)}[/magenta]")
        return
    name = name.lower()
    if name not in PROVIDER_MAP:
        console.print(f"[red]Unknown provider '{escape(name)}'. Available: {', '.join(PROVIDER_MAP)}[/red]")
        return
    cfg = agent.get_config().model_copy(update={"provider": name})
    if agent.provider is not None and cfg.provider == agent.provider.get_config().provider:
        agent.update_config(cfg)
    else:
        # switching vendor means switching wire format
        new_provider = get_provider(cfg)
        if agent.provider is not None:
            agent.provider.close()
        agent.set_provider(new_provider)
    console.print(f"[magenta][⚙️] Provider set to: {escape(name)}[/magenta]")


def _cmd_model(agent: Agent, name: str, fetch: Callable[[], list[str]]) -> None:
    if name:
        if agent.provider is None:
            console.print("[yellow]No provider configured. Use /provider <name> first.[/yellow]")
            return
        agent.update_config(agent.get_config().model_copy(update={"model": name}))
        console.print(f"[magenta][⚙️] Model set to: {escape(name)}[/magenta]")
        return

    with console.status("[dim]Fetching models...[/dim]", spinner="dots"):
        try:
            models = fetch()
        except ProviderError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            return
    if not models:
        console.print("[yellow]No models found.[/yellow]")
        return
    shown = "\n".join(escape(m) for m in models[:MAX_LISTED_MODELS])
    if len(models) > MAX_LISTED_MODELS:
        shown += f"\n[dim]... +{len(models) - MAX_LISTED_MODELS} more[/dim]"
    console.print(Panel(shown, title="available models", border_style="magenta", expand=False))


def render_status(agent: Agent) -> None:
    """Show provider config and a per-role message breakdown."""
    cfg = agent.get_config()
    config_table = Table(title="[⚙️] Config Status", show_header=False)
    config_table.add_column("Setting", style="cyan")
    config_table.add_column("Value", style="magenta")
    config_table.add_row("Provider", cfg.provider or "none")
    config_table.add_row("Model", cfg.model or "—")
    config_table.add_row("Base URL", cfg.base_url or DEFAULT_BASE_URLS.get(cfg.provider, "default"))
    config_table.add_row("API Key", mask_key(cfg.api_key))
    console.print(config_table)

    counts: dict[str, int] = {"system": 0, "user": 0, "assistant": 0, "tool": 0}
    tokens: dict[str, int] = dict.fromkeys(counts, 0)
    history = agent.get_history()
    for msg in history:
        counts[msg.role] = counts.get(msg.role, 0) + 1
        if msg.usage is not None:
            tokens[msg.role] = tokens.get(msg.role, 0) + msg.usage.total_tokens

    breakdown = Table(title="[📊] Message Breakdown", show_lines=False)
    breakdown.add_column("Role", style="cyan")
    breakdown.add_column("Messages", justify="right")
    breakdown.add_column("Tokens", justify="right")
    for role, label in (
        ("system", "System messages"),
        ("user", "User messages"),
        ("assistant", "Assistant messages"),
        ("tool", "Tool calls/responses"),
    ):
        breakdown.add_row(label, str(counts[role]), str(tokens[role]))
    breakdown.add_row("[bold]Total messages[/bold]", f"[bold]{len(history)}[/bold]", "")
    console.print(breakdown)


def mask_key(key: str) -> str:
    if not key:
        return "not set"
    if len(key) <= 8:
        return "***configured***"
    return f"***configured*** ({key[:4]}...{key[-4:]})"


def render_help() -> None:
    """Show a panel listing all REPL commands."""
    lines = [
        "[bold]/clear[/bold]             forget the conversation (also /new, /reset)",
        "[bold]/provider [name][/bold]   list providers or switch to one",
        "[bold]/model [name][/bold]      list models or switch to one",
        "[bold]/status[/bold]            config and message breakdown",
        "[bold]/help[/bold]              show this help",
        "",
        "[bold]/quit[/bold]              leave (also /exit, Ctrl+D)",
        "[bold]Esc+Enter[/bold]          newline without submitting",
    ]
    console.print(Panel("\n".join(lines), title="commands", border_style="dim"))


def render_tool_call(call: ToolCall) -> None:
    console.print(f"[dim]  {escape(describe_tool_call(call.name, call.arguments))}[/dim]")


def render_response(name: str, response: Response) -> None:
    console.print(f"\n[bold magenta]{escape(name)}:[/bold magenta]")
    console.print(Markdown(response.content or "_(no reply)_"))
    footer = []
    if response.usage is not None:
        u = response.usage
        footer.append(f"tokens: {u.prompt_tokens}/{u.completion_tokens}/{u.total_tokens}")
    if response.tools_used:
        footer.append("tools: " + ", ".join(response.tools_used))
    if footer:
        console.print(f"[dim]{escape(' · '.join(footer))}[/dim]")
    console.print()
