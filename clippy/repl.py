from __future__ import annotations

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.key_binding import KeyBindings
from rich.markup import escape

from clippy.agent import Agent
from clippy.renderer import console, handle_command, render_response

QUIT_COMMANDS = ("/quit", "/exit")


def _make_toolbar(agent: Agent) -> HTML:
    cfg = agent.get_config()
    model = f"{cfg.provider}/{cfg.model}" if cfg.provider else "no provider"
    return HTML(
        f"<b>[{agent.name}]</b>  <i>[{model}]</i>  "
        "<dim>Enter to send | Esc+Enter for newline | /quit to leave | /help for commands</dim>"
    )


def process_input(agent: Agent, text: str) -> bool:
    """
    Handle one line of user input. Returns False when the user asked to quit.
    """
    text = text.strip()
    if not text:
        return True

    if text.lower() in QUIT_COMMANDS:
        return False

    if text.startswith("/"):
        handle_command(text, agent)
        return True

    try:
        with console.status("[dim]thinking...[/dim]", spinner="dots"):
            response = agent.get_response(text)
    except Exception as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return True
    render_response(agent.name, response)
    return True


def run_repl(agent: Agent) -> None:
    """
    Run the interactive prompt_toolkit REPL.
    Enter = submit, Esc+Enter = newline.
    """
    kb = KeyBindings()

    # Enter submits (eager so it overrides the multiline default)
    @kb.add("enter", eager=True)
    def _submit(event):
        event.current_buffer.validate_and_handle()

    @kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    prompt_session: PromptSession = PromptSession(
        multiline=True,
        key_bindings=kb,
        bottom_toolbar=lambda: _make_toolbar(agent),
        prompt_continuation="  ",
    )

    console.print(
        f"[bold magenta]📎 {escape(agent.name)}[/bold magenta] [cyan]— it looks like you're writing code![/cyan]\n"
        "[dim]Enter to send, Esc+Enter for newline, /quit or Ctrl+D to leave[/dim]\n"
    )
    if agent.provider is None:
        console.print("[yellow]No LLM provider configured. Run 'clippy config' or set CLIPPY_PROVIDER.[/yellow]\n")

    while True:
        try:
            text = prompt_session.prompt("> ")
        except KeyboardInterrupt:
            continue
        except EOFError:
            break

        if not process_input(agent, text):
            break

    console.print("[bold magenta]Leaving so soon? The void of cyberspace is lonely... but okay. Bye![/bold magenta]")
