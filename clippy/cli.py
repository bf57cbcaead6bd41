from __future__ import annotations

import logging
import sys

import click
import questionary
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

import clippy.config as config_mod
from clippy.agent import Agent
from clippy.providers import PROVIDER_MAP, Provider, get_provider
from clippy.renderer import render_status, render_tool_call
from clippy.repl import run_repl

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


def build_agent(cfg: dict) -> Agent:
    """Build the agent from loaded config. Raises ValueError for an unknown provider."""
    provider_cfg = config_mod.provider_config(cfg)
    provider: Provider | None = None
    if provider_cfg.provider:
        provider = get_provider(provider_cfg)
    return Agent(provider=provider, on_tool_call=render_tool_call)


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Log provider and tool activity.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """clippy: a helpful (and slightly annoying) terminal assistant."""
    _setup_logging(verbose)
    load_dotenv()
    if ctx.invoked_subcommand is not None:
        return

    cfg = config_mod.load()
    try:
        agent = build_agent(cfg)
    except ValueError as e:
        console.print(f"[red]Error initializing LLM provider: {e}[/red]")
        sys.exit(1)

    run_repl(agent)


@main.command("status")
def cmd_status() -> None:
    """Show the resolved provider configuration."""
    cfg = config_mod.load()
    try:
        agent = build_agent(cfg)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    render_status(agent)


@main.command("config")
def cmd_config() -> None:
    """Interactive configuration wizard."""
    # file values only, so environment secrets never land on disk
    cfg = config_mod.load(environ={})

    console.print("[bold magenta]clippy configuration[/bold magenta]\n")

    provider = questionary.select(
        "LLM provider:",
        choices=list(PROVIDER_MAP),
        default=cfg["llm"]["provider"] or None,
    ).ask()

    model = questionary.text(
        "Model name:",
        default=cfg["llm"]["model"],
    ).ask()

    base_url = questionary.text(
        "Base URL (empty for the provider default):",
        default=cfg["llm"]["base_url"],
    ).ask()

    api_key = questionary.password("API key (empty to keep current):").ask()

    if provider is None or model is None or base_url is None or api_key is None:
        console.print("[yellow]Configuration cancelled.[/yellow]")
        return

    cfg["llm"]["provider"] = provider
    cfg["llm"]["model"] = model
    cfg["llm"]["base_url"] = base_url
    if api_key:
        cfg["llm"]["api_key"] = api_key

    config_mod.save(cfg)
    console.print(f"\n[green]Config saved to {config_mod.CONFIG_FILE}[/green]")
