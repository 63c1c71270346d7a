"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from paneguard import __version__
from paneguard.config import (
    CONFIG_FILE,
    CONFIG_KEYS,
    LOCAL_CONFIG_FILE,
    AppConfig,
    ExecConfig,
    PolicyConfig,
    load_config,
    save_config,
    set_value,
)
from paneguard.errors import ConfigError, HistoryParseError, PaneGuardError
from paneguard.services.policy import PolicyFilter
from paneguard.services.risk import classify
from paneguard.session import Session
from paneguard.storage.database import close_db, get_recent_commands, init_db
from paneguard.storage.models import ExecutionResult, RiskLevel
from paneguard.terminal.tmux import TmuxBackend
from paneguard.utils.formatting import format_assessment, format_result, history_table
from paneguard.utils.system import check_tmux, inside_tmux

app = typer.Typer(
    name="paneguard",
    help="Run commands in a tmux pane behind risk checks and confirmation.",
    add_completion=False,
)
console = Console()

LEVEL_COLORS = {RiskLevel.SAFE: "green", RiskLevel.UNKNOWN: "yellow", RiskLevel.DANGER: "red"}


def _load() -> AppConfig:
    try:
        return load_config([LOCAL_CONFIG_FILE, CONFIG_FILE], os.environ)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _setup_logging(config: AppConfig, verbose: bool) -> None:
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path)),
            *([logging.StreamHandler()] if verbose else []),
        ],
    )


def _require_tmux() -> None:
    installed, version_info = check_tmux()
    if not installed:
        console.print(f"[red]{escape(version_info)}[/red]")
        raise typer.Exit(1)
    if not inside_tmux():
        console.print("[red]paneguard must be run from inside a tmux session.[/red]")
        raise typer.Exit(1)


@app.command()
def init() -> None:
    """Interactive setup wizard."""
    console.print(f"\n[bold]paneguard v{__version__}[/bold]")
    console.print("Interactive Setup\n")

    console.print("[dim]Checking tmux...[/dim]")
    installed, version_info = check_tmux()
    if installed:
        console.print(f"  tmux: [green]{escape(version_info)}[/green]")
    else:
        console.print(f"  [yellow]Warning: {escape(version_info)}[/yellow]")

    console.print("\n[bold]Step 1:[/bold] Capture window")
    max_lines = typer.prompt("  Lines of scrollback to capture", default=200, type=int)

    console.print("\n[bold]Step 2:[/bold] Confirmation")
    exec_confirm = typer.confirm("  Confirm every command before it runs?", default=True)

    console.print("\n[bold]Step 3:[/bold] Whitelist")
    console.print("  Regexes for commands that run without asking, separated by commas.")
    whitelist_str = typer.prompt("  Whitelist", default="", show_default=False)
    blacklist_str = typer.prompt("  Blacklist (vetoes the whitelist)", default="", show_default=False)
    whitelist = [p.strip() for p in whitelist_str.split(",") if p.strip()]
    blacklist = [p.strip() for p in blacklist_str.split(",") if p.strip()]
    try:
        PolicyFilter(whitelist, blacklist)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    config = AppConfig(
        exec=ExecConfig(max_capture_lines=max_lines, exec_confirm=exec_confirm),
        policy=PolicyConfig(whitelist_patterns=whitelist, blacklist_patterns=blacklist),
    )
    save_config(config, CONFIG_FILE)

    console.print(f"\n[green]Configuration saved to {CONFIG_FILE}[/green]")
    console.print("\nNext steps:")
    console.print("  [bold]paneguard prepare[/bold]        Install the prompt marker in the exec pane")
    console.print("  [bold]paneguard run 'ls -la'[/bold]   Run a command\n")


@app.command()
def check(command: str = typer.Argument(..., help="Command to classify")) -> None:
    """Classify a command without running it."""
    config = _load()
    try:
        preapproved = PolicyFilter(
            config.policy.whitelist_patterns,
            config.policy.blacklist_patterns,
        ).is_preapproved(command)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    assessment = classify(command)
    color = LEVEL_COLORS[assessment.level]
    console.print(f"Risk: [{color}]{escape(format_assessment(assessment))}[/{color}]")
    if assessment.level is RiskLevel.DANGER:
        for flag in assessment.flags:
            console.print(f"  [dim]{escape(flag)}[/dim]")
    console.print(f"Pre-approved: {'yes' if preapproved else 'no'}")


async def _run(config: AppConfig, command: str, yes: bool) -> ExecutionResult:
    session = Session(config, TmuxBackend(), console=console)
    if yes:
        session.set_override("exec.exec_confirm", False)
    if config.storage.enabled:
        await init_db(config.storage.db_path)
    try:
        if not await session.prepare_exec_pane():
            raise HistoryParseError("The exec pane's shell is not supported; command history is unavailable.")
        await asyncio.sleep(session.setting("exec.send_delay"))
        return await session.execute(command)
    finally:
        await close_db()


@app.command()
def run(
    command: str = typer.Argument(..., help="Command to run in the exec pane"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation (policy still applies)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr too"),
) -> None:
    """Run a command in the exec pane and show what happened."""
    config = _load()
    _setup_logging(config, verbose)
    _require_tmux()

    try:
        result = asyncio.run(_run(config, command, yes))
    except PaneGuardError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        raise typer.Exit(130)

    console.print(escape(format_result(result)))
    if result.blocked:
        raise typer.Exit(1)


async def _prepare(config: AppConfig, shell: str | None) -> tuple[bool, str]:
    session = Session(config, TmuxBackend(), console=console)
    prepared = await session.prepare_exec_pane(shell)
    assert session.exec_pane is not None
    return prepared, session.exec_pane.id


@app.command()
def prepare(
    shell: str = typer.Option(None, "--shell", help="Override the detected shell (zsh, bash, fish)"),
) -> None:
    """Install the exit-status prompt marker in the exec pane."""
    config = _load()
    _setup_logging(config, False)
    _require_tmux()

    try:
        prepared, pane_id = asyncio.run(_prepare(config, shell))
    except PaneGuardError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if prepared:
        console.print(f"[green]Pane {pane_id} is prepared.[/green]")
    else:
        console.print(f"[yellow]Pane {pane_id} runs an unsupported shell; history is unavailable.[/yellow]")
        raise typer.Exit(1)


async def _history(config: AppConfig, stored: bool, limit: int) -> list:
    if stored:
        await init_db(config.storage.db_path)
        try:
            return await get_recent_commands(limit)
        finally:
            await close_db()
    session = Session(config, TmuxBackend(), console=console)
    return (await session.refresh_history())[-limit:]


@app.command()
def history(
    stored: bool = typer.Option(False, "--stored", help="Show the persisted audit log instead of the pane"),
    limit: int = typer.Option(20, "--lines", "-n", help="Number of entries"),
) -> None:
    """Show commands recovered from the exec pane."""
    config = _load()
    if not stored:
        _require_tmux()

    try:
        entries = asyncio.run(_history(config, stored, limit))
    except HistoryParseError as e:
        console.print(f"[yellow]{escape(str(e))}[/yellow]")
        return
    except PaneGuardError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not entries:
        console.print("[dim]No commands found.[/dim]")
        return

    if not stored:
        console.print(history_table(entries))
        return

    table = Table(title="Stored commands")
    table.add_column("When", style="dim")
    table.add_column("Pane")
    table.add_column("Command", style="cyan")
    table.add_column("Exit")
    table.add_column("Risk")
    table.add_column("Approval")
    for row in entries:
        table.add_row(
            str(row["created_at"]),
            row["pane_id"],
            escape(row["command"]),
            str(row["exit_code"]),
            str(row["risk_level"] or "-"),
            row["approval"],
        )
    console.print(table)


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., exec.timeout)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    if not CONFIG_FILE.exists():
        console.print("[red]Not configured. Run 'paneguard init'.[/red]")
        raise typer.Exit(1)

    if key is None:
        cfg = _load()
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for name, config_key in CONFIG_KEYS.items():
            table.add_row(name, escape(str(config_key.get(cfg))))
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: paneguard config <key> <value>[/red]")
        raise typer.Exit(1)

    try:
        # Only the user file is rewritten; env and local overrides stay out of it.
        cfg = load_config([CONFIG_FILE], {})
        typed_value = set_value(cfg, key, value)
        if key.startswith("policy."):
            PolicyFilter(cfg.policy.whitelist_patterns, cfg.policy.blacklist_patterns)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    save_config(cfg, CONFIG_FILE)
    console.print(f"[green]{key} = {escape(str(typed_value))}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"paneguard v{__version__}")

    installed, version_info = check_tmux()
    if installed:
        console.print(f"tmux: {version_info}")
    else:
        console.print("tmux: [yellow]not installed[/yellow]")

    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
