"""Rendering helpers for command records and risk assessments."""

from __future__ import annotations

from rich.markup import escape
from rich.table import Table

from paneguard.storage.models import EXIT_CODE_UNKNOWN, CommandRecord, ExecutionResult, RiskAssessment

MAX_OUTPUT_LINES = 50


def format_duration(ms: int) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def format_exit_code(exit_code: int) -> str:
    if exit_code == EXIT_CODE_UNKNOWN:
        return "RUNNING"
    return "OK" if exit_code == 0 else f"ERR({exit_code})"


def tail_lines(text: str, max_lines: int = MAX_OUTPUT_LINES) -> str:
    """Keep the last *max_lines* lines of *text*, noting how many were dropped."""
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    dropped = len(lines) - max_lines
    return f"... ({dropped} lines omitted)\n" + "\n".join(lines[-max_lines:])


def format_record(record: CommandRecord, max_lines: int = MAX_OUTPUT_LINES) -> str:
    """Plain-text rendering of a command record."""
    output = tail_lines(record.output, max_lines) if record.output else "(no output)"
    return f"$ {record.command}\n[{format_exit_code(record.exit_code)}]\n\n{output}"


def format_result(result: ExecutionResult) -> str:
    """Plain-text rendering of a guarded execution."""
    if result.blocked:
        return f"Denied: {result.command}"
    if result.record is None:
        return f"Sent: {result.outcome.final_command}"
    text = format_record(result.record)
    if result.execution_time_ms:
        text += f"\n\n({format_duration(result.execution_time_ms)})"
    return text


def format_assessment(assessment: RiskAssessment) -> str:
    text = assessment.level.value
    if assessment.reasons:
        text += ": " + ", ".join(assessment.reasons)
    return text


def history_table(history: list[CommandRecord], title: str = "Command history") -> Table:
    """Rich table of parsed command records, oldest first."""
    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Command", style="cyan")
    table.add_column("Status")
    table.add_column("Output", overflow="fold")

    for index, record in enumerate(history, start=1):
        status = format_exit_code(record.exit_code)
        style = "green" if record.exit_code == 0 else "yellow" if record.exit_code == EXIT_CODE_UNKNOWN else "red"
        table.add_row(
            str(index),
            escape(record.command),
            f"[{style}]{status}[/{style}]",
            escape(tail_lines(record.output, 5)),
        )
    return table
