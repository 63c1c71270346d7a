"""Reconstruct executed commands from captured pane text."""

from __future__ import annotations

import logging

from paneguard.storage.models import EXIT_CODE_UNKNOWN, CommandRecord
from paneguard.terminal.prompt import parse_marker

logger = logging.getLogger(__name__)


def parse_history(content: str) -> list[CommandRecord]:
    """Parse a full pane capture into command records.

    Each marker line reports the exit status of the command typed on the
    previous marker line, so it closes that command and may open the next
    one. Output lines belong to whichever command is open; lines before the
    first command are dropped. A command still open at the end of the buffer
    is kept with exit code -1.
    """
    history: list[CommandRecord] = []
    current: str | None = None
    output: list[str] = []

    for line in content.splitlines():
        marker = parse_marker(line)
        if marker is None:
            if current is not None:
                output.append(line + "\n")
            continue

        exit_code, command = marker
        if current is not None:
            history.append(CommandRecord(current, _flush(output), exit_code))
            output = []
            current = None
        if command:
            current = command

    if current is not None:
        history.append(CommandRecord(current, _flush(output), EXIT_CODE_UNKNOWN))

    logger.debug("Parsed %d command(s) from pane content", len(history))
    return history


def _flush(output: list[str]) -> str:
    return "".join(output).removesuffix("\n")
