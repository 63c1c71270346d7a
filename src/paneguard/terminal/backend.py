"""Terminal backend contract used by the session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from paneguard.terminal.prompt import has_marker, last_line, normalize_shell


@dataclass
class PaneDetails:
    """A multiplexer pane and its most recent capture."""

    id: str
    current_command: str = ""
    is_active: bool = False
    is_agent_pane: bool = False
    width: int = 0
    height: int = 0
    content: str = ""
    last_line: str = ""
    is_prepared: bool = False

    @property
    def shell(self) -> str:
        return normalize_shell(self.current_command)

    def update_content(self, content: str) -> None:
        """Store a fresh capture and derive the prompt state from it."""
        self.content = content
        self.last_line = last_line(content)
        self.is_prepared = has_marker(content)


class TerminalBackend(Protocol):
    """Minimal pane control surface: create, list, send, capture."""

    async def current_pane_id(self) -> str: ...

    async def list_panes(self) -> list[PaneDetails]: ...

    async def create_pane(self, target: str) -> str: ...

    async def send_text(self, pane_id: str, text: str, literal: bool = True) -> None: ...

    async def capture_content(self, pane_id: str, max_lines: int) -> str: ...
