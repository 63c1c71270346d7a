"""Shared test fixtures."""

from __future__ import annotations

import io

import pytest
from rich.console import Console

from paneguard.config import AppConfig, ExecConfig, LoggingConfig, PolicyConfig, StorageConfig
from paneguard.terminal.backend import PaneDetails


class FakeBackend:
    """In-memory terminal backend.

    ``captures`` are returned in order; the last one repeats forever.
    """

    def __init__(self, captures: list[str] | None = None, panes: list[PaneDetails] | None = None) -> None:
        self.agent_pane = "%0"
        self.panes = (
            panes
            if panes is not None
            else [
                PaneDetails(id="%0", current_command="zsh", is_active=True, is_agent_pane=True),
                PaneDetails(id="%1", current_command="zsh"),
            ]
        )
        self.captures = list(captures or [])
        self.sent: list[tuple[str, str, bool]] = []
        self.created: list[str] = []
        self.capture_requests: list[tuple[str, int]] = []

    async def current_pane_id(self) -> str:
        return self.agent_pane

    async def list_panes(self) -> list[PaneDetails]:
        return self.panes

    async def create_pane(self, target: str) -> str:
        pane_id = f"%{len(self.panes)}"
        self.created.append(target)
        self.panes.append(PaneDetails(id=pane_id, current_command="bash"))
        return pane_id

    async def send_text(self, pane_id: str, text: str, literal: bool = True) -> None:
        self.sent.append((pane_id, text, literal))

    async def capture_content(self, pane_id: str, max_lines: int) -> str:
        self.capture_requests.append((pane_id, max_lines))
        if len(self.captures) > 1:
            return self.captures.pop(0)
        return self.captures[0] if self.captures else ""


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration with no delays and no persistence."""
    return AppConfig(
        exec=ExecConfig(max_capture_lines=100, poll_interval=0, send_delay=0, timeout=5),
        policy=PolicyConfig(),
        storage=StorageConfig(enabled=False, db_path=str(tmp_path / "test.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def backend_cls():
    """The fake backend class, for tests that build or subclass their own."""
    return FakeBackend
