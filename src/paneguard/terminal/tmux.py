"""tmux implementation of the terminal backend."""

from __future__ import annotations

import asyncio
import logging

from paneguard.errors import BackendError
from paneguard.terminal.backend import PaneDetails

logger = logging.getLogger(__name__)

PANE_FORMAT = "#{pane_id}\t#{pane_current_command}\t#{pane_active}\t#{pane_width}\t#{pane_height}"


class TmuxBackend:
    """Drive tmux panes through the ``tmux`` CLI."""

    def __init__(self, binary: str = "tmux", timeout: float = 10.0) -> None:
        self.binary = binary
        self.timeout = timeout

    async def _run(self, *args: str) -> str:
        cmd = [self.binary, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise BackendError(f"{self.binary} not found. Install tmux to use paneguard.", cmd) from None

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            raise BackendError(f"tmux {args[0]} timed out after {self.timeout:g}s", cmd) from None

        if proc.returncode != 0:
            raise BackendError(
                f"tmux {args[0]} failed with exit code {proc.returncode}",
                cmd,
                stderr_bytes.decode("utf-8", errors="replace"),
            )
        return stdout_bytes.decode("utf-8", errors="replace")

    async def current_pane_id(self) -> str:
        pane_id = (await self._run("display-message", "-p", "#{pane_id}")).strip()
        if not pane_id:
            raise BackendError("Not running inside a tmux pane")
        return pane_id

    async def list_panes(self) -> list[PaneDetails]:
        current = await self.current_pane_id()
        output = await self._run("list-panes", "-F", PANE_FORMAT)
        panes: list[PaneDetails] = []
        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) != 5:
                logger.warning("Unexpected list-panes line: %r", line)
                continue
            pane_id, command, active, width, height = parts
            panes.append(
                PaneDetails(
                    id=pane_id,
                    current_command=command,
                    is_active=active == "1",
                    is_agent_pane=pane_id == current,
                    width=int(width or 0),
                    height=int(height or 0),
                )
            )
        return panes

    async def create_pane(self, target: str) -> str:
        pane_id = (await self._run("split-window", "-d", "-h", "-t", target, "-P", "-F", "#{pane_id}")).strip()
        logger.info("Created pane %s next to %s", pane_id, target)
        return pane_id

    async def send_text(self, pane_id: str, text: str, literal: bool = True) -> None:
        """Send *text* to a pane.

        Literal text is typed as-is and followed by Enter. Otherwise *text*
        is a tmux key name such as ``C-l`` or ``Enter``.
        """
        if literal:
            await self._run("send-keys", "-t", pane_id, "-l", text)
            await self._run("send-keys", "-t", pane_id, "Enter")
        else:
            await self._run("send-keys", "-t", pane_id, text)

    async def capture_content(self, pane_id: str, max_lines: int) -> str:
        return await self._run("capture-pane", "-p", "-J", "-t", pane_id, "-S", f"-{max_lines}")
