"""Exec pane session: dispatch commands and recover what happened."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from rich.console import Console

from paneguard.config import AppConfig, get_key
from paneguard.errors import BackendError, ExecutionCancelled, HistoryParseError, WaitTimeoutError
from paneguard.services.confirm import Confirmer
from paneguard.services.guard import ExecutionGuard
from paneguard.services.history import parse_history
from paneguard.services.policy import PolicyFilter
from paneguard.storage.database import save_command
from paneguard.storage.models import CommandRecord, ExecutionResult, OperationKind, SessionStatus
from paneguard.terminal.backend import PaneDetails, TerminalBackend
from paneguard.terminal.prompt import is_terminating_marker, prompt_command

logger = logging.getLogger(__name__)


class Session:
    """Owns the exec pane, its parsed command history and the run status.

    One command runs at a time: ``execute`` blocks until the pane shows a
    new prompt, the timeout elapses or the wait is cancelled.
    """

    def __init__(
        self,
        config: AppConfig,
        backend: TerminalBackend,
        guard: ExecutionGuard | None = None,
        console: Console | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.console = console or Console()
        self.guard = guard or ExecutionGuard(
            PolicyFilter(config.policy.whitelist_patterns, config.policy.blacklist_patterns),
            Confirmer(self.console),
        )
        self.status = SessionStatus.IDLE
        self.history: list[CommandRecord] = []
        self.exec_pane: PaneDetails | None = None
        self.agent_pane_id = ""
        self.overrides: dict[str, Any] = {}

    # --- Settings ---

    def setting(self, key: str) -> Any:
        """Config value for dotted *key*, preferring a session override."""
        if key in self.overrides:
            return self.overrides[key]
        return get_key(key).get(self.config)

    def set_override(self, key: str, raw: Any) -> Any:
        """Override a setting for this session only. Returns the typed value."""
        value = get_key(key).convert(raw)
        if key.startswith("policy."):
            self._rebuild_policy({**self.overrides, key: value})
        self.overrides[key] = value
        return value

    def clear_override(self, key: str) -> None:
        if self.overrides.pop(key, None) is not None and key.startswith("policy."):
            self._rebuild_policy(self.overrides)

    def _rebuild_policy(self, overrides: dict[str, Any]) -> None:
        """Recompile the guard's whitelist/blacklist. Raises before anything changes."""
        whitelist = overrides.get("policy.whitelist_patterns", self.config.policy.whitelist_patterns)
        blacklist = overrides.get("policy.blacklist_patterns", self.config.policy.blacklist_patterns)
        self.guard.policy = PolicyFilter(whitelist, blacklist)

    # --- Pane management ---

    async def init_exec_pane(self) -> PaneDetails:
        """Pick the pane commands run in, creating one if needed. Done once."""
        if self.exec_pane is not None:
            return self.exec_pane

        self.agent_pane_id = await self.backend.current_pane_id()
        pane = await self._find_available_pane()
        if pane is None:
            await self.backend.create_pane(self.agent_pane_id)
            pane = await self._find_available_pane()
        if pane is None:
            raise BackendError("No pane available to execute commands in")

        logger.info("Using exec pane %s (%s)", pane.id, pane.current_command or "unknown")
        self.exec_pane = pane
        return pane

    async def _find_available_pane(self) -> PaneDetails | None:
        for pane in await self.backend.list_panes():
            if not pane.is_agent_pane and pane.id != self.agent_pane_id:
                return pane
        return None

    async def refresh_pane(self) -> PaneDetails:
        """Re-capture the exec pane."""
        pane = await self.init_exec_pane()
        content = await self.backend.capture_content(pane.id, self.setting("exec.max_capture_lines"))
        pane.update_content(content)
        return pane

    async def prepare_exec_pane(self, shell: str | None = None) -> bool:
        """Install the marker prompt in the exec pane.

        Returns False when the shell has no supported prompt; command history
        cannot be recovered from such a pane.
        """
        pane = await self.refresh_pane()
        if pane.is_prepared:
            return True

        shell = shell or pane.shell
        command = prompt_command(shell)
        if command is None:
            logger.info("Shell '%s' in pane %s is not supported for prompt modification", shell, pane.id)
            return False

        await self.backend.send_text(pane.id, command, literal=True)
        await self.backend.send_text(pane.id, "C-l", literal=False)
        logger.info("Prepared pane %s for %s", pane.id, shell)
        return True

    async def refresh_history(self) -> list[CommandRecord]:
        """Re-capture the pane and rebuild the command history from scratch."""
        pane = await self.refresh_pane()
        if not pane.is_prepared:
            raise HistoryParseError(f"No prompt marker found in pane {pane.id}. Run 'paneguard prepare' first.")
        self.history = parse_history(pane.content)
        return self.history

    # --- Execution ---

    async def execute(self, command: str) -> ExecutionResult:
        """Run *command* in the exec pane if the guard allows it."""
        pane = await self.init_exec_pane()

        self.status = SessionStatus.WAITING
        outcome = self.guard.review(command, OperationKind.EXEC, confirm=self.setting("exec.exec_confirm"))
        result = ExecutionResult(command=command, outcome=outcome, pane_id=pane.id)
        if not outcome.approved:
            self.status = SessionStatus.IDLE
            return result

        start = time.monotonic()
        result.record = await self.exec_wait_capture(outcome.final_command)
        result.execution_time_ms = int((time.monotonic() - start) * 1000)

        if self.setting("storage.enabled"):
            await save_command(result)
        return result

    async def exec_wait_capture(self, command: str) -> CommandRecord:
        """Send *command* to the pane and wait for its record. No guard."""
        try:
            baseline = (await self.refresh_pane()).content
            await self.dispatch(command)
        except BackendError as e:
            self.status = SessionStatus.IDLE
            logger.error("Failed to send command to exec pane: %s", e)
            raise

        # Give the keys time to arrive, ssh sessions can lag.
        await asyncio.sleep(self.setting("exec.send_delay"))
        return await self.wait_for_completion(baseline)

    async def dispatch(self, command: str) -> None:
        pane = await self.init_exec_pane()
        logger.info("Dispatching to pane %s: %s", pane.id, command)
        await self.backend.send_text(pane.id, command, literal=True)

    async def wait_for_completion(self, baseline: str | None = None) -> CommandRecord:
        """Poll the pane until a fresh prompt appears and return the last record.

        *baseline* is the pane content captured before dispatch; an unchanged
        pane is never taken as finished. Can be called again after a
        ``WaitTimeoutError`` to keep waiting.
        """
        timeout = self.setting("exec.timeout")
        self.status = SessionStatus.RUNNING
        try:
            with self.console.status("Waiting for command to finish...", spinner="dots"):
                if timeout and timeout > 0:
                    await asyncio.wait_for(self._poll_until_prompt(baseline), timeout)
                else:
                    await self._poll_until_prompt(baseline)
            history = await self.refresh_history()
        except asyncio.TimeoutError:
            self.status = SessionStatus.IDLE
            logger.warning("Command in pane %s did not finish within %ss", self.exec_pane.id if self.exec_pane else "?", timeout)
            raise WaitTimeoutError(timeout) from None
        except BaseException:
            self.status = SessionStatus.IDLE
            raise

        if not history:
            self.status = SessionStatus.IDLE
            logger.error("Failed to parse command history from exec pane")
            raise HistoryParseError("Failed to parse command history from exec pane")

        record = history[-1]
        logger.debug("Command: %s\nOutput: %s\nCode: %d", record.command, record.output, record.exit_code)
        self.status = SessionStatus.DONE
        return record

    async def _poll_until_prompt(self, baseline: str | None) -> None:
        interval = self.setting("exec.poll_interval")
        pane = await self.refresh_pane()
        while pane.content == baseline or not is_terminating_marker(pane.last_line):
            if self.status is not SessionStatus.RUNNING:
                raise ExecutionCancelled("Waiting for command was cancelled")
            await asyncio.sleep(interval)
            pane = await self.refresh_pane()

    def cancel(self) -> None:
        """Stop waiting for the current command. The pane itself is untouched."""
        if self.status is not SessionStatus.IDLE:
            logger.info("Cancelling wait on pane %s", self.exec_pane.id if self.exec_pane else "?")
        self.status = SessionStatus.IDLE

    async def send_keys(self, keys: list[str]) -> ExecutionResult:
        """Send tmux key names (``C-c``, ``Enter``, ...) after review."""
        pane = await self.init_exec_pane()
        joined = " ".join(keys)

        self.status = SessionStatus.WAITING
        outcome = self.guard.review(joined, OperationKind.SEND_KEYS, confirm=self.setting("exec.send_keys_confirm"))
        self.status = SessionStatus.IDLE
        result = ExecutionResult(command=joined, outcome=outcome, pane_id=pane.id)
        if outcome.approved:
            for key in keys:
                await self.backend.send_text(pane.id, key, literal=False)
        return result

    async def paste_multiline(self, content: str) -> ExecutionResult:
        """Type multi-line *content* into the pane after review."""
        pane = await self.init_exec_pane()

        self.status = SessionStatus.WAITING
        outcome = self.guard.review(
            content,
            OperationKind.PASTE_MULTILINE,
            confirm=self.setting("exec.paste_multiline_confirm"),
        )
        self.status = SessionStatus.IDLE
        result = ExecutionResult(command=content, outcome=outcome, pane_id=pane.id)
        if outcome.approved:
            await self.backend.send_text(pane.id, outcome.final_command, literal=True)
        return result
