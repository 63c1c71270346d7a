"""Tests for the exec pane session."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from paneguard.errors import (
    BackendError,
    ConfigError,
    ExecutionCancelled,
    HistoryParseError,
    PolicyPatternError,
    WaitTimeoutError,
)
from paneguard.services.confirm import Confirmer
from paneguard.services.guard import ExecutionGuard
from paneguard.services.policy import PolicyFilter
from paneguard.session import Session
from paneguard.storage.models import Approval, CommandRecord, SessionStatus
from paneguard.terminal.backend import PaneDetails
from paneguard.terminal.prompt import prompt_command

PROMPT = "user@host:~[0]"
LS_CAPTURES = [
    PROMPT,
    f"{PROMPT} ls -la\nfile1.txt",
    f"{PROMPT} ls -la\nfile1.txt\nfile2.txt\n{PROMPT}",
]


def make_session(config, backend, console, answers=("y",), whitelist=(), editor_func=None):
    queue = list(answers)
    input_func = MagicMock(side_effect=lambda prompt: queue.pop(0))
    confirmer = Confirmer(
        console,
        input_func=input_func,
        environ={"EDITOR": "vim"},
        editor_func=editor_func or MagicMock(return_value=""),
    )
    guard = ExecutionGuard(PolicyFilter(whitelist), confirmer)
    return Session(config, backend, guard=guard, console=console), input_func


class TestExecute:
    @pytest.mark.asyncio
    async def test_confirmed_command_is_run_and_recovered(self, app_config, console, backend_cls):
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, input_func = make_session(app_config, backend, console)

        result = await session.execute("ls -la")

        assert not result.blocked
        assert result.outcome.approval == Approval.CONFIRMED
        assert result.record == CommandRecord("ls -la", "file1.txt\nfile2.txt", 0)
        assert result.pane_id == "%1"
        assert backend.sent == [("%1", "ls -la", True)]
        assert session.status is SessionStatus.DONE
        assert session.history[-1] == result.record
        input_func.assert_called_once()

    @pytest.mark.asyncio
    async def test_denied_command_is_not_sent(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT])
        session, _ = make_session(app_config, backend, console, answers=("n",))

        result = await session.execute("rm -rf /")

        assert result.blocked
        assert result.record is None
        assert backend.sent == []
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_edited_command_is_sent(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT, f"{PROMPT} ls -l\nfile1.txt\n{PROMPT}"])
        editor = MagicMock(return_value="ls -l")
        session, _ = make_session(app_config, backend, console, answers=("e",), editor_func=editor)

        result = await session.execute("ls -la")

        assert result.outcome.approval == Approval.EDITED
        assert backend.sent == [("%1", "ls -l", True)]
        assert result.record == CommandRecord("ls -l", "file1.txt", 0)

    @pytest.mark.asyncio
    async def test_preapproved_command_skips_prompt(self, app_config, console, backend_cls):
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, input_func = make_session(app_config, backend, console, answers=(), whitelist=[r"^ls\b"])

        result = await session.execute("ls -la")

        assert result.outcome.approval == Approval.PREAPPROVED
        assert result.record.exit_code == 0
        input_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_confirmation_disabled(self, app_config, console, backend_cls):
        app_config.exec.exec_confirm = False
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, input_func = make_session(app_config, backend, console, answers=())

        result = await session.execute("ls -la")

        assert result.outcome.approval == Approval.UNCONFIRMED
        input_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_override_disables_confirmation(self, app_config, console, backend_cls):
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, input_func = make_session(app_config, backend, console, answers=())
        session.set_override("exec.exec_confirm", "false")

        result = await session.execute("ls -la")

        assert result.outcome.approval == Approval.UNCONFIRMED
        input_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_result_is_stored_when_enabled(self, app_config, console, backend_cls):
        app_config.storage.enabled = True
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, _ = make_session(app_config, backend, console)

        with patch("paneguard.session.save_command", new_callable=AsyncMock) as mock_save:
            result = await session.execute("ls -la")

        mock_save.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_result_not_stored_when_disabled(self, app_config, console, backend_cls):
        backend = backend_cls(captures=list(LS_CAPTURES))
        session, _ = make_session(app_config, backend, console)

        with patch("paneguard.session.save_command", new_callable=AsyncMock) as mock_save:
            await session.execute("ls -la")

        mock_save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dispatch_failure_resets_status(self, app_config, console, backend_cls):
        class BrokenBackend(backend_cls):
            async def send_text(self, pane_id, text, literal=True):
                raise BackendError("tmux send-keys failed")

        session, _ = make_session(app_config, BrokenBackend(captures=[PROMPT]), console)

        with pytest.raises(BackendError):
            await session.execute("ls")
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_capture_failure_before_dispatch_resets_status(self, app_config, console, backend_cls):
        class UnreadableBackend(backend_cls):
            async def capture_content(self, pane_id, max_lines):
                raise BackendError("tmux capture-pane failed")

        backend = UnreadableBackend()
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(BackendError):
            await session.execute("ls")
        assert session.status is SessionStatus.IDLE
        assert backend.sent == []


class TestWaitForCompletion:
    @pytest.mark.asyncio
    async def test_timeout(self, app_config, console, backend_cls):
        app_config.exec.timeout = 0.05
        app_config.exec.poll_interval = 0.01
        backend = backend_cls(captures=[PROMPT, f"{PROMPT} sleep 100"])
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(WaitTimeoutError):
            await session.execute("sleep 100")
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_cancel(self, app_config, console, backend_cls):
        app_config.exec.poll_interval = 0.01
        app_config.exec.timeout = 0
        backend = backend_cls(captures=[PROMPT, f"{PROMPT} sleep 100"])
        session, _ = make_session(app_config, backend, console)

        task = asyncio.create_task(session.execute("sleep 100"))
        while session.status is not SessionStatus.RUNNING:
            await asyncio.sleep(0.005)
        session.cancel()

        with pytest.raises(ExecutionCancelled):
            await task
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_unchanged_pane_is_not_finished(self, app_config, console, backend_cls):
        app_config.exec.timeout = 0.05
        app_config.exec.poll_interval = 0.01
        backend = backend_cls(captures=[f"{PROMPT} ls\nfile\n{PROMPT}"])
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(WaitTimeoutError):
            await session.execute("ls")

    @pytest.mark.asyncio
    async def test_empty_history(self, app_config, console, backend_cls):
        backend = backend_cls(captures=["", PROMPT])
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(HistoryParseError):
            await session.execute("ls")
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_dangling_command_is_returned_when_prompt_is_back(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[f"{PROMPT} make\nbuilding\n{PROMPT}"])
        session, _ = make_session(app_config, backend, console)

        record = await session.wait_for_completion()

        assert record == CommandRecord("make", "building", 0)
        assert session.status is SessionStatus.DONE


class TestPanes:
    @pytest.mark.asyncio
    async def test_creates_pane_when_only_agent_exists(self, app_config, console, backend_cls):
        backend = backend_cls(panes=[PaneDetails(id="%0", current_command="zsh", is_agent_pane=True)])
        session, _ = make_session(app_config, backend, console)

        pane = await session.init_exec_pane()

        assert backend.created == ["%0"]
        assert pane.id == "%1"
        assert await session.init_exec_pane() is pane

    @pytest.mark.asyncio
    async def test_no_pane_available(self, app_config, console, backend_cls):
        class NoSplitBackend(backend_cls):
            async def create_pane(self, target):
                self.created.append(target)
                return "%9"

        backend = NoSplitBackend(panes=[PaneDetails(id="%0", is_agent_pane=True)])
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(BackendError):
            await session.init_exec_pane()

    @pytest.mark.asyncio
    async def test_prepare_zsh(self, app_config, console, backend_cls):
        backend = backend_cls(captures=["$ "])
        session, _ = make_session(app_config, backend, console)

        assert await session.prepare_exec_pane()
        assert backend.sent == [("%1", prompt_command("zsh"), True), ("%1", "C-l", False)]

    @pytest.mark.asyncio
    async def test_prepare_shell_override(self, app_config, console, backend_cls):
        backend = backend_cls(captures=["$ "])
        session, _ = make_session(app_config, backend, console)

        assert await session.prepare_exec_pane("fish")
        assert backend.sent[0] == ("%1", prompt_command("fish"), True)

    @pytest.mark.asyncio
    async def test_prepare_unsupported_shell(self, app_config, console, backend_cls):
        backend = backend_cls(
            captures=["> "],
            panes=[PaneDetails(id="%0", is_agent_pane=True), PaneDetails(id="%1", current_command="tcsh")],
        )
        session, _ = make_session(app_config, backend, console)

        assert not await session.prepare_exec_pane()
        assert backend.sent == []

    @pytest.mark.asyncio
    async def test_prepare_already_prepared(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT])
        session, _ = make_session(app_config, backend, console)

        assert await session.prepare_exec_pane()
        assert backend.sent == []

    @pytest.mark.asyncio
    async def test_history_requires_marker(self, app_config, console, backend_cls):
        backend = backend_cls(captures=["$ ls\nfile\n$ "])
        session, _ = make_session(app_config, backend, console)

        with pytest.raises(HistoryParseError):
            await session.refresh_history()


class TestSendKeysAndPaste:
    @pytest.mark.asyncio
    async def test_send_keys(self, app_config, console, backend_cls):
        backend = backend_cls()
        session, input_func = make_session(app_config, backend, console)

        result = await session.send_keys(["C-c", "Enter"])

        assert result.command == "C-c Enter"
        assert backend.sent == [("%1", "C-c", False), ("%1", "Enter", False)]
        assert session.status is SessionStatus.IDLE
        assert "Send these keys?" in input_func.call_args.args[0]

    @pytest.mark.asyncio
    async def test_send_keys_denied(self, app_config, console, backend_cls):
        backend = backend_cls()
        session, _ = make_session(app_config, backend, console, answers=("n",))

        result = await session.send_keys(["C-c"])

        assert result.blocked
        assert backend.sent == []

    @pytest.mark.asyncio
    async def test_paste_multiline_unconfirmed(self, app_config, console, backend_cls):
        app_config.exec.paste_multiline_confirm = False
        backend = backend_cls()
        session, input_func = make_session(app_config, backend, console, answers=())
        content = "for f in *.txt; do\n  wc -l $f\ndone"

        result = await session.paste_multiline(content)

        assert result.outcome.approval == Approval.UNCONFIRMED
        assert backend.sent == [("%1", content, True)]
        input_func.assert_not_called()


class TestOverrides:
    @pytest.mark.asyncio
    async def test_capture_window_override(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT])
        session, _ = make_session(app_config, backend, console)

        assert session.set_override("exec.max_capture_lines", "42") == 42
        await session.refresh_pane()
        assert backend.capture_requests[-1] == ("%1", 42)

        session.clear_override("exec.max_capture_lines")
        await session.refresh_pane()
        assert backend.capture_requests[-1] == ("%1", 100)

    def test_unknown_key(self, app_config, console, backend_cls):
        session, _ = make_session(app_config, backend_cls(), console)
        with pytest.raises(ConfigError):
            session.set_override("exec.nope", "1")

    def test_bad_value(self, app_config, console, backend_cls):
        session, _ = make_session(app_config, backend_cls(), console)
        with pytest.raises(ConfigError):
            session.set_override("exec.timeout", "soon")
        assert session.setting("exec.timeout") == 5

    @pytest.mark.asyncio
    async def test_whitelist_override_preapproves(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT, f"{PROMPT} pwd\n/home/user\n{PROMPT}"])
        session, input_func = make_session(app_config, backend, console, answers=())

        session.set_override("policy.whitelist_patterns", r"^pwd$")
        result = await session.execute("pwd")

        assert result.outcome.approval == Approval.PREAPPROVED
        input_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_clearing_policy_override_restores_filter(self, app_config, console, backend_cls):
        backend = backend_cls(captures=[PROMPT])
        session, input_func = make_session(app_config, backend, console, answers=("n",))

        session.set_override("policy.whitelist_patterns", r"^pwd$")
        session.clear_override("policy.whitelist_patterns")
        result = await session.execute("pwd")

        assert result.blocked
        input_func.assert_called_once()

    def test_bad_policy_override_is_rejected(self, app_config, console, backend_cls):
        session, _ = make_session(app_config, backend_cls(), console)
        policy = session.guard.policy

        with pytest.raises(PolicyPatternError):
            session.set_override("policy.blacklist_patterns", "(")
        assert "policy.blacklist_patterns" not in session.overrides
        assert session.guard.policy is policy
