"""Interactive yes/no/edit confirmation before a command reaches the pane."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Mapping
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from paneguard.errors import ConfirmationError
from paneguard.storage.models import Approval, ExecutionOutcome, RiskAssessment, RiskLevel

logger = logging.getLogger(__name__)

YES_ANSWERS = frozenset({"y", "yes", "ok", "sure"})
NO_ANSWERS = frozenset({"n", "no", "cancel"})
EDIT_ANSWERS = frozenset({"e", "edit"})

EDITOR_FALLBACKS = ("vim", "vi", "nano", "emacs")

LEVEL_STYLES = {
    RiskLevel.SAFE: "green",
    RiskLevel.UNKNOWN: "yellow",
    RiskLevel.DANGER: "bold red",
}


def resolve_editor(environ: Mapping[str, str]) -> str | None:
    """$EDITOR, then $VISUAL, then the first fallback editor found on PATH."""
    for var in ("EDITOR", "VISUAL"):
        if editor := environ.get(var, "").strip():
            return editor
    for candidate in EDITOR_FALLBACKS:
        if shutil.which(candidate):
            return candidate
    return None


def edit_in_editor(command: str, editor: str) -> str:
    """Open *command* in *editor* via a temp file and return the edited text."""
    try:
        fd, name = tempfile.mkstemp(prefix="paneguard-edit-", suffix=".sh")
    except OSError as e:
        raise ConfirmationError(f"Error creating temporary file: {e}") from e

    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(command)
        try:
            subprocess.run([*shlex.split(editor), str(path)], check=True)
        except (OSError, ValueError, subprocess.CalledProcessError) as e:
            raise ConfirmationError(f"Error running editor '{editor}': {e}") from e
        return path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfirmationError(f"Error reading edited command: {e}") from e
    finally:
        path.unlink(missing_ok=True)


class Confirmer:
    """Ask the user whether a command may run.

    Empty input means yes. Unrecognised input asks again. Ctrl+C, EOF and
    editor failures all count as a denial.
    """

    def __init__(
        self,
        console: Console | None = None,
        input_func: Callable[[str], str] | None = None,
        environ: Mapping[str, str] | None = None,
        editor_func: Callable[[str, str], str] = edit_in_editor,
    ) -> None:
        self.console = console or Console()
        self._input = input_func or (lambda prompt: self.console.input(prompt))
        self.environ = environ if environ is not None else os.environ
        self._edit = editor_func

    def confirm(
        self,
        command: str,
        prompt: str = "Execute this command?",
        allow_edit: bool = True,
        assessment: RiskAssessment | None = None,
    ) -> ExecutionOutcome:
        if assessment is not None:
            self._show_assessment(command, assessment)

        options = "[Y]es/No/Edit" if allow_edit else "[Y]es/No"
        prompt_text = f"[bold cyan]{escape(f'{prompt} {options}: ')}[/bold cyan]"

        while True:
            try:
                answer = self._input(prompt_text)
            except (KeyboardInterrupt, EOFError):
                self.console.print()
                logger.info("Confirmation interrupted: %s", command)
                return self._denied(assessment)
            except OSError as e:
                self.console.print(f"[red]Error reading confirmation: {escape(str(e))}[/red]")
                return self._denied(assessment)

            answer = answer.strip().lower() or "y"

            if answer in YES_ANSWERS:
                return ExecutionOutcome(True, command, Approval.CONFIRMED, assessment)
            if answer in NO_ANSWERS:
                logger.info("Command denied by user: %s", command)
                return self._denied(assessment)
            if answer in EDIT_ANSWERS and allow_edit:
                return self._edit_command(command, assessment)

    def _edit_command(self, command: str, assessment: RiskAssessment | None) -> ExecutionOutcome:
        editor = resolve_editor(self.environ)
        if editor is None:
            self.console.print("[red]Error: No editor found. Please set the EDITOR environment variable.[/red]")
            return self._denied(assessment)

        try:
            edited = self._edit(command, editor)
        except ConfirmationError as e:
            logger.warning("Editing failed: %s", e)
            self.console.print(f"[red]{escape(str(e))}[/red]")
            return self._denied(assessment)

        if not edited:
            return self._denied(assessment)
        return ExecutionOutcome(True, edited, Approval.EDITED, assessment)

    def _show_assessment(self, command: str, assessment: RiskAssessment) -> None:
        style = LEVEL_STYLES[assessment.level]
        self.console.print(f"[{style}]\\[{assessment.level.value}][/{style}] {escape(command)}")
        if assessment.level is RiskLevel.DANGER:
            for reason in assessment.reasons:
                self.console.print(f"  [red]- {escape(reason)}[/red]")

    @staticmethod
    def _denied(assessment: RiskAssessment | None) -> ExecutionOutcome:
        return ExecutionOutcome(False, "", Approval.DENIED, assessment)
