"""Exception hierarchy."""

from __future__ import annotations


class PaneGuardError(Exception):
    """Base class for all paneguard errors."""


class ConfigError(PaneGuardError):
    """Invalid configuration file, key or value."""


class PolicyPatternError(ConfigError):
    """A whitelist or blacklist entry is not a valid regular expression."""

    def __init__(self, kind: str, pattern: str, reason: str) -> None:
        self.kind = kind
        self.pattern = pattern
        super().__init__(f"invalid {kind} regex pattern '{pattern}': {reason}")


class HistoryParseError(PaneGuardError):
    """No command history could be recovered from the pane buffer."""


class BackendError(PaneGuardError):
    """A terminal backend operation failed."""

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = "") -> None:
        self.command = command or []
        self.stderr = stderr
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class ConfirmationError(PaneGuardError):
    """Reading the confirmation answer or running the editor failed."""


class WaitTimeoutError(PaneGuardError):
    """The pane did not show a new prompt before the timeout elapsed."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Command did not finish within {timeout:g}s")


class ExecutionCancelled(PaneGuardError):
    """Waiting for a command was cancelled by the user."""


class StorageError(PaneGuardError):
    """The audit log database could not be opened or created."""
