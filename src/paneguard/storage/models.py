"""Data models for paneguard."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

EXIT_CODE_UNKNOWN = -1


class RiskLevel(str, Enum):
    SAFE = "safe"
    UNKNOWN = "unknown"
    DANGER = "danger"


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    DONE = "done"


class OperationKind(str, Enum):
    """Operation classes that can have confirmation toggled independently."""

    EXEC = "exec"
    SEND_KEYS = "send_keys"
    PASTE_MULTILINE = "paste_multiline"


class Approval(str, Enum):
    PREAPPROVED = "preapproved"
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    EDITED = "edited"
    DENIED = "denied"


@dataclass(frozen=True)
class CommandRecord:
    """A command reconstructed from the pane buffer."""

    command: str
    output: str = ""
    exit_code: int = EXIT_CODE_UNKNOWN

    @property
    def finished(self) -> bool:
        return self.exit_code != EXIT_CODE_UNKNOWN


@dataclass(frozen=True)
class RiskAssessment:
    """Classification of a candidate command."""

    level: RiskLevel
    flags: tuple[str, ...] = ()
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExecutionOutcome:
    """Decision made by the execution guard."""

    approved: bool
    final_command: str = ""
    approval: Approval = Approval.DENIED
    assessment: RiskAssessment | None = None


@dataclass
class ExecutionResult:
    """Result of a guarded operation on the exec pane."""

    command: str
    outcome: ExecutionOutcome
    record: CommandRecord | None = None
    pane_id: str = ""
    execution_time_ms: int = 0

    @property
    def blocked(self) -> bool:
        return not self.outcome.approved
