"""Execution guard: policy filter, risk classification and confirmation."""

from __future__ import annotations

import logging

from paneguard.services.confirm import Confirmer
from paneguard.services.policy import PolicyFilter
from paneguard.services.risk import classify
from paneguard.storage.models import Approval, ExecutionOutcome, OperationKind

logger = logging.getLogger(__name__)

PROMPTS: dict[OperationKind, str] = {
    OperationKind.EXEC: "Execute this command?",
    OperationKind.SEND_KEYS: "Send these keys?",
    OperationKind.PASTE_MULTILINE: "Paste this content?",
}


class ExecutionGuard:
    """Decide whether a proposed command may be dispatched.

    Pre-approved commands skip classification and confirmation. Everything
    else is classified and, unless confirmation is turned off for the
    operation, put to the user regardless of its tier.
    """

    def __init__(self, policy: PolicyFilter, confirmer: Confirmer) -> None:
        self.policy = policy
        self.confirmer = confirmer

    def review(
        self,
        command: str,
        kind: OperationKind = OperationKind.EXEC,
        confirm: bool = True,
        allow_edit: bool | None = None,
    ) -> ExecutionOutcome:
        if self.policy.is_preapproved(command):
            return ExecutionOutcome(True, command, Approval.PREAPPROVED)

        assessment = classify(command)
        logger.debug("Classified %r as %s", command, assessment.level.value)

        if not confirm:
            return ExecutionOutcome(True, command, Approval.UNCONFIRMED, assessment)

        if allow_edit is None:
            allow_edit = kind is OperationKind.EXEC
        return self.confirmer.confirm(
            command,
            prompt=PROMPTS[kind],
            allow_edit=allow_edit,
            assessment=assessment,
        )
