"""User whitelist/blacklist that pre-approves commands."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from paneguard.errors import PolicyPatternError

logger = logging.getLogger(__name__)


def _compile(kind: str, patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        if not pattern:
            continue
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise PolicyPatternError(kind, pattern, str(e)) from e
    return tuple(compiled)


class PolicyFilter:
    """Regex whitelist with a blacklist veto.

    Invalid patterns raise ``PolicyPatternError`` at construction; empty
    entries are ignored.
    """

    def __init__(self, whitelist: Iterable[str] = (), blacklist: Iterable[str] = ()) -> None:
        self._whitelist = _compile("whitelist", whitelist)
        self._blacklist = _compile("blacklist", blacklist)

    def is_preapproved(self, command: str) -> bool:
        """True if *command* matches a whitelist entry and no blacklist entry."""
        if not any(p.search(command) for p in self._whitelist):
            return False
        for pattern in self._blacklist:
            if pattern.search(command):
                logger.info("Whitelisted command vetoed by blacklist %r: %s", pattern.pattern, command)
                return False
        logger.debug("Command pre-approved by whitelist: %s", command)
        return True


def is_preapproved(command: str, whitelist: Iterable[str], blacklist: Iterable[str]) -> bool:
    """One-shot form of ``PolicyFilter(whitelist, blacklist).is_preapproved(command)``."""
    return PolicyFilter(whitelist, blacklist).is_preapproved(command)
