"""Prompt markers that make command boundaries recoverable from pane text.

Every supported shell gets a prompt of the form ``user@host:dir[<status>] ``
where ``<status>`` is the exit code of the command that just finished.
Only lines that start with the rendered ``user@host:dir`` prefix count as
markers, so program output such as ``items[3] = 7`` is left alone. Output
that itself looks like ``name@host:path[N]`` is still taken for a prompt.
"""

from __future__ import annotations

import re

# Group 1: exit status of the previous command. Group 2: text typed after the prompt.
MARKER_PATTERN = re.compile(r"^\s*[^\s@]+@[^\s:]+:.*?\[(\d+)\] ?(.*)$")

PROMPT_COMMANDS: dict[str, str] = {
    "zsh": r"export PROMPT=$'%{\033[30m\033[1;102m%} %n@%m:%~[$?]%{\033[0m%} '; export RPROMPT=''",
    "bash": r"""export PS1='\[\033[30m\033[1;102m\] \u@\h:\w[$?]\[\033[0m\] '""",
    "fish": (
        "function fish_prompt; set -l s $status; set_color -b green black; "
        r"printf ' %s@%s:%s[%s]\033[0m' $USER (hostname -s) (prompt_pwd) $s; "
        "printf ' '; set_color normal; end"
    ),
}

SUPPORTED_SHELLS = tuple(PROMPT_COMMANDS)


def normalize_shell(name: str) -> str:
    """Reduce a pane's current command (``-zsh``, ``/bin/bash``) to a shell name."""
    name = name.strip().rsplit("/", 1)[-1]
    return name.lstrip("-")


def prompt_command(shell: str) -> str | None:
    """Command that installs the marker prompt in *shell*, or None if unsupported."""
    return PROMPT_COMMANDS.get(normalize_shell(shell))


def parse_marker(line: str) -> tuple[int, str] | None:
    """Return ``(exit_code, trailing_command)`` for a marker line, else None."""
    match = MARKER_PATTERN.match(line)
    if match is None:
        return None
    return int(match.group(1)), match.group(2).strip()


def last_line(content: str) -> str:
    """Last non-blank line of captured pane content."""
    for line in reversed(content.splitlines()):
        if line.strip():
            return line.rstrip()
    return ""


def is_terminating_marker(line: str) -> bool:
    """True when *line* is a freshly rendered prompt awaiting input."""
    marker = parse_marker(line)
    return marker is not None and not marker[1]


def has_marker(content: str) -> bool:
    return any(MARKER_PATTERN.match(line) for line in content.splitlines())
