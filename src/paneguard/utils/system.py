"""System utility checks."""

from __future__ import annotations

import os
import shutil
import subprocess


def check_tmux() -> tuple[bool, str]:
    """Check if tmux is installed and return its version."""
    tmux_path = shutil.which("tmux")
    if not tmux_path:
        return False, "tmux not found. Install it with your package manager (e.g. apt install tmux)."
    try:
        result = subprocess.run(
            ["tmux", "-V"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        version = result.stdout.strip() or result.stderr.strip()
        return True, version
    except subprocess.TimeoutExpired:
        return False, "tmux version check timed out"
    except Exception as e:
        return False, f"Error checking tmux: {e}"


def inside_tmux() -> bool:
    """True when this process runs inside a tmux client."""
    return bool(os.environ.get("TMUX"))
