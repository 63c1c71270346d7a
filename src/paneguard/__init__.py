"""paneguard - guarded command execution for terminal multiplexer panes."""

__version__ = "0.1.0"
