"""Terminal backends and environment-based backend selection."""

from __future__ import annotations

import logging as py_logging
import os
import subprocess
from collections.abc import Mapping

from ktk.errors import ExitCode, KtkError
from ktk.terminal.base import SubprocessRunner, TerminalBackend
from ktk.terminal.kitty import KittyBackend
from ktk.terminal.models import TabHandle, TabIdentity
from ktk.terminal.tmux import TmuxBackend
from ktk.terminal.wezterm import WeztermBackend

logger = py_logging.getLogger(__name__)

__all__ = [
    "detect_backend",
    "KittyBackend",
    "select_backend_class",
    "SubprocessRunner",
    "TabHandle",
    "TabIdentity",
    "TerminalBackend",
    "TmuxBackend",
    "WeztermBackend",
]


def select_backend_class(environ: Mapping[str, str]) -> type[TerminalBackend]:
    term_program = environ.get("TERM_PROGRAM", "")
    if term_program == "tmux" or environ.get("TMUX"):
        return TmuxBackend
    if term_program == "WezTerm":
        return WeztermBackend
    if environ.get("TERM", "") == "xterm-kitty" or environ.get("KITTY_WINDOW_ID"):
        return KittyBackend
    logger.error("Unsupported terminal TERM_PROGRAM=%r TERM=%r", term_program, environ.get("TERM"))
    raise KtkError(
        "Only supports Kitty, WezTerm and Tmux for now.",
        code=ExitCode.UNSUPPORTED_TERMINAL,
        hint="Run ktk inside kitty (with allow_remote_control), WezTerm or tmux.",
    )


def detect_backend(
    *,
    environ: Mapping[str, str] | None = None,
    runner: SubprocessRunner = subprocess.run,
) -> TerminalBackend:
    env = os.environ if environ is None else environ
    backend_class = select_backend_class(env)
    logger.debug("%s terminal", backend_class.kind)
    backend = backend_class(runner=runner, environ=env)
    backend.refresh()
    return backend
