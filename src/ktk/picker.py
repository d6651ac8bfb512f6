"""Interactive selection of one cache entry."""

from __future__ import annotations

import logging as py_logging
import subprocess
from collections.abc import Sequence
from typing import Protocol

from ktk.errors import ExitCode, KtkError
from ktk.terminal.base import SubprocessRunner

logger = py_logging.getLogger(__name__)

_CANCEL_CODES = {1, 130}


class Picker(Protocol):
    def __call__(self, candidates: Sequence[str], query: str = "") -> str: ...


class FzfPicker:
    def __init__(self, *, runner: SubprocessRunner = subprocess.run, prompt: str = "ktk> ") -> None:
        self._runner = runner
        self.prompt = prompt

    def __call__(self, candidates: Sequence[str], query: str = "") -> str:
        if query and query in candidates:
            logger.debug("Query matches an entry exactly: %s", query)
            return query
        if not candidates:
            logger.warning("Nothing to choose from")
            return ""
        command = ["fzf", "--no-multi", "--prompt", self.prompt, "--query", query]
        try:
            result = self._runner(
                command,
                input="\n".join(reversed(candidates)),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise KtkError(
                "fzf is not installed.",
                code=ExitCode.RUNTIME_ERROR,
                hint="Install fzf and make sure it is on PATH.",
            ) from exc
        if result.returncode in _CANCEL_CODES:
            logger.debug("Empty choice")
            return ""
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise KtkError(
                "fzf selection failed.",
                code=ExitCode.RUNTIME_ERROR,
                hint=detail or "Inspect fzf output and retry.",
            )
        return (result.stdout or "").strip()
