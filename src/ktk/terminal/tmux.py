"""tmux backend: one tab per window of the current session."""

from __future__ import annotations

import logging as py_logging
from typing import Any

from ktk.terminal.base import TerminalBackend
from ktk.terminal.models import TabHandle, TmuxWindow, parse_tmux_windows

logger = py_logging.getLogger(__name__)

_WINDOW_FORMAT = "#{window_id}\t#{window_active}\t#{window_name}"


class TmuxBackend(TerminalBackend):
    kind = "tmux"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._session = ""
        self._windows: list[TmuxWindow] = []

    def _load_snapshot(self) -> None:
        self._session = self._run(["tmux", "display-message", "-p", "#S"]).strip()
        payload = self._run(["tmux", "list-windows", "-F", _WINDOW_FORMAT])
        self._windows = parse_tmux_windows(payload)
        logger.debug("tmux snapshot session=%s windows=%s", self._session, len(self._windows))

    def _session_token(self) -> str:
        return self._session

    def _tabs(self) -> list[TabHandle]:
        return [TabHandle(tab_id=window.window_id, title=window.name) for window in self._windows]

    def _focused_tab_id(self) -> str | None:
        for window in self._windows:
            if window.active:
                return window.window_id
        return None

    def _create_tab(self, title: str) -> None:
        self._run(["tmux", "new-window", "-n", title, self.shell])

    def _retitle(self, title: str) -> None:
        self._run(["tmux", "rename-window", title])

    def _focus(self, handle: TabHandle) -> None:
        self._run(["tmux", "select-window", "-t", handle.tab_id])
