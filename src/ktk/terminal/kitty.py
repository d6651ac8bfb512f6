"""kitty backend driven through ``kitty @`` remote control."""

from __future__ import annotations

import logging as py_logging
from typing import Any

from ktk.targets import TabColorSpec
from ktk.terminal.base import TerminalBackend
from ktk.terminal.models import KITTY_LS, KittyOsWindow, TabHandle, parse_json_listing

logger = py_logging.getLogger(__name__)


class KittyBackend(TerminalBackend):
    kind = "kitty"
    supports_color = True

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._os_windows: list[KittyOsWindow] = []

    def _load_snapshot(self) -> None:
        payload = self._run(["kitty", "@", "ls"])
        self._os_windows = parse_json_listing(KITTY_LS, payload, source="kitty @ ls")
        logger.debug("kitty snapshot os_windows=%s", len(self._os_windows))

    def _focused_os_window(self) -> KittyOsWindow | None:
        for os_window in self._os_windows:
            if os_window.is_focused:
                return os_window
        return None

    def _session_token(self) -> str:
        os_window = self._focused_os_window()
        if os_window is None:
            return "0"
        if os_window.platform_window_id is not None:
            return str(os_window.platform_window_id)
        return str(os_window.id)

    def _tabs(self) -> list[TabHandle]:
        handles: list[TabHandle] = []
        for os_window in self._os_windows:
            for tab in os_window.tabs:
                window = tab.active_window()
                handles.append(
                    TabHandle(
                        tab_id=str(tab.id),
                        title=tab.title,
                        focus_id=str(window.id) if window is not None else "",
                    )
                )
        return handles

    def _focused_tab_id(self) -> str | None:
        os_window = self._focused_os_window()
        if os_window is None:
            return None
        for tab in os_window.tabs:
            if tab.is_focused:
                return str(tab.id)
        return None

    def _create_tab(self, title: str) -> None:
        self._run(["kitty", "@", "launch", "--type=tab", "--tab-title", title, self.shell])

    def _retitle(self, title: str) -> None:
        self._run(["kitty", "@", "set-tab-title", title])

    def _recolor(self, color: TabColorSpec) -> None:
        self._run(
            [
                "kitty",
                "@",
                "set-tab-color",
                f"active_bg={color.active_bg}",
                f"active_fg={color.active_fg}",
                f"inactive_bg={color.inactive_bg}",
                f"inactive_fg={color.inactive_fg}",
            ]
        )

    def _focus(self, handle: TabHandle) -> None:
        if handle.focus_id:
            self._run(["kitty", "@", "focus-window", "-m", f"id:{handle.focus_id}"])
        else:
            self._run(["kitty", "@", "focus-tab", "-m", f"id:{handle.tab_id}"])
