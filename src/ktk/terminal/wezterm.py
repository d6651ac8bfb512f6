"""WezTerm backend driven through ``wezterm cli``."""

from __future__ import annotations

import logging as py_logging
from typing import Any

from ktk.errors import ExitCode, KtkError
from ktk.terminal.base import TerminalBackend
from ktk.terminal.models import (
    WEZTERM_CLIENTS,
    WEZTERM_LIST,
    TabHandle,
    WeztermClient,
    WeztermPane,
    parse_json_listing,
)

logger = py_logging.getLogger(__name__)


class WeztermBackend(TerminalBackend):
    kind = "wezterm"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._panes: list[WeztermPane] = []
        self._clients: list[WeztermClient] = []

    def _load_snapshot(self) -> None:
        panes = self._run(["wezterm", "cli", "list", "--format=json"])
        clients = self._run(["wezterm", "cli", "list-clients", "--format=json"])
        self._panes = parse_json_listing(WEZTERM_LIST, panes, source="wezterm cli list")
        self._clients = parse_json_listing(WEZTERM_CLIENTS, clients, source="wezterm cli list-clients")
        logger.debug("wezterm snapshot panes=%s clients=%s", len(self._panes), len(self._clients))

    def _focused_pane(self) -> WeztermPane | None:
        if not self._clients:
            return None
        pane_id = self._clients[0].focused_pane_id
        for pane in self._panes:
            if pane.pane_id == pane_id:
                return pane
        return None

    def _session_token(self) -> str:
        pane = self._focused_pane()
        return str(pane.window_id) if pane is not None else "0"

    def _tabs(self) -> list[TabHandle]:
        focused = self._focused_pane()
        workspace = focused.workspace if focused is not None else None
        handles: list[TabHandle] = []
        seen: set[int] = set()
        for pane in self._panes:
            if pane.tab_id in seen:
                continue
            if workspace is not None and pane.workspace != workspace:
                continue
            seen.add(pane.tab_id)
            handles.append(TabHandle(tab_id=str(pane.tab_id), title=pane.tab_title))
        return handles

    def _focused_tab_id(self) -> str | None:
        pane = self._focused_pane()
        return str(pane.tab_id) if pane is not None else None

    def _create_tab(self, title: str) -> None:
        pane_id = self._run(["wezterm", "cli", "spawn", "--", self.shell]).strip()
        if not pane_id.isdigit():
            logger.error("wezterm cli spawn returned %r", pane_id)
            raise KtkError(
                "Unexpected output from `wezterm cli spawn`.",
                code=ExitCode.TERMINAL_ERROR,
                hint="Expected the id of the new pane.",
            )
        self._run(["wezterm", "cli", "set-tab-title", f"--pane-id={pane_id}", title])

    def _retitle(self, title: str) -> None:
        self._run(["wezterm", "cli", "set-tab-title", title])

    def _focus(self, handle: TabHandle) -> None:
        self._run(["wezterm", "cli", "activate-tab", f"--tab-id={handle.tab_id}"])
