"""Typed records for the tab listings each terminal program prints."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ktk.errors import ExitCode, KtkError

logger = py_logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TabHandle:
    tab_id: str
    title: str
    focus_id: str = ""


@dataclass(frozen=True)
class TabIdentity:
    container: str
    tab: str

    def __str__(self) -> str:
        return f"{self.container}/{self.tab}"


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class KittyWindow(_Record):
    id: int
    is_active_window: bool = False
    is_focused: bool = False


class KittyTab(_Record):
    id: int
    title: str = ""
    is_focused: bool = False
    windows: list[KittyWindow] = Field(default_factory=list)

    def active_window(self) -> KittyWindow | None:
        for window in self.windows:
            if window.is_active_window:
                return window
        return self.windows[0] if self.windows else None


class KittyOsWindow(_Record):
    id: int
    platform_window_id: int | None = None
    is_focused: bool = False
    tabs: list[KittyTab] = Field(default_factory=list)


class WeztermPane(_Record):
    window_id: int
    tab_id: int
    pane_id: int
    workspace: str = ""
    title: str = ""
    tab_title: str = ""
    is_active: bool = False


class WeztermClient(_Record):
    focused_pane_id: int | None = None
    workspace: str = ""


class TmuxWindow(_Record):
    window_id: str
    active: bool
    name: str


KITTY_LS = TypeAdapter(list[KittyOsWindow])
WEZTERM_LIST = TypeAdapter(list[WeztermPane])
WEZTERM_CLIENTS = TypeAdapter(list[WeztermClient])


def parse_json_listing(adapter: TypeAdapter[T], payload: str, *, source: str) -> T:
    try:
        return adapter.validate_json(payload)
    except ValidationError as exc:
        logger.error("Malformed %s output: %s", source, exc.errors()[:3])
        raise KtkError(
            f"Unexpected output from `{source}`.",
            code=ExitCode.TERMINAL_ERROR,
            hint="Check that remote control is enabled for this terminal.",
        ) from exc


def parse_tmux_windows(payload: str) -> list[TmuxWindow]:
    windows: list[TmuxWindow] = []
    for line in payload.splitlines():
        if not line.strip():
            continue
        fields = line.split("\t", 2)
        if len(fields) != 3 or not fields[0].startswith("@") or fields[1] not in ("0", "1"):
            logger.error("Malformed tmux list-windows line: %r", line)
            raise KtkError(
                "Unexpected output from `tmux list-windows`.",
                code=ExitCode.TERMINAL_ERROR,
                hint="Run ktk from inside a tmux client.",
            )
        window_id, active, name = fields
        windows.append(TmuxWindow(window_id=window_id, active=active == "1", name=name))
    return windows
