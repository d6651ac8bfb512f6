"""Uniform tab operations over a terminal program's remote-control CLI."""

from __future__ import annotations

import logging as py_logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Protocol

from ktk.errors import ExitCode, KtkError
from ktk.targets import TabColorSpec
from ktk.terminal.models import TabHandle, TabIdentity

logger = py_logging.getLogger(__name__)

ENV_TOKEN_VAR = "KTKENV"
DEFAULT_SHELL = "/bin/bash"


class SubprocessRunner(Protocol):
    def __call__(
        self,
        args: list[str],
        *,
        capture_output: bool = False,
        text: bool = False,
        check: bool = False,
        input: str | None = None,
    ) -> subprocess.CompletedProcess[str]: ...


class TerminalBackend(ABC):
    """One terminal program, driven through blocking subprocess calls.

    Query methods answer from the snapshot taken by the last ``refresh``.
    Every mutating call refreshes the snapshot before returning because the
    terminal listings are not pushed to us.
    """

    kind = ""
    supports_color = False

    def __init__(
        self,
        *,
        runner: SubprocessRunner = subprocess.run,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._environ = os.environ if environ is None else environ
        self._bound = False

    def _run(self, args: list[str]) -> str:
        logger.debug("Running terminal command: %s", args)
        try:
            result = self._runner(args, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error("Unable to run %s: %s", args[0], exc)
            raise KtkError(
                f"Unable to run `{args[0]}`.",
                code=ExitCode.TERMINAL_ERROR,
                hint=str(exc),
            ) from exc
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.error("Terminal command failed command=%s stderr=%s", args, stderr)
            raise KtkError(
                f"`{' '.join(args[:3])}` failed with exit code {result.returncode}.",
                code=ExitCode.TERMINAL_ERROR,
                hint=stderr or "Check that remote control is enabled for this terminal.",
            )
        return result.stdout or ""

    @property
    def env_token(self) -> str:
        return self._environ.get(ENV_TOKEN_VAR, "")

    @property
    def shell(self) -> str:
        return self._environ.get("SHELL", "") or DEFAULT_SHELL

    def refresh(self) -> None:
        self._load_snapshot()
        self._bound = True

    def _ensure_bound(self) -> None:
        if not self._bound:
            self.refresh()

    @abstractmethod
    def _load_snapshot(self) -> None: ...

    @abstractmethod
    def _session_token(self) -> str: ...

    @abstractmethod
    def _tabs(self) -> list[TabHandle]: ...

    @abstractmethod
    def _focused_tab_id(self) -> str | None: ...

    @abstractmethod
    def _create_tab(self, title: str) -> None: ...

    @abstractmethod
    def _retitle(self, title: str) -> None: ...

    @abstractmethod
    def _focus(self, handle: TabHandle) -> None: ...

    def _recolor(self, color: TabColorSpec) -> None:
        del color

    def identifier(self) -> str:
        self._ensure_bound()
        return f"{self.kind}-{self.env_token}{self._session_token()}"

    def tabs(self) -> list[TabHandle]:
        self._ensure_bound()
        return self._tabs()

    def locate_tab_by_title(self, title: str) -> TabHandle | None:
        for handle in self.tabs():
            if handle.title == title:
                logger.debug("Tab titled %r is %s", title, handle.tab_id)
                return handle
        return None

    def locate_focused_tab_identity(self) -> TabIdentity | None:
        self._ensure_bound()
        tab_id = self._focused_tab_id()
        if tab_id is None:
            return None
        return TabIdentity(container=self.identifier(), tab=tab_id)

    def create_tab_running_shell(self, title: str) -> None:
        logger.debug("Creating %s tab title=%r shell=%s", self.kind, title, self.shell)
        self._create_tab(title)
        self.refresh()

    def retitle_current_tab(self, title: str) -> None:
        logger.debug("Renaming current %s tab to %r", self.kind, title)
        self._retitle(title)
        self.refresh()

    def recolor_tab(self, color: TabColorSpec) -> None:
        if not self.supports_color:
            logger.debug("%s has no tab colors, ignoring %s", self.kind, color)
            return
        if color.is_unset():
            logger.debug("No tab color configured")
            return
        self._recolor(color)
        self.refresh()

    def focus_tab(self, handle: TabHandle) -> bool:
        if not any(item.tab_id == handle.tab_id for item in self.tabs()):
            return False
        self._focus(handle)
        return True
