"""Bind a chosen namespace to a terminal tab and its private kubeconfig."""

from __future__ import annotations

import logging as py_logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ktk.errors import ExitCode, KtkError
from ktk.kubeconfig import Kubeconfig
from ktk.retry import RecoverableError, RetryPolicy, run_with_retry
from ktk.targets import NamespaceEntry, TargetRegistry, workdir_command
from ktk.terminal.base import TerminalBackend
from ktk.terminal.models import TabHandle

logger = py_logging.getLogger(__name__)

CredentialLoader = Callable[[str], Kubeconfig]


class TabMode(str, Enum):
    NEW_TAB = "new-tab"
    CURRENT_TAB = "current-tab"


@dataclass(frozen=True)
class BindResult:
    title: str
    tab_id: str
    focused_existing: bool
    credential_path: Path | None = None


class SessionBinder:
    def __init__(
        self,
        *,
        registry: TargetRegistry,
        backend: TerminalBackend,
        kubetmp_root: str | Path,
        separator: str,
        tab_prefix: str = "",
        credential_loader: CredentialLoader = Kubeconfig.load,
        lookup_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.kubetmp_root = Path(kubetmp_root).expanduser()
        self.separator = separator
        self.tab_prefix = tab_prefix
        self._load_credentials = credential_loader
        self._lookup_policy = lookup_policy or RetryPolicy()
        self._sleep = sleep

    def tab_title(self, entry: NamespaceEntry) -> str:
        return f"{self.tab_prefix}{entry.render(self.separator)}"

    def credential_path(self, tab_id: str) -> Path:
        return self.kubetmp_root / self.backend.identifier() / tab_id

    def _locate_new_tab(self, title: str) -> TabHandle:
        handle = self.backend.locate_tab_by_title(title)
        if handle is None:
            self.backend.refresh()
            raise RecoverableError(f"tab {title!r} not listed yet")
        return handle

    def _resolve_tab(self, title: str) -> tuple[str, TabHandle | None]:
        try:
            handle = run_with_retry(
                lambda: self._locate_new_tab(title),
                policy=self._lookup_policy,
                sleep=self._sleep,
            )
        except RecoverableError:
            identity = self.backend.locate_focused_tab_identity()
            if identity is None:
                raise KtkError(
                    f"Unable to identify the tab for {title}",
                    code=ExitCode.TERMINAL_ERROR,
                    hint="The terminal reported neither the new tab nor a focused tab.",
                ) from None
            logger.debug("Falling back to focused tab identity=%s", identity)
            return identity.tab, None
        return handle.tab_id, handle

    def bind(self, entry: NamespaceEntry, *, mode: TabMode = TabMode.NEW_TAB) -> BindResult:
        target = self.registry.require(entry.target_name)
        title = self.tab_title(entry)

        existing = self.backend.locate_tab_by_title(title)
        if existing is not None and self.backend.focus_tab(existing):
            logger.info("go to %s", entry.render(self.separator))
            return BindResult(title=title, tab_id=existing.tab_id, focused_existing=True)

        logger.info("launch %s", entry.render(self.separator))
        if mode is TabMode.NEW_TAB:
            self.backend.create_tab_running_shell(title)
        else:
            self.backend.retitle_current_tab(title)
        self.backend.recolor_tab(target.tab_color)

        tab_id, handle = self._resolve_tab(title)
        logger.debug("tab_id => %s", tab_id)

        kubeconfig = self._load_credentials(target.credential_locator)
        kubeconfig.set_active_namespace(entry.namespace)
        destination = kubeconfig.write(self.credential_path(tab_id))
        logger.debug("write new kubeconfig in %s", destination)

        if handle is not None:
            self.backend.focus_tab(handle)
        return BindResult(
            title=title,
            tab_id=tab_id,
            focused_existing=False,
            credential_path=destination,
        )


def focused_workdir_command(
    *,
    registry: TargetRegistry,
    backend: TerminalBackend,
    kubetmp_root: str | Path,
    credential_loader: CredentialLoader = Kubeconfig.load,
) -> str:
    """Shell snippet for the focused tab, used from shell rc files via eval."""
    identity = backend.locate_focused_tab_identity()
    if identity is None:
        raise KtkError("No focused tab.", code=ExitCode.NOT_FOUND)
    path = Path(kubetmp_root).expanduser() / str(identity)
    logger.debug("idpath : %s", identity)
    if not path.exists():
        logger.debug("file not found : %s", path)
        raise KtkError(f"No kubeconfig for this tab: {path}", code=ExitCode.NOT_FOUND)
    kubeconfig = credential_loader(str(path))
    target = registry.require(kubeconfig.active_cluster_name())
    return workdir_command(target, kubeconfig.active_namespace(), path)
