from __future__ import annotations

import stat
from pathlib import Path

import pytest
import yaml

from ktk.binder import SessionBinder, TabMode, focused_workdir_command
from ktk.errors import ExitCode, KtkError
from ktk.kubeconfig import Kubeconfig
from ktk.retry import RetryPolicy
from ktk.targets import NamespaceEntry, TabColorSpec, Target, TargetRegistry
from ktk.terminal.base import TerminalBackend
from ktk.terminal.models import TabHandle


class FakeBackend(TerminalBackend):
    """In-memory terminal: tabs appear immediately unless ``lag`` refreshes say otherwise."""

    kind = "term"
    supports_color = True

    def __init__(self, tabs: list[tuple[str, str]] | None = None, *, focused: str | None = None) -> None:
        super().__init__(environ={})
        self.open_tabs = list(tabs or [])
        self.focused = focused
        self.events: list[tuple[str, str]] = []
        self.lag = 0
        self._next_id = 7
        self._visible: list[tuple[str, str]] = []

    def _load_snapshot(self) -> None:
        if self.lag:
            self.lag -= 1
            return
        self._visible = list(self.open_tabs)

    def _session_token(self) -> str:
        return "42"

    def _tabs(self) -> list[TabHandle]:
        return [TabHandle(tab_id=tab_id, title=title) for tab_id, title in self._visible]

    def _focused_tab_id(self) -> str | None:
        return self.focused

    def _create_tab(self, title: str) -> None:
        tab_id = str(self._next_id)
        self._next_id += 1
        self.open_tabs.append((tab_id, title))
        self.focused = tab_id
        self.events.append(("create", title))

    def _retitle(self, title: str) -> None:
        self.open_tabs = [(i, title if i == self.focused else t) for i, t in self.open_tabs]
        self.events.append(("retitle", title))

    def _recolor(self, color: TabColorSpec) -> None:
        self.events.append(("recolor", color.active_bg))

    def _focus(self, handle: TabHandle) -> None:
        self.focused = handle.tab_id
        self.events.append(("focus", handle.tab_id))


_KUBECONFIG = {
    "apiVersion": "v1",
    "contexts": [{"name": "admin@prod-web", "context": {"cluster": "prod-web", "user": "admin"}}],
    "current-context": "admin@prod-web",
}


@pytest.fixture
def registry(tmp_path: Path) -> TargetRegistry:
    source = tmp_path / "prod-web.yaml"
    source.write_text(yaml.safe_dump(_KUBECONFIG), encoding="utf-8")
    workdir = tmp_path / "work"
    (workdir / "east").mkdir(parents=True)
    return TargetRegistry(
        [
            Target(
                name="prod-web",
                credential_locator=str(source),
                workdir_root=str(workdir),
                tab_color=TabColorSpec(active_bg="#FF0000"),
            )
        ]
    )


def _binder(registry: TargetRegistry, backend: FakeBackend, kubetmp: Path) -> SessionBinder:
    return SessionBinder(
        registry=registry,
        backend=backend,
        kubetmp_root=kubetmp,
        separator="::",
        lookup_policy=RetryPolicy(max_attempts=3),
        sleep=lambda _: None,
    )


def test_new_tab_gets_title_color_and_private_kubeconfig(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")
    kubetmp = tmp_path / "kubetmp"

    result = _binder(registry, backend, kubetmp).bind(NamespaceEntry("east", "prod-web"))

    assert result.title == "east::prod-web"
    assert result.tab_id == "7"
    assert not result.focused_existing
    assert result.credential_path == kubetmp / "term-42" / "7"
    assert stat.S_IMODE(result.credential_path.stat().st_mode) == 0o600
    assert Kubeconfig.load(result.credential_path).active_namespace() == "east"
    assert backend.events == [
        ("create", "east::prod-web"),
        ("recolor", "#FF0000"),
        ("focus", "7"),
    ]


def test_existing_tab_is_focused_instead_of_duplicated(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh"), ("3", "east::prod-web")], focused="1")

    result = _binder(registry, backend, tmp_path / "kubetmp").bind(NamespaceEntry("east", "prod-web"))

    assert result.focused_existing
    assert result.tab_id == "3"
    assert backend.events == [("focus", "3")]
    assert not (tmp_path / "kubetmp").exists()


def test_second_bind_of_same_entry_creates_one_tab(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")
    binder = _binder(registry, backend, tmp_path / "kubetmp")

    binder.bind(NamespaceEntry("east", "prod-web"))
    binder.bind(NamespaceEntry("east", "prod-web"))

    assert [event for event in backend.events if event[0] == "create"] == [("create", "east::prod-web")]
    assert len(backend.open_tabs) == 2


def test_current_tab_mode_retitles_instead_of_creating(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")

    result = _binder(registry, backend, tmp_path / "kubetmp").bind(
        NamespaceEntry("east", "prod-web"), mode=TabMode.CURRENT_TAB
    )

    assert result.tab_id == "1"
    assert backend.events[0] == ("retitle", "east::prod-web")
    assert (tmp_path / "kubetmp" / "term-42" / "1").exists()


def test_slow_listing_falls_back_to_focused_tab(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")
    backend.refresh()
    backend.lag = 10

    result = _binder(registry, backend, tmp_path / "kubetmp").bind(NamespaceEntry("east", "prod-web"))

    assert result.tab_id == "7"
    assert ("focus", "7") not in backend.events


def test_unknown_cluster_is_a_config_inconsistency(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")

    with pytest.raises(KtkError) as exc:
        _binder(registry, backend, tmp_path / "kubetmp").bind(NamespaceEntry("east", "gone"))

    assert exc.value.code is ExitCode.CONFIG_INCONSISTENCY
    assert backend.events == []


def test_tab_prefix_is_part_of_the_title(registry: TargetRegistry, tmp_path: Path) -> None:
    binder = SessionBinder(
        registry=registry,
        backend=FakeBackend(),
        kubetmp_root=tmp_path,
        separator="::",
        tab_prefix="k8s ",
    )

    assert binder.tab_title(NamespaceEntry("east", "prod-web")) == "k8s east::prod-web"


def test_evaldir_for_bound_tab(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")
    kubetmp = tmp_path / "kubetmp"
    _binder(registry, backend, kubetmp).bind(NamespaceEntry("east", "prod-web"))

    command = focused_workdir_command(registry=registry, backend=backend, kubetmp_root=kubetmp)

    workdir = registry.require("prod-web").workdir_root
    assert command == f"export KUBECONFIG={kubetmp / 'term-42' / '7'} && cd {workdir}/east"


def test_evaldir_without_kubeconfig_is_not_found(registry: TargetRegistry, tmp_path: Path) -> None:
    backend = FakeBackend([("1", "zsh")], focused="1")

    with pytest.raises(KtkError) as exc:
        focused_workdir_command(registry=registry, backend=backend, kubetmp_root=tmp_path)

    assert exc.value.code is ExitCode.NOT_FOUND


def test_evaldir_without_focused_tab_is_not_found(registry: TargetRegistry, tmp_path: Path) -> None:
    with pytest.raises(KtkError) as exc:
        focused_workdir_command(registry=registry, backend=FakeBackend(), kubetmp_root=tmp_path)

    assert exc.value.code is ExitCode.NOT_FOUND
