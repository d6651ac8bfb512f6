from __future__ import annotations

import json
import subprocess

import pytest

from ktk.errors import ExitCode, KtkError
from ktk.targets import TabColorSpec
from ktk.terminal import KittyBackend, TmuxBackend, WeztermBackend
from ktk.terminal.models import TabHandle


def _cp(returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class FakeRunner:
    """Answers listing commands from mutable fixtures and records every call."""

    def __init__(self, responses: dict[str, str]) -> None:
        self.responses = responses
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str], **_: object) -> subprocess.CompletedProcess:
        self.calls.append(cmd)
        for prefix, stdout in self.responses.items():
            if " ".join(cmd).startswith(prefix):
                return _cp(0, stdout)
        return _cp(0, "")

    def mutations(self, *skip: str) -> list[list[str]]:
        return [cmd for cmd in self.calls if not any(" ".join(cmd).startswith(s) for s in skip)]


def _kitty_ls(*titles: str, focused: int = 0) -> str:
    tabs = [
        {
            "id": index + 1,
            "title": title,
            "is_focused": index == focused,
            "windows": [{"id": 100 + index, "is_active_window": True}],
        }
        for index, title in enumerate(titles)
    ]
    return json.dumps([{"id": 1, "platform_window_id": 42, "is_focused": True, "tabs": tabs}])


def test_kitty_identifier_uses_env_token_and_platform_window() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh")})
    backend = KittyBackend(runner=runner, environ={"KTKENV": "work"})

    assert backend.identifier() == "kitty-work42"


def test_kitty_locates_tabs_and_focused_identity() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh", "east::prod", focused=1)})
    backend = KittyBackend(runner=runner, environ={})

    handle = backend.locate_tab_by_title("east::prod")

    assert handle == TabHandle(tab_id="2", title="east::prod", focus_id="101")
    assert backend.locate_tab_by_title("west::prod") is None
    assert str(backend.locate_focused_tab_identity()) == "kitty-42/2"


def test_kitty_create_recolor_and_focus_commands() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh")})
    backend = KittyBackend(runner=runner, environ={"SHELL": "/bin/zsh"})

    backend.create_tab_running_shell("east::prod")
    backend.recolor_tab(TabColorSpec(active_fg="#FFFFFF", active_bg="#FF0000"))
    assert backend.focus_tab(TabHandle(tab_id="1", title="zsh", focus_id="100"))

    assert runner.mutations("kitty @ ls") == [
        ["kitty", "@", "launch", "--type=tab", "--tab-title", "east::prod", "/bin/zsh"],
        [
            "kitty",
            "@",
            "set-tab-color",
            "active_bg=#FF0000",
            "active_fg=#FFFFFF",
            "inactive_bg=NONE",
            "inactive_fg=NONE",
        ],
        ["kitty", "@", "focus-window", "-m", "id:100"],
    ]


def test_focus_of_unknown_tab_reports_false() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh")})
    backend = KittyBackend(runner=runner, environ={})

    assert not backend.focus_tab(TabHandle(tab_id="99", title="gone"))
    assert runner.mutations("kitty @ ls") == []


def test_mutations_refresh_the_snapshot() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh")})
    backend = KittyBackend(runner=runner, environ={})
    backend.refresh()

    runner.responses["kitty @ ls"] = _kitty_ls("zsh", "east::prod")
    backend.create_tab_running_shell("east::prod")

    assert backend.locate_tab_by_title("east::prod") is not None


def test_failed_command_is_a_terminal_error() -> None:
    def runner(cmd: list[str], **_: object) -> subprocess.CompletedProcess:
        return _cp(1, stderr="remote control is disabled")

    with pytest.raises(KtkError) as exc:
        KittyBackend(runner=runner, environ={}).refresh()

    assert exc.value.code is ExitCode.TERMINAL_ERROR
    assert "remote control is disabled" in exc.value.hint


def test_missing_program_is_a_terminal_error() -> None:
    def runner(cmd: list[str], **_: object) -> subprocess.CompletedProcess:
        raise FileNotFoundError(cmd[0])

    with pytest.raises(KtkError) as exc:
        TmuxBackend(runner=runner, environ={}).tabs()

    assert exc.value.code is ExitCode.TERMINAL_ERROR


def _tmux_runner(*windows: str) -> FakeRunner:
    return FakeRunner(
        {
            "tmux display-message": "work\n",
            "tmux list-windows": "".join(f"{line}\n" for line in windows),
        }
    )


def test_tmux_identifier_and_tabs() -> None:
    runner = _tmux_runner("@1\t0\tzsh", "@4\t1\teast::prod")
    backend = TmuxBackend(runner=runner, environ={"KTKENV": "x"})

    assert backend.identifier() == "tmux-xwork"
    assert backend.locate_tab_by_title("east::prod") == TabHandle(tab_id="@4", title="east::prod")
    assert str(backend.locate_focused_tab_identity()) == "tmux-xwork/@4"


def test_tmux_commands_and_color_is_ignored() -> None:
    runner = _tmux_runner("@1\t1\tzsh")
    backend = TmuxBackend(runner=runner, environ={"SHELL": "/bin/zsh"})

    backend.create_tab_running_shell("east::prod")
    backend.retitle_current_tab("west::prod")
    backend.recolor_tab(TabColorSpec(active_bg="#FF0000"))
    backend.focus_tab(TabHandle(tab_id="@1", title="zsh"))

    assert runner.mutations("tmux display-message", "tmux list-windows") == [
        ["tmux", "new-window", "-n", "east::prod", "/bin/zsh"],
        ["tmux", "rename-window", "west::prod"],
        ["tmux", "select-window", "-t", "@1"],
    ]


_WEZTERM_PANES = json.dumps(
    [
        {"window_id": 3, "tab_id": 10, "pane_id": 20, "workspace": "default", "tab_title": "zsh"},
        {"window_id": 3, "tab_id": 10, "pane_id": 21, "workspace": "default", "tab_title": "zsh"},
        {"window_id": 3, "tab_id": 11, "pane_id": 22, "workspace": "default", "tab_title": "east::prod"},
        {"window_id": 5, "tab_id": 12, "pane_id": 23, "workspace": "other", "tab_title": "east::prod"},
    ]
)


def _wezterm_runner(spawn: str = "24\n") -> FakeRunner:
    return FakeRunner(
        {
            "wezterm cli list-clients": json.dumps([{"focused_pane_id": 22, "workspace": "default"}]),
            "wezterm cli list": _WEZTERM_PANES,
            "wezterm cli spawn": spawn,
        }
    )


def test_wezterm_tabs_are_deduplicated_within_focused_workspace() -> None:
    backend = WeztermBackend(runner=_wezterm_runner(), environ={})

    assert backend.tabs() == [
        TabHandle(tab_id="10", title="zsh"),
        TabHandle(tab_id="11", title="east::prod"),
    ]
    assert backend.identifier() == "wezterm-3"
    assert str(backend.locate_focused_tab_identity()) == "wezterm-3/11"


def test_wezterm_spawn_titles_the_new_pane_tab() -> None:
    runner = _wezterm_runner()
    backend = WeztermBackend(runner=runner, environ={"SHELL": "/bin/fish"})

    backend.create_tab_running_shell("west::prod")
    backend.focus_tab(TabHandle(tab_id="10", title="zsh"))

    assert runner.mutations("wezterm cli list") == [
        ["wezterm", "cli", "spawn", "--", "/bin/fish"],
        ["wezterm", "cli", "set-tab-title", "--pane-id=24", "west::prod"],
        ["wezterm", "cli", "activate-tab", "--tab-id=10"],
    ]


def test_wezterm_spawn_with_unexpected_output_is_a_terminal_error() -> None:
    backend = WeztermBackend(runner=_wezterm_runner(spawn="oops"), environ={})

    with pytest.raises(KtkError) as exc:
        backend.create_tab_running_shell("west::prod")

    assert exc.value.code is ExitCode.TERMINAL_ERROR


def test_recolor_without_configured_colors_runs_nothing() -> None:
    runner = FakeRunner({"kitty @ ls": _kitty_ls("zsh")})
    backend = KittyBackend(runner=runner, environ={})

    backend.recolor_tab(TabColorSpec())

    assert runner.mutations("kitty @ ls") == []
