"""Cluster targets, rendered namespace entries and the target registry."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from ktk.errors import ExitCode, KtkError

logger = py_logging.getLogger(__name__)

NO_COLOR = "NONE"
DEFAULT_SEPARATOR = "::"


@dataclass(frozen=True)
class TabColorSpec:
    active_fg: str = NO_COLOR
    active_bg: str = NO_COLOR
    inactive_fg: str = NO_COLOR
    inactive_bg: str = NO_COLOR

    def is_unset(self) -> bool:
        return all(
            value == NO_COLOR
            for value in (self.active_fg, self.active_bg, self.inactive_fg, self.inactive_bg)
        )


@dataclass(frozen=True)
class Target:
    name: str
    credential_locator: str
    workdir_root: str = ""
    namespace_prefix: str = ""
    enabled: bool = True
    timeout: float = 10.0
    tab_color: TabColorSpec = field(default_factory=TabColorSpec)

    def __post_init__(self) -> None:
        if not self.name:
            raise KtkError(
                "Cluster name is empty.",
                code=ExitCode.CONFIG_ERROR,
                hint="Give every [[clusters]] entry a non-empty name.",
            )
        if self.timeout <= 0:
            raise KtkError(
                f"Invalid timeout for cluster '{self.name}': {self.timeout}",
                code=ExitCode.CONFIG_ERROR,
                hint="Use a timeout greater than zero seconds.",
            )


@dataclass(frozen=True, order=True)
class NamespaceEntry:
    namespace: str
    target_name: str

    def render(self, separator: str) -> str:
        return f"{self.namespace}{separator}{self.target_name}"

    @classmethod
    def parse(cls, value: str, separator: str) -> NamespaceEntry:
        namespace, sep, target_name = value.rpartition(separator)
        if not sep or not namespace or not target_name:
            raise KtkError(
                f"Malformed selection: {value!r}",
                code=ExitCode.INVALID_ARGS,
                hint=f"Use the form namespace{separator}cluster.",
            )
        return cls(namespace=namespace, target_name=target_name)


def validate_separator(separator: str, names: Iterable[str]) -> str:
    if not separator:
        raise KtkError(
            "The namespace/cluster separator is empty.",
            code=ExitCode.CONFIG_ERROR,
            hint="Set global.separator, for example '::'.",
        )
    for name in names:
        if separator in name:
            raise KtkError(
                f"Cluster name '{name}' contains the separator '{separator}'.",
                code=ExitCode.CONFIG_ERROR,
                hint="Rename the cluster or choose another separator.",
            )
    return separator


class TargetRegistry:
    """Ordered, immutable collection of targets keyed by unique name."""

    def __init__(self, targets: Iterable[Target] = ()) -> None:
        ordered = tuple(targets)
        seen: set[str] = set()
        for target in ordered:
            if target.name in seen:
                raise KtkError(
                    f"Duplicate cluster name: {target.name}",
                    code=ExitCode.CONFIG_ERROR,
                    hint="Cluster names must be unique in the config file.",
                )
            seen.add(target.name)
        self._targets = ordered
        self._by_name = {target.name: target for target in ordered}

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def enabled(self) -> list[Target]:
        return [target for target in self._targets if target.enabled]

    def get(self, name: str) -> Target | None:
        return self._by_name.get(name)

    def require(self, name: str) -> Target:
        target = self.get(name)
        if target is None:
            logger.error("Selected cluster is missing from the registry: %s", name)
            raise KtkError(
                f"Unable to find the cluster name {name} in the configuration file.",
                code=ExitCode.CONFIG_INCONSISTENCY,
                hint="Rebuild the completion cache with --force.",
            )
        return target

    def counts(self) -> tuple[int, int]:
        active = sum(1 for target in self._targets if target.enabled)
        return active, len(self._targets) - active


def namespace_directory(target: Target, namespace: str) -> str:
    prefix = target.namespace_prefix
    if prefix and namespace.startswith(prefix):
        return namespace[len(prefix) :]
    return namespace


def workdir_command(target: Target, namespace: str, kubeconfig_path: str | Path) -> str:
    """Shell snippet exporting the tab kubeconfig and entering the namespace workdir."""
    root = target.workdir_root
    candidate = f"{root}/{namespace_directory(target, namespace)}"
    if Path(candidate).expanduser().exists():
        return f"export KUBECONFIG={kubeconfig_path} && cd {candidate}"
    return f"export KUBECONFIG={kubeconfig_path} && cd {root}"
