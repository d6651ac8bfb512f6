"""Kubeconfig file handle: read, select namespace, write a private copy."""

from __future__ import annotations

import logging as py_logging
import os
from pathlib import Path
from typing import Any, cast

import yaml
from typing_extensions import TypedDict

from ktk.errors import ExitCode, KtkError

logger = py_logging.getLogger(__name__)

PRIVATE_MODE = 0o600


class ContextFields(TypedDict, total=False):
    cluster: str
    user: str
    namespace: str


class Kubeconfig:
    def __init__(self, data: dict[str, Any], *, source: str | Path = "") -> None:
        self._data = data
        self.source = str(source)

    @classmethod
    def load(cls, path: str | Path) -> Kubeconfig:
        resolved = Path(path).expanduser()
        try:
            with resolved.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except OSError as exc:
            raise KtkError(
                f"Unable to read kubeconfig {resolved}",
                code=ExitCode.CREDENTIAL_ERROR,
                hint=str(exc),
            ) from exc
        except yaml.YAMLError as exc:
            raise KtkError(
                f"Error parsing file {resolved}",
                code=ExitCode.CREDENTIAL_ERROR,
                hint=str(exc),
            ) from exc
        if not isinstance(data, dict):
            raise KtkError(
                f"Error parsing file {resolved}",
                code=ExitCode.CREDENTIAL_ERROR,
                hint="A kubeconfig must be a YAML mapping.",
            )
        return cls(data, source=resolved)

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def _contexts(self) -> list[dict[str, Any]]:
        contexts = self._data.get("contexts") or []
        return [item for item in contexts if isinstance(item, dict)]

    def _active_entry(self) -> dict[str, Any] | None:
        contexts = self._contexts()
        current = self._data.get("current-context")
        for entry in contexts:
            if current and entry.get("name") == current:
                return entry
        return contexts[0] if contexts else None

    def _active_context(self) -> ContextFields:
        entry = self._active_entry()
        if entry is None:
            return ContextFields()
        context = entry.get("context")
        if not isinstance(context, dict):
            return ContextFields()
        return cast(ContextFields, context)

    def active_cluster_name(self) -> str:
        return str(self._active_context().get("cluster") or "")

    def active_namespace(self) -> str:
        return str(self._active_context().get("namespace") or "")

    def set_active_namespace(self, namespace: str) -> None:
        entry = self._active_entry()
        if entry is None:
            logger.warning("Kubeconfig has no context, namespace not set source=%s", self.source)
            return
        context = entry.get("context")
        if not isinstance(context, dict):
            context = {}
            entry["context"] = context
        context["namespace"] = namespace
        if entry.get("name"):
            self._data["current-context"] = entry["name"]

    def write(self, dest: str | Path) -> Path:
        target = Path(dest)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(self._data, handle, default_flow_style=False, sort_keys=False)
            os.chmod(target, PRIVATE_MODE)
        except OSError as exc:
            logger.error("Unable to write kubeconfig path=%s: %s", target, exc)
            raise KtkError(
                f"Unable to write kubeconfig {target}",
                code=ExitCode.FILESYSTEM_ERROR,
                hint=str(exc),
            ) from exc
        logger.debug("Wrote kubeconfig path=%s", target)
        return target
