"""On-disk completion cache of rendered namespace entries."""

from __future__ import annotations

import logging as py_logging
import os
import re
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path

from ktk.discovery import Discoverer, DiscoveryResult
from ktk.errors import ExitCode, KtkError
from ktk.targets import Target

logger = py_logging.getLogger(__name__)

SENTINEL = ""


def _filesystem_error(action: str, path: Path, exc: OSError) -> KtkError:
    logger.error("Unable to %s %s: %s", action, path, exc)
    return KtkError(
        f"Unable to {action} {path}",
        code=ExitCode.FILESYSTEM_ERROR,
        hint=str(exc),
    )


class CompletionCache:
    """Flat list of ``namespace<sep>cluster`` lines closed by a blank sentinel line.

    The file is only ever replaced as a whole, so readers see either the
    previous pass or the new one. The trailing blank line is written last and
    marks a pass that ran to completion.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def mtime(self) -> float | None:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise _filesystem_error("read metadata of", self.path, exc) from exc

    def exists(self) -> bool:
        return self.mtime() is not None

    def is_complete(self) -> bool:
        if not self.exists():
            return False
        lines = self.read()
        return bool(lines) and lines[-1] == SENTINEL

    def is_stale(self, max_age: float, config_mtime: float, *, now: float | None = None) -> bool:
        cache_mtime = self.mtime()
        if cache_mtime is None:
            logger.debug("Completion cache missing path=%s", self.path)
            return True
        current = time.time() if now is None else now
        if current - cache_mtime > max_age:
            logger.debug("Completion cache older than maxage=%s path=%s", max_age, self.path)
            return True
        if config_mtime > cache_mtime:
            logger.debug("Completion cache older than config path=%s", self.path)
            return True
        if not self.is_complete():
            logger.debug("Completion cache has no end-of-pass marker path=%s", self.path)
            return True
        return False

    def write(self, lines: Iterable[str]) -> Path:
        payload = "".join(f"{line}\n" for line in lines) + f"{SENTINEL}\n"
        parent = self.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=parent)
        except OSError as exc:
            raise _filesystem_error("create", self.path, exc) from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(temp_name, self.path)
        except OSError as exc:
            try:
                os.unlink(temp_name)
            except OSError:
                logger.debug("Temporary cache file already gone path=%s", temp_name)
            raise _filesystem_error("write", self.path, exc) from exc
        return self.path

    def rebuild(self, targets: Iterable[Target], discoverer: Discoverer) -> DiscoveryResult:
        result = discoverer.discover(targets)
        if not result.complete:
            logger.warning("discovery pass did not complete; keeping %s", self.path)
            return result
        if result.is_empty():
            logger.warning("no cluster is reachable; keeping %s", self.path)
            return result
        logger.info("update %s", self.path)
        self.write(result.rendered(discoverer.separator))
        return result

    def read(self) -> list[str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise _filesystem_error("read", self.path, exc) from exc
        return text.splitlines()


def filter_entries(lines: Iterable[str], pattern: str) -> list[str]:
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise KtkError(
            f"Invalid subfilter expression: {pattern}",
            code=ExitCode.INVALID_ARGS,
            hint=str(exc),
        ) from exc
    return [line for line in lines if line and compiled.search(line)]


def namespaces_for_target(lines: Iterable[str], separator: str, target_name: str) -> list[str]:
    suffix = f"{separator}{target_name}"
    return [line[: -len(suffix)] for line in lines if line and line.endswith(suffix)]
