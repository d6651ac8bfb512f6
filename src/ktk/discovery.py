"""Parallel namespace discovery across every enabled cluster target."""

from __future__ import annotations

import logging as py_logging
import math
import queue
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ktk.targets import NamespaceEntry, Target

logger = py_logging.getLogger(__name__)


class CredentialResolutionError(Exception):
    """The credential locator could not be turned into a usable client."""


class TransportFailure(Exception):
    """The cluster did not answer the namespace query in time or at all."""


class NamespaceLister(Protocol):
    def __call__(self, locator: str, timeout: float) -> list[str]: ...


def list_namespaces(locator: str, timeout: float) -> list[str]:
    """Query one cluster for its namespace names using its kubeconfig current context."""
    try:
        api_client = config.new_client_from_config(config_file=locator)
    except (ConfigException, OSError, yaml.YAMLError, TypeError, ValueError) as exc:
        raise CredentialResolutionError(str(exc) or type(exc).__name__) from exc

    try:
        response = client.CoreV1Api(api_client).list_namespace(
            timeout_seconds=max(1, math.ceil(timeout)),
            _request_timeout=timeout,
        )
    except ApiException as exc:
        raise TransportFailure(f"HTTP {exc.status} {exc.reason}") from exc
    except (urllib3.exceptions.HTTPError, OSError) as exc:
        raise TransportFailure(str(exc) or type(exc).__name__) from exc
    finally:
        api_client.close()

    names: list[str] = []
    for item in response.items or []:
        metadata = item.metadata
        if metadata is not None and metadata.name:
            names.append(metadata.name)
    return names


@dataclass(frozen=True)
class DiscoveryResult:
    entries: list[NamespaceEntry]
    targets_attempted: int
    complete: bool = True

    @property
    def entries_found(self) -> int:
        return len(self.entries)

    def is_empty(self) -> bool:
        return not self.entries

    def rendered(self, separator: str) -> list[str]:
        return [entry.render(separator) for entry in self.entries]


_PASS_COMPLETE = object()


class Discoverer:
    def __init__(self, *, separator: str, lister: NamespaceLister = list_namespaces) -> None:
        self.separator = separator
        self._lister = lister

    def _query(self, target: Target) -> list[NamespaceEntry]:
        try:
            names = self._lister(target.credential_locator, target.timeout)
        except CredentialResolutionError as exc:
            logger.warning(
                "Unable to load kubeconfig for cluster=%s locator=%s: %s",
                target.name,
                target.credential_locator,
                exc,
            )
            return []
        except TransportFailure as exc:
            logger.warning("%s is unreachable: %s", target.name, exc)
            return []
        except Exception:
            logger.warning("Namespace query failed for cluster=%s", target.name, exc_info=True)
            return []
        logger.debug("cluster=%s namespaces=%s", target.name, len(names))
        entries: list[NamespaceEntry] = []
        for name in names:
            if not name:
                continue
            if self.separator in name:
                logger.warning(
                    "Skipping namespace %s of %s: it contains the separator %r",
                    name,
                    target.name,
                    self.separator,
                )
                continue
            entries.append(NamespaceEntry(namespace=name, target_name=target.name))
        return entries

    def _worker(self, target: Target, channel: queue.Queue[object]) -> None:
        entries: list[NamespaceEntry] = []
        try:
            entries = self._query(target)
        finally:
            channel.put(entries)

    def discover(self, targets: Iterable[Target]) -> DiscoveryResult:
        enabled = [target for target in targets if target.enabled]
        channel: queue.Queue[object] = queue.Queue()
        collected: set[NamespaceEntry] = set()
        complete = False

        with ThreadPoolExecutor(
            max_workers=len(enabled) + 1,
            thread_name_prefix="ktk-discover",
        ) as pool:
            for target in enabled:
                pool.submit(self._worker, target, channel)
            pool.submit(channel.put, _PASS_COMPLETE)

            for _ in range(len(enabled) + 1):
                message = channel.get()
                if message is _PASS_COMPLETE:
                    complete = True
                    continue
                collected.update(message)  # type: ignore[arg-type]

        entries = sorted(collected, key=lambda entry: entry.render(self.separator))
        logger.info("%s namespaces found in %s clusters", len(entries), len(enabled))
        return DiscoveryResult(entries=entries, targets_attempted=len(enabled), complete=complete)
