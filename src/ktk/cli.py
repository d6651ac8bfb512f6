"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TextIO

from ktk import __version__
from ktk.binder import SessionBinder, TabMode, focused_workdir_command
from ktk.cache import CompletionCache, filter_entries, namespaces_for_target
from ktk.config import Settings, load_settings
from ktk.discovery import Discoverer, NamespaceLister, list_namespaces
from ktk.errors import ExitCode, KtkError, user_facing_error
from ktk.kubeconfig import Kubeconfig
from ktk.logging import configure_logging, default_log_path
from ktk.picker import FzfPicker, Picker
from ktk.targets import NamespaceEntry, TargetRegistry
from ktk.terminal import detect_backend
from ktk.terminal.base import SubprocessRunner, TerminalBackend

SUBFILTER_ENV = "KTKSUBFILTER"

_EPILOG = """Examples:
  $ ktk kube-system::production
  $ ktk -t -C kube-system
"""

BackendFactory = Callable[[], TerminalBackend]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ktk",
        usage="ktk [OPTIONS] [namespace::cluster]",
        description=(
            "ktk searches the namespace for you and loads it directly in a terminal tab, "
            "opened in the working directory of the cluster."
        ),
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("namespace", nargs="?", default="", help="Namespace to operate on")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        metavar="FILE",
        help="Sets a custom config file (default: $KTKONFIG or ~/.config/ktk/config.toml)",
    )
    scan = parser.add_mutually_exclusive_group()
    scan.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Force reconstruct cache of namespace",
    )
    scan.add_argument(
        "-n",
        "--noscan",
        action="store_true",
        help="Do not reconstruct cache of namespace",
    )
    parser.add_argument(
        "-C",
        "--cluster",
        action="store_true",
        help='Search only in current cluster like kubens (alias kubens="ktk -t -C")',
    )
    listing = parser.add_mutually_exclusive_group()
    listing.add_argument(
        "-l",
        "--list-clusters-colors",
        action="store_true",
        help="List kube clusters with tabs colors in config file",
    )
    listing.add_argument(
        "-L",
        "--list-clusters-names",
        action="store_true",
        help="List kube clusters names in config file",
    )
    parser.add_argument(
        "-s",
        "--subfilter",
        default=None,
        help=f"Pre-filter on a subset of value with a regexp (default: ${SUBFILTER_ENV} or .*)",
    )
    parser.add_argument(
        "-w",
        "--wait",
        action="store_true",
        help="Raise every cluster timeout to 60s for this run",
    )
    parser.add_argument(
        "-t",
        "--tab",
        action="store_true",
        help="Change namespace without change tab (like kubens)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Record debug event in log file")
    parser.add_argument(
        "-e",
        "--evaldir",
        action="store_true",
        help="Show in stdout workdir of current cluster",
    )
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def validate_namespace(namespace: argparse.Namespace) -> None:
    if namespace.evaldir:
        conflicting = [
            flag
            for flag, active in (
                ("namespace", bool(namespace.namespace)),
                ("--force", namespace.force),
                ("--noscan", namespace.noscan),
                ("--tab", namespace.tab),
                ("--wait", namespace.wait),
                ("--cluster", namespace.cluster),
            )
            if active
        ]
        if conflicting:
            raise KtkError(
                "--evaldir cannot be combined with other actions.",
                code=ExitCode.INVALID_ARGS,
                hint=f"Remove {', '.join(conflicting)}.",
            )
    if namespace.wait and namespace.noscan:
        raise KtkError(
            "--wait has no effect with --noscan.",
            code=ExitCode.INVALID_ARGS,
            hint="Use one of --wait or --noscan.",
        )


def list_clusters(registry: TargetRegistry, *, colors: bool, out: TextIO) -> None:
    if not colors:
        for target in registry.enabled():
            print(target.name, file=out)
        return
    active, inactive = registry.counts()
    for enabled, heading, count in (
        (True, "List of active clusters:", active),
        (False, "List of inactive clusters:", inactive),
    ):
        if not count:
            continue
        print(heading, file=out)
        index = 0
        for target in registry:
            if target.enabled != enabled:
                continue
            index += 1
            color = target.tab_color
            print(
                f"{index:>4} - {target.name} -> active: {color.active_bg}/{color.active_fg}"
                f" inactive: {color.inactive_bg}/{color.inactive_fg}",
                file=out,
            )


def current_cluster(environ: Mapping[str, str]) -> str:
    path = environ.get("KUBECONFIG", "").strip()
    if not path:
        raise KtkError(
            "No kubeconfig",
            code=ExitCode.NOT_FOUND,
            hint="Export KUBECONFIG or run ktk without --cluster.",
        )
    return Kubeconfig.load(path).active_cluster_name()


def refresh_cache(
    settings: Settings,
    registry: TargetRegistry,
    cache: CompletionCache,
    *,
    force: bool,
    lister: NamespaceLister,
) -> None:
    logger = py_logging.getLogger("ktk")
    if force or cache.is_stale(settings.maxage, settings.config_mtime()):
        logger.debug("Update completion file %s", cache.path)
        cache.rebuild(registry, Discoverer(separator=settings.separator, lister=lister))


def require_cache(cache: CompletionCache) -> None:
    if not cache.exists():
        raise KtkError(
            f"Completion cache missing: {cache.path}",
            code=ExitCode.NOT_FOUND,
            hint="Run ktk --force once a cluster is reachable.",
        )


def choose_entry(
    namespace: argparse.Namespace,
    settings: Settings,
    cache: CompletionCache,
    *,
    environ: Mapping[str, str],
    picker: Picker,
) -> str:
    lines = cache.read()
    query = namespace.namespace
    if namespace.cluster:
        cluster = current_cluster(environ)
        candidates = namespaces_for_target(lines, settings.separator, cluster)
        choice = picker(candidates, query)
        return f"{choice}{settings.separator}{cluster}" if choice else ""
    pattern = namespace.subfilter or environ.get(SUBFILTER_ENV, "") or ".*"
    return picker(filter_entries(lines, pattern), query)


def run_cli_flow(
    namespace: argparse.Namespace,
    *,
    environ: Mapping[str, str],
    backend_factory: BackendFactory,
    picker: Picker,
    lister: NamespaceLister,
    out: TextIO,
) -> int:
    validate_namespace(namespace)
    logger = py_logging.getLogger("ktk")
    settings = load_settings(namespace.config, wait=namespace.wait, environ=dict(environ))
    registry = settings.registry()

    if namespace.list_clusters_names or namespace.list_clusters_colors:
        list_clusters(registry, colors=namespace.list_clusters_colors, out=out)
        return int(ExitCode.SUCCESS)

    if namespace.evaldir:
        try:
            command = focused_workdir_command(
                registry=registry,
                backend=backend_factory(),
                kubetmp_root=settings.kubetmp,
            )
        except KtkError as exc:
            if exc.code is ExitCode.NOT_FOUND:
                return int(exc.code)
            raise
        print(command, file=out)
        return int(ExitCode.SUCCESS)

    backend = backend_factory()
    cache = CompletionCache(settings.completion_file)
    if not namespace.noscan:
        refresh_cache(settings, registry, cache, force=namespace.force, lister=lister)
    require_cache(cache)

    choice = choose_entry(namespace, settings, cache, environ=environ, picker=picker)
    if not choice:
        logger.debug("Empty choice")
        return int(ExitCode.CANCELLED)

    binder = SessionBinder(
        registry=registry,
        backend=backend,
        kubetmp_root=settings.kubetmp,
        separator=settings.separator,
        tab_prefix=settings.tabprefix,
    )
    mode = TabMode.CURRENT_TAB if namespace.tab else TabMode.NEW_TAB
    binder.bind(NamespaceEntry.parse(choice, settings.separator), mode=mode)
    return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    runner: SubprocessRunner = subprocess.run,
    backend_factory: BackendFactory | None = None,
    picker: Picker | None = None,
    lister: NamespaceLister = list_namespaces,
    out: TextIO | None = None,
) -> int:
    env = os.environ if environ is None else environ
    log_path = default_log_path(dict(env))
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level="DEBUG" if namespace.debug else "WARN", log_file=log_path)

    try:
        return run_cli_flow(
            namespace,
            environ=env,
            backend_factory=backend_factory or (lambda: detect_backend(environ=env, runner=runner)),
            picker=picker or FzfPicker(runner=runner),
            lister=lister,
            out=out or sys.stdout,
        )
    except KtkError as exc:
        logger.error(
            "Handled KtkError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(
            user_facing_error("Unexpected runtime failure", hint=f"Inspect logs: {log_path}"),
            file=sys.stderr,
        )
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
