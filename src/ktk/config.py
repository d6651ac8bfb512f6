"""TOML config loading into validated settings and the target registry."""

from __future__ import annotations

import logging as py_logging
import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from ktk.errors import ExitCode, KtkError
from ktk.targets import (
    DEFAULT_SEPARATOR,
    NO_COLOR,
    TabColorSpec,
    Target,
    TargetRegistry,
    validate_separator,
)

logger = py_logging.getLogger(__name__)

CONFIG_PATH_ENV = "KTKONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/ktk/config.toml")
DEFAULT_KUBETMP = "/tmp/ktk"
DEFAULT_COMPLETION_FILE = "/tmp/tkcomplete"
DEFAULT_MAXAGE = 3600
DEFAULT_TIMEOUT = 10.0
WAIT_TIMEOUT = 60.0


def _channel(value: int) -> float:
    scaled = value / 255
    if scaled <= 0.03928:
        return scaled / 12.92
    return ((scaled + 0.055) / 1.055) ** 2.4


def _parse_hex(color: str) -> tuple[int, int, int] | None:
    raw = color.strip().lstrip("#")
    if len(raw) == 3:
        raw = "".join(ch * 2 for ch in raw)
    if len(raw) != 6:
        return None
    try:
        return int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16)
    except ValueError:
        return None


def relative_luminance(color: str) -> float | None:
    rgb = _parse_hex(color)
    if rgb is None:
        return None
    red, green, blue = (_channel(item) for item in rgb)
    return 0.2126 * red + 0.7152 * green + 0.0722 * blue


def contrast_ratio(first: str, second: str) -> float:
    lum_a = relative_luminance(first) or 0.0
    lum_b = relative_luminance(second) or 0.0
    light, dark = max(lum_a, lum_b), min(lum_a, lum_b)
    return (light + 0.05) / (dark + 0.05)


def contrasting_fg(background: str, *, active: bool) -> str:
    """Pick a readable foreground for a tab background (WCAG large-text ratio 3:1)."""
    light, dark = ("#FFFFFF", "#000000") if active else ("#DDDDDD", "#222222")
    if relative_luminance(background) is None:
        return NO_COLOR
    if contrast_ratio(background, light) >= 3.0:
        return light
    return dark


class CompletionSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file: str = DEFAULT_COMPLETION_FILE
    maxage: int = Field(default=DEFAULT_MAXAGE, ge=0)


class GlobalSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kubetmp: str = DEFAULT_KUBETMP
    separator: str = DEFAULT_SEPARATOR
    tabprefix: str = ""
    completion: CompletionSection = Field(default_factory=CompletionSection)


class KubeconfigSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = ""
    file: str = ""
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)


class WorkdirSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = ""
    subdir: str = ""
    prefixns: str = ""


class TabSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    active_bg: str = NO_COLOR
    active_fg: str = ""
    inactive_bg: str = NO_COLOR
    inactive_fg: str = ""

    def to_spec(self) -> TabColorSpec:
        active_fg = self.active_fg or contrasting_fg(self.active_bg, active=True)
        inactive_fg = self.inactive_fg or contrasting_fg(self.inactive_bg, active=False)
        return TabColorSpec(
            active_fg=active_fg,
            active_bg=self.active_bg,
            inactive_fg=inactive_fg,
            inactive_bg=self.inactive_bg,
        )


class ClusterSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    disabled: bool = False
    kubeconfig: KubeconfigSection = Field(default_factory=KubeconfigSection)
    workdir: WorkdirSection = Field(default_factory=WorkdirSection)
    tab: TabSection = Field(default_factory=TabSection)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("cluster name must not be blank")
        return stripped


def _join(path: str, leaf: str) -> str:
    if not path:
        return leaf
    if not leaf:
        return path
    return f"{path.rstrip('/')}/{leaf}"


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    global_: GlobalSection = Field(default_factory=GlobalSection, alias="global")
    clusters: list[ClusterSection] = Field(default_factory=list)
    config_path: Path = Path()
    wait: bool = False

    @model_validator(mode="after")
    def _check_names(self) -> Settings:
        names = [cluster.name for cluster in self.clusters]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate cluster names: {', '.join(duplicates)}")
        if not self.global_.separator:
            raise ValueError("global.separator must not be empty")
        return self

    @property
    def kubetmp(self) -> Path:
        return Path(self.global_.kubetmp).expanduser()

    @property
    def separator(self) -> str:
        return self.global_.separator

    @property
    def tabprefix(self) -> str:
        return self.global_.tabprefix

    @property
    def completion_file(self) -> Path:
        return Path(self.global_.completion.file).expanduser()

    @property
    def maxage(self) -> int:
        return self.global_.completion.maxage

    def registry(self) -> TargetRegistry:
        validate_separator(self.separator, (cluster.name for cluster in self.clusters))
        targets = []
        for cluster in self.clusters:
            locator = _join(cluster.kubeconfig.path, cluster.kubeconfig.file)
            targets.append(
                Target(
                    name=cluster.name,
                    credential_locator=str(Path(locator).expanduser()) if locator else "",
                    workdir_root=_join(cluster.workdir.path, cluster.workdir.subdir),
                    namespace_prefix=cluster.workdir.prefixns,
                    enabled=not cluster.disabled,
                    timeout=WAIT_TIMEOUT if self.wait else cluster.kubeconfig.timeout,
                    tab_color=cluster.tab.to_spec(),
                )
            )
        return TargetRegistry(targets)

    def config_mtime(self) -> float:
        try:
            return self.config_path.stat().st_mtime
        except OSError as exc:
            logger.error("Unable to read config metadata path=%s: %s", self.config_path, exc)
            raise KtkError(
                f"Unable to read metadata of {self.config_path}",
                code=ExitCode.FILESYSTEM_ERROR,
                hint=str(exc),
            ) from exc


def get_config_path(path: str | Path | None = None, environ: dict[str, str] | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    env = os.environ if environ is None else environ
    override = env.get(CONFIG_PATH_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location or '<root>'}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def load_settings(
    path: str | Path | None = None,
    *,
    wait: bool = False,
    environ: dict[str, str] | None = None,
) -> Settings:
    resolved = get_config_path(path, environ)
    logger.debug("Loading config path=%s", resolved)
    if not resolved.exists():
        raise KtkError(
            f"Config file missing: {resolved}",
            code=ExitCode.CONFIG_ERROR,
            hint=f"Create it or point {CONFIG_PATH_ENV} / --config to an existing file.",
        )
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise KtkError(
            f"Unable to load config file {resolved}",
            code=ExitCode.CONFIG_ERROR,
            hint=str(exc),
        ) from exc
    except OSError as exc:
        raise KtkError(
            f"Unable to read config file {resolved}",
            code=ExitCode.CONFIG_ERROR,
            hint=str(exc),
        ) from exc

    try:
        settings = Settings.model_validate({**raw, "config_path": resolved, "wait": wait})
    except ValidationError as exc:
        logger.error("Invalid config file path=%s errors=%s", resolved, exc.error_count())
        raise KtkError(
            f"Invalid config file {resolved}",
            code=ExitCode.CONFIG_ERROR,
            hint=_describe(exc),
        ) from exc
    logger.debug(
        "Loaded config clusters=%s separator=%r completion=%s",
        len(settings.clusters),
        settings.separator,
        settings.completion_file,
    )
    return settings
