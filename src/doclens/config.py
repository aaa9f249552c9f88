from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import logging
import tomllib

from doclens.exceptions import InputError

DEFAULT_CONFIG_NAME = "doclens.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

MERGE_WEIGHTS = ("body_length", "line_count", "section_count")

logger = logging.getLogger(__name__)


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("cannot read %s: %s", path, exc)
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("ignoring malformed %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def table_section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _coerce(value: TomlValue, default: object) -> object:
    if isinstance(default, bool):
        return _as_bool(value)
    if isinstance(default, int):
        return int(value)  # type: ignore[arg-type]
    if isinstance(default, float):
        return float(value)  # type: ignore[arg-type]
    if isinstance(default, tuple):
        return tuple(_normalize_name_list(value))
    if isinstance(default, dict):
        return dict(value) if isinstance(value, dict) else default
    if default is None or isinstance(default, str):
        return None if value is None else str(value)
    return value


def _from_table(cls, table: TomlTable, section: str):
    instance = cls()
    updates: dict[str, object] = {}
    for spec in fields(cls):
        if spec.name not in table:
            continue
        raw = table[spec.name]
        try:
            updates[spec.name] = _coerce(raw, getattr(instance, spec.name))
        except (TypeError, ValueError):
            logger.warning("ignoring invalid %s.%s=%r", cls.__name__, spec.name, raw)
    try:
        return replace(instance, **updates)
    except ValueError as exc:
        raise InputError(
            str(exc), phase="config", remedy=f"fix the [{section}] table in {DEFAULT_CONFIG_NAME}"
        ) from exc


@dataclass(frozen=True)
class ClusterConfig:
    max_clusters: int = 8
    similarity_threshold: float = 0.35
    salient_terms: int = 8
    merge_weight: str = "body_length"

    def __post_init__(self) -> None:
        if self.merge_weight not in MERGE_WEIGHTS:
            raise ValueError(
                f"merge_weight must be one of {', '.join(MERGE_WEIGHTS)}"
            )
        if self.max_clusters < 1:
            raise ValueError("max_clusters must be >= 1")


@dataclass(frozen=True)
class TemplateConfig:
    index_required_slots: int = 1
    default_max_subsections: int = 8


@dataclass(frozen=True)
class DriftConfig:
    severity_overrides: dict[str, str] = field(default_factory=dict)
    overview_markers: tuple[str, ...] = ("index", "overview", "getting-started")
    reference_markers: tuple[str, ...] = ("reference",)
    fuzzy_cutoff: float = 0.6


@dataclass(frozen=True)
class PipelineConfig:
    workers: int = 4
    min_lines: int = 400
    build_command: str | None = None
    build_timeout: int = 600


@dataclass(frozen=True)
class PathsConfig:
    docs_dir: str = "docs"
    manifest: str | None = None
    inventory: str | None = None
    templates: str | None = None


@dataclass(frozen=True)
class DoclensConfig:
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    templates: TemplateConfig = field(default_factory=TemplateConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @classmethod
    def from_table(cls, data: TomlTable) -> "DoclensConfig":
        return cls(
            cluster=_from_table(ClusterConfig, table_section(data, "cluster"), "cluster"),
            templates=_from_table(TemplateConfig, table_section(data, "templates"), "templates"),
            drift=_from_table(DriftConfig, table_section(data, "drift"), "drift"),
            pipeline=_from_table(PipelineConfig, table_section(data, "pipeline"), "pipeline"),
            paths=_from_table(PathsConfig, table_section(data, "paths"), "paths"),
        )


def doclens_config(
    root: Path | None = None, config_path: Path | None = None
) -> DoclensConfig:
    return DoclensConfig.from_table(load_config(root=root, config_path=config_path))


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged
