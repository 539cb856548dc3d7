"""XDG directory management and configuration for podtrail."""

from __future__ import annotations

import json
import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from platformdirs import user_config_dir
from pydantic import BaseModel, ValidationError

from podtrail.classifier import DEFAULT_CONFIG
from podtrail.errors import ConfigError
from podtrail.models import ClassifierConfig, LogLevel

logger = logging.getLogger(__name__)


class LogParserSettings(BaseModel):
    """Classifier settings as stored: two JSON-serialized collections."""

    json_fields: str | None = None
    level_mapping: str | None = None


class AppConfig(BaseModel):
    """Application configuration persisted to disk."""

    kubectl: str = "kubectl"
    context: str | None = None
    namespace: str = "default"
    tail_lines: int = 1000
    batch_interval_ms: int = 50
    max_concurrent_streams: int = 20
    log_parser: LogParserSettings = LogParserSettings()

    @property
    def classifier(self) -> ClassifierConfig:
        return parse_classifier_config(self.log_parser.json_fields, self.log_parser.level_mapping)


def get_config_dir() -> Path:
    """Get the podtrail config directory.

    Respects PODTRAIL_CONFIG_DIR environment variable if set.
    """
    if override := os.environ.get("PODTRAIL_CONFIG_DIR"):
        return Path(override)
    return Path(user_config_dir("podtrail"))


def load_config(*, strict: bool = False) -> AppConfig:
    """Load application config from disk, returning defaults if not found.

    With `strict`, an unreadable or invalid file raises ConfigError instead.
    """
    path = get_config_dir() / "config.toml"
    if not path.exists():
        return AppConfig()
    try:
        data: dict[str, Any] = tomllib.loads(path.read_text())
        return AppConfig(**data)
    except (OSError, ValueError, TypeError, KeyError, ValidationError) as exc:
        if strict:
            msg = f"Invalid config file {path}: {exc}"
            raise ConfigError(msg) from exc
        logger.debug("ignoring unreadable config %s: %s", path, exc)
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Save application config to disk."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.toml"
    path.write_bytes(tomli_w.dumps(config.model_dump(exclude_none=True)).encode())


def parse_classifier_config(fields_raw: str | None, mapping_raw: str | None) -> ClassifierConfig:
    """Build a classifier config from its two serialized settings.

    The field list is used only if it is a JSON array of strings. The mapping is
    used only if it is a JSON object; its entries are merged over the default
    aliases. Anything else silently keeps the defaults.
    """
    json_level_fields = DEFAULT_CONFIG.json_level_fields
    if fields_raw:
        try:
            parsed = json.loads(fields_raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, list) and all(isinstance(f, str) for f in parsed):
            json_level_fields = tuple(parsed)

    level_mapping = dict(DEFAULT_CONFIG.level_mapping)
    if mapping_raw:
        try:
            parsed = json.loads(mapping_raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            level_mapping.update(_coerce_mapping(parsed))

    return ClassifierConfig(json_level_fields=json_level_fields, level_mapping=level_mapping)


def dump_classifier_config(config: ClassifierConfig) -> LogParserSettings:
    """Serialize a classifier config into its stored form."""
    return LogParserSettings(
        json_fields=json.dumps(list(config.json_level_fields)),
        level_mapping=json.dumps({k: v.value for k, v in config.level_mapping.items()}),
    )


def _coerce_mapping(data: dict[Any, Any]) -> dict[str, LogLevel]:
    """Keep alias entries whose target is a known level name."""
    result: dict[str, LogLevel] = {}
    for alias, target in data.items():
        if not isinstance(alias, str) or not isinstance(target, str):
            continue
        try:
            result[alias.lower()] = LogLevel(target.lower())
        except ValueError:
            continue
    return result
