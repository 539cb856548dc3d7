"""Tests for configuration loading and classifier settings."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from podtrail.classifier import DEFAULT_CONFIG
from podtrail.config import (
    AppConfig,
    LogParserSettings,
    dump_classifier_config,
    get_config_dir,
    load_config,
    parse_classifier_config,
    save_config,
)
from podtrail.errors import ConfigError
from podtrail.models import LogLevel

if TYPE_CHECKING:
    from pathlib import Path


class TestConfigDir:
    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PODTRAIL_CONFIG_DIR", str(tmp_path))
        assert get_config_dir() == tmp_path

    def test_default_mentions_app_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PODTRAIL_CONFIG_DIR", raising=False)
        assert "podtrail" in str(get_config_dir())


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        with patch("podtrail.config.get_config_dir", return_value=tmp_path):
            config = load_config()
        assert config == AppConfig()
        assert config.tail_lines == 1000
        assert config.max_concurrent_streams == 20

    def test_roundtrip(self, tmp_path: Path) -> None:
        with patch("podtrail.config.get_config_dir", return_value=tmp_path):
            config = AppConfig(
                namespace="prod",
                context="kind-dev",
                tail_lines=200,
                log_parser=LogParserSettings(json_fields='["lvl"]'),
            )
            save_config(config)
            loaded = load_config()
        assert loaded.namespace == "prod"
        assert loaded.context == "kind-dev"
        assert loaded.tail_lines == 200
        assert loaded.classifier.json_level_fields == ("lvl",)

    def test_invalid_file_gives_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.toml").write_text("tail_lines = 'many'\n")
        with patch("podtrail.config.get_config_dir", return_value=tmp_path):
            assert load_config() == AppConfig()

    def test_invalid_toml_strict_raises(self, tmp_path: Path) -> None:
        (tmp_path / "config.toml").write_text("this is [not toml\n")
        with patch("podtrail.config.get_config_dir", return_value=tmp_path), pytest.raises(ConfigError):
            load_config(strict=True)


class TestParseClassifierConfig:
    def test_none_gives_default(self) -> None:
        config = parse_classifier_config(None, None)
        assert config.json_level_fields == DEFAULT_CONFIG.json_level_fields
        assert config.level_mapping == DEFAULT_CONFIG.level_mapping

    @pytest.mark.parametrize("raw", ["not json", '{"a": 1}', '["ok", 3]', "42", '"level"'])
    def test_invalid_field_list_falls_back(self, raw: str) -> None:
        assert parse_classifier_config(raw, None).json_level_fields == DEFAULT_CONFIG.json_level_fields

    @pytest.mark.parametrize("raw", ["not json", '["error"]', "null", "7"])
    def test_invalid_mapping_falls_back(self, raw: str) -> None:
        assert parse_classifier_config(None, raw).level_mapping == DEFAULT_CONFIG.level_mapping

    def test_mapping_merged_over_defaults(self) -> None:
        config = parse_classifier_config(None, '{"OOPS": "ERROR", "warn": "info"}')
        assert config.level_mapping["oops"] == LogLevel.ERROR
        assert config.level_mapping["warn"] == LogLevel.INFO
        assert config.level_mapping["fatal"] == LogLevel.ERROR

    def test_unknown_targets_ignored(self) -> None:
        config = parse_classifier_config(None, '{"boom": "catastrophic", "n": 5}')
        assert "boom" not in config.level_mapping
        assert "n" not in config.level_mapping

    def test_dump_roundtrip(self) -> None:
        config = parse_classifier_config('["severity"]', '{"oops": "warn"}')
        stored = dump_classifier_config(config)
        again = parse_classifier_config(stored.json_fields, stored.level_mapping)
        assert again == config
