# tests/unit/core/test_config.py
"""Tests for stage configuration and loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from parastage.core.config import DEFAULT_MAX_CONCURRENCY, StageConfig, StageHooks, load_stage_config


class TestStageConfig:
    def test_defaults(self) -> None:
        config = StageConfig()

        assert config.max_concurrency == DEFAULT_MAX_CONCURRENCY == 16
        assert config.preserve_order is False
        assert config.name == "parastage"

    @pytest.mark.parametrize("value", [0, -3])
    def test_max_concurrency_must_be_positive(self, value: int) -> None:
        with pytest.raises(ValidationError):
            StageConfig(max_concurrency=value)

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StageConfig(max_concurency=4)  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        config = StageConfig()

        with pytest.raises(ValidationError):
            config.max_concurrency = 2  # type: ignore[misc]

    def test_blank_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="blank"):
            StageConfig(name="   ")

    def test_name_is_stripped(self) -> None:
        assert StageConfig(name=" enrich ").name == "enrich"


class TestStageHooks:
    def test_hooks_default_to_none(self) -> None:
        hooks = StageHooks()

        assert hooks.finalize is None
        assert hooks.flush is None


class TestLoadStageConfig:
    def test_defaults_without_sources(self) -> None:
        assert load_stage_config() == StageConfig()

    def test_loads_from_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.toml"
        config_file.write_text('max_concurrency = 8\npreserve_order = true\nname = "enrich"\n')

        config = load_stage_config(config_file)

        assert config.max_concurrency == 8
        assert config.preserve_order is True
        assert config.name == "enrich"

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "settings.toml"
        config_file.write_text("max_concurrency = 8\n")
        monkeypatch.setenv("PARASTAGE_MAX_CONCURRENCY", "3")

        config = load_stage_config(config_file)

        assert config.max_concurrency == 3

    def test_keyword_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PARASTAGE_MAX_CONCURRENCY", "3")

        config = load_stage_config(max_concurrency=5, preserve_order=True)

        assert config.max_concurrency == 5
        assert config.preserve_order is True

    def test_invalid_environment_value_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PARASTAGE_MAX_CONCURRENCY", "0")

        with pytest.raises(ValidationError):
            load_stage_config()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_stage_config(tmp_path / "missing.yaml")
