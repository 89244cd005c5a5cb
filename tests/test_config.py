"""Tests for settings loading and the default config file."""

import tomllib
from pathlib import Path

import pytest
from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict

from decklist.config import (
    Settings,
    default_config_text,
    load_settings,
    write_default_config,
)


def _settings_from(path: Path, **overrides: object) -> Settings:
    class FileSettings(Settings):
        model_config = SettingsConfigDict(toml_file=path)

    return FileSettings(**overrides)  # type: ignore[arg-type]


class TestSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        config = _settings_from(tmp_path / "missing.toml")

        assert config.use_database is True
        assert config.database_age_limit == 7
        assert config.database_num == 3
        assert config.collection_path is None
        assert config.fuzzy_max_ratio == 0.2

    def test_reads_toml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text(
            'use_database = false\ndatabase_age_limit = 14\ncollection_path = "/cards.csv"\n',
            encoding="utf-8",
        )

        config = _settings_from(path)

        assert config.use_database is False
        assert config.database_age_limit == 14
        assert config.collection_path == Path("/cards.csv")

    def test_environment_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.toml"
        path.write_text("database_num = 5\n", encoding="utf-8")
        monkeypatch.setenv("DECKLIST_DATABASE_NUM", "1")

        assert _settings_from(path).database_num == 1

    def test_rejects_negative_values(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            _settings_from(tmp_path / "missing.toml", database_num=-1)

    def test_unreadable_file_falls_back(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A broken config file is ignored rather than stopping the program."""
        path = tmp_path / "config.toml"
        path.write_text("database_num = [unterminated\n", encoding="utf-8")
        monkeypatch.setitem(Settings.model_config, "toml_file", path)

        config = load_settings()

        assert config.database_num == 3

    def test_invalid_value_in_file_falls_back(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.toml"
        path.write_text("database_num = -1\ndatabase_age_limit = 14\n", encoding="utf-8")
        monkeypatch.setitem(Settings.model_config, "toml_file", path)

        config = load_settings()

        assert config.database_num == 3
        assert config.database_age_limit == 7

    def test_invalid_override_still_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setitem(Settings.model_config, "toml_file", tmp_path / "missing.toml")

        with pytest.raises(ValidationError):
            load_settings(database_num=-1)


class TestDefaultConfig:
    def test_writes_parseable_defaults(self, tmp_path: Path) -> None:
        path = write_default_config(tmp_path / "decklist" / "config.toml")

        data = tomllib.loads(path.read_text(encoding="utf-8"))

        assert data["use_database"] is True
        assert data["database_age_limit"] == 7
        assert data["database_num"] == 3
        assert "database_path" in data

    def test_round_trips_through_settings(self, tmp_path: Path) -> None:
        path = write_default_config(tmp_path / "config.toml")

        config = _settings_from(path)

        assert config.database_path == Settings.model_construct().database_path

    def test_does_not_overwrite(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("database_num = 9\n", encoding="utf-8")

        with pytest.raises(FileExistsError):
            write_default_config(path)

        assert path.read_text(encoding="utf-8") == "database_num = 9\n"

    def test_includes_collection_path_when_set(self, tmp_path: Path) -> None:
        config = _settings_from(tmp_path / "missing.toml", collection_path=tmp_path / "c.csv")

        text = default_config_text(config)

        assert tomllib.loads(text)["collection_path"] == str(tmp_path / "c.csv")
