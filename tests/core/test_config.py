#!/usr/bin/env python3
"""Tests for configuration loading and saving."""

import pytest

from music_catalog.core.config import (
    Config,
    LibraryConfig,
    create_default_config,
    get_config_path,
    get_data_dir,
    load_config,
    save_config,
)


def test_missing_config_creates_default_file(tmp_path):
    config_path = tmp_path / "config.toml"

    config = load_config(config_path)

    assert config_path.exists()
    assert config == Config()
    assert config_path.read_text(encoding="utf-8") == create_default_config()


def test_partial_config_keeps_defaults(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[library]\nbatch_size = 10\nsupported_formats = [".MP3", ".flac"]\n'
        "[duplicates]\nduration_tolerance = 5\n",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.library.batch_size == 10
    assert config.library.supported_formats == [".mp3", ".flac"]
    assert config.library.extraction_timeout == 30.0
    assert config.duplicates.duration_tolerance == 5.0
    assert config.duplicates.enabled is True
    assert config.logging.level == "INFO"


def test_invalid_toml_falls_back_to_defaults(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text("[library\nbatch_size = ", encoding="utf-8")

    assert load_config(config_path) == Config()


def test_invalid_values_raise(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[library]\nsupported_formats = ["mp3"]\n', encoding="utf-8")

    with pytest.raises(ValueError, match="supported formats"):
        load_config(config_path)


def test_library_config_validation():
    with pytest.raises(ValueError):
        LibraryConfig(batch_size=0).validate()
    with pytest.raises(ValueError):
        LibraryConfig(extraction_timeout=0).validate()
    LibraryConfig().validate()


def test_save_then_load_preserves_settings(tmp_path):
    config_path = tmp_path / "nested" / "config.toml"
    config = Config()
    config.library.batch_size = 25
    config.library.max_workers = 4
    config.duplicates.prefer_higher_bitrate = False
    config.logging.log_file = str(tmp_path / "catalog.log")

    assert save_config(config, config_path)
    loaded = load_config(config_path)

    assert loaded.library.batch_size == 25
    assert loaded.library.max_workers == 4
    assert loaded.duplicates.prefer_higher_bitrate is False
    assert loaded.logging.log_file == str(tmp_path / "catalog.log")


def test_directories_follow_xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.chdir(tmp_path)

    assert get_data_dir() == tmp_path / "data" / "music-catalog"
    assert get_config_path() == tmp_path / "config" / "music-catalog" / "config.toml"


def test_local_config_takes_precedence(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text("", encoding="utf-8")

    assert get_config_path() == tmp_path / "config.toml"
