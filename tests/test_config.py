"""Tests for fyi.config."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from unittest.mock import patch

import pytest

import fyi.config as config_mod
from fyi.config import (
    API_KEY_VAR,
    DEFAULT_CONFIG,
    _deep_merge,
    build_capabilities,
    build_keymap,
    dump_default_config,
    load_api_key,
    load_config,
)
from fyi.model import Capabilities, KeyBinding


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a real ~/.config/fyi/config.toml out of the tests
    monkeypatch.setattr(config_mod, "_DEFAULT_PATH", tmp_path / "absent.toml")


class TestLoadConfigDefaults:
    def test_defaults_returned_when_no_file(self) -> None:
        cfg = load_config(None)
        assert cfg["fast_interval"] == 1.0
        assert cfg["slow_interval"] == 60.0
        assert cfg["features"] == {"metrics": True, "weather": True}
        assert cfg["weather"]["location"] == "auto:ip"

    def test_all_default_keys_present(self) -> None:
        cfg = load_config(None)
        assert set(cfg.keys()) == set(DEFAULT_CONFIG.keys())

    def test_default_location_used(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        default = tmp_path / "config.toml"
        default.write_text('header = "Hello"\n')
        monkeypatch.setattr(config_mod, "_DEFAULT_PATH", default)
        assert load_config(None)["header"] == "Hello"

    def test_invalid_default_file_falls_back(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        default = tmp_path / "config.toml"
        default.write_text("not [valid\n")
        monkeypatch.setattr(config_mod, "_DEFAULT_PATH", default)
        assert load_config(None) == DEFAULT_CONFIG
        assert "ignoring invalid TOML" in capsys.readouterr().err


class TestTomlOverlay:
    def test_overrides_feature(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("[features]\nweather = false\n")
        cfg = load_config(toml_file)
        assert cfg["features"]["weather"] is False
        # Other features remain at defaults
        assert cfg["features"]["metrics"] is True

    def test_overrides_weather_endpoint(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text('[weather]\nlocation = "London"\n')
        cfg = load_config(toml_file)
        assert cfg["weather"]["location"] == "London"
        assert cfg["weather"]["base_url"] == DEFAULT_CONFIG["weather"]["base_url"]

    def test_overrides_scalar(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("slow_interval = 300.0\n")
        cfg = load_config(toml_file)
        assert cfg["slow_interval"] == 300.0
        assert cfg["fast_interval"] == 1.0


class TestExplicitPath:
    def test_missing_explicit_path_errors(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(tmp_path / "nonexistent.toml")

    def test_invalid_toml_errors(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.toml"
        bad_file.write_text("this is [not valid toml\n")
        with pytest.raises(SystemExit):
            load_config(bad_file)


class TestNumericSettings:
    def test_integer_coerced_to_float(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("slow_interval = 300\n[weather]\ntimeout = 5\n")
        cfg = load_config(toml_file)
        assert cfg["slow_interval"] == 300.0
        assert isinstance(cfg["slow_interval"], float)
        assert cfg["weather"]["timeout"] == 5.0

    def test_defaults_not_mutated(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("[weather]\ntimeout = 3\n")
        load_config(toml_file)
        assert DEFAULT_CONFIG["weather"]["timeout"] == 10.0

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ('fast_interval = "soon"\n', "fast_interval must be a number"),
            ("fast_interval = 0\n", "fast_interval must be > 0"),
            ("slow_interval = -5.0\n", "slow_interval must be > 0"),
            ("cpu_sample_window = -0.1\n", "cpu_sample_window must be >= 0"),
            ("cpu_sample_window = true\n", "cpu_sample_window must be a number"),
            ("[weather]\ntimeout = 0\n", "weather.timeout must be > 0"),
            ('weather = "sunny"\n', "[weather] must be a table"),
        ],
    )
    def test_bad_value_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], text: str, message: str
    ) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text(text)
        with pytest.raises(SystemExit) as exc:
            load_config(toml_file)
        assert exc.value.code == 1
        assert message in capsys.readouterr().err

    def test_zero_sample_window_allowed(self, tmp_path: Path) -> None:
        toml_file = tmp_path / "config.toml"
        toml_file.write_text("cpu_sample_window = 0\n")
        assert load_config(toml_file)["cpu_sample_window"] == 0.0


class TestDumpDefaultConfig:
    def test_is_valid_toml(self) -> None:
        parsed = tomllib.loads(dump_default_config())
        assert "features" in parsed
        assert "weather" in parsed
        assert "keys" in parsed

    def test_roundtrips_defaults(self) -> None:
        parsed = tomllib.loads(dump_default_config())
        assert parsed == DEFAULT_CONFIG


class TestDeepMerge:
    def test_scalar_overwrite(self) -> None:
        assert _deep_merge({"a": 1, "b": 2}, {"a": 10}) == {"a": 10, "b": 2}

    def test_nested_dict_merge(self) -> None:
        result = _deep_merge({"x": {"a": 1, "b": 2}}, {"x": {"b": 3, "c": 4}})
        assert result["x"] == {"a": 1, "b": 3, "c": 4}


class TestApiKey:
    # patch.dict restores os.environ afterwards, including keys load_dotenv set

    def test_read_from_environment(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {API_KEY_VAR: "env-key"}):
            assert load_api_key(tmp_path / "no.env") == "env-key"

    def test_read_from_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{API_KEY_VAR}=file-key\n")
        with patch.dict(os.environ):
            os.environ.pop(API_KEY_VAR, None)
            assert load_api_key(env_file) == "file-key"

    def test_environment_wins_over_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{API_KEY_VAR}=file-key\n")
        with patch.dict(os.environ, {API_KEY_VAR: "env-key"}):
            assert load_api_key(env_file) == "env-key"

    def test_missing_key_is_none(self, tmp_path: Path) -> None:
        with patch.dict(os.environ):
            os.environ.pop(API_KEY_VAR, None)
            assert load_api_key(tmp_path / "no.env") is None

    def test_blank_key_is_none(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {API_KEY_VAR: "   "}):
            assert load_api_key(tmp_path / "no.env") is None

    def test_default_lookup_reads_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text(f"{API_KEY_VAR}=cwd-key\n")
        monkeypatch.chdir(tmp_path)
        with patch.dict(os.environ):
            os.environ.pop(API_KEY_VAR, None)
            assert load_api_key() == "cwd-key"

    def test_default_lookup_walks_up_from_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text(f"{API_KEY_VAR}=parent-key\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        with patch.dict(os.environ):
            os.environ.pop(API_KEY_VAR, None)
            assert load_api_key() == "parent-key"


class TestBuilders:
    def test_default_keymap(self) -> None:
        keymap = build_keymap(DEFAULT_CONFIG)
        assert keymap.bindings == (KeyBinding(("q", "ctrl+c"), "quit", "q", "quit"),)

    def test_binding_without_keys_skipped(self) -> None:
        cfg = {"keys": {"quit": {"keys": []}}}
        assert build_keymap(cfg).bindings == ()

    def test_capabilities(self) -> None:
        cfg = _deep_merge(DEFAULT_CONFIG, {"features": {"metrics": False}})
        assert build_capabilities(cfg) == Capabilities(metrics=False, weather=True)
