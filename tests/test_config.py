from __future__ import annotations

import logging
from pathlib import Path

import pytest

from src.common.config import REPO_DIR, load_config, resolve_path, setup_logging


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content)
    return path


class TestLoadConfig:
    def test_defaults_fill_missing_sections(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, f"data_file: {tmp_path}/dash.json\n"))
        assert cfg["history"]["retention"] == 52
        assert cfg["stats"]["currency"] == ["pipeline"]
        assert cfg["money"]["strict_suffix"] is False
        assert cfg["pipeline"] == {}
        assert cfg["log_level"] == "INFO"

    def test_partial_section_merges_with_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "money:\n  strict_suffix: true\nhistory:\n"))
        assert cfg["money"]["strict_suffix"] is True
        assert cfg["history"]["retention"] == 52

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_repo_config_loads(self) -> None:
        cfg = load_config()
        assert cfg["pipeline"]["stages"] == ["discovery", "demo", "validation", "pilot", "closed"]
        assert cfg["pipeline"]["categories"][2] == {"key": "partnerships", "stage": "partnership", "keep_note": True}

    def test_env_overrides(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("PULSE_DATA_FILE", str(tmp_path / "other.json"))
        monkeypatch.setenv("PULSE_LOG_LEVEL", "DEBUG")
        cfg = load_config(_write(tmp_path, "data_file: data/dashboard.json\n"))
        assert cfg["data_file"] == str(tmp_path / "other.json")
        assert cfg["log_level"] == "DEBUG"


class TestValidation:
    @pytest.mark.parametrize("value", ["0", "-3", "ten", "true"])
    def test_bad_retention(self, tmp_path: Path, value: str) -> None:
        with pytest.raises(ValueError, match="retention"):
            load_config(_write(tmp_path, f"history:\n  retention: {value}\n"))

    def test_empty_stage_list(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="stages"):
            load_config(_write(tmp_path, "pipeline:\n  stages: []\n"))

    def test_non_list_currency_is_reset(self, tmp_path: Path, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="pulse"):
            cfg = load_config(_write(tmp_path, "stats:\n  currency: pipeline\n"))
        assert cfg["stats"]["currency"] == []
        assert "stats.currency" in caplog.text

    def test_unknown_log_level(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, "log_level: LOUD\n"))
        assert cfg["log_level"] == "INFO"


class TestPaths:
    def test_relative_paths_resolve_from_repo(self) -> None:
        assert resolve_path("data/dashboard.json") == REPO_DIR / "data" / "dashboard.json"

    def test_absolute_paths_unchanged(self, tmp_path: Path) -> None:
        assert resolve_path(tmp_path / "x.json") == tmp_path / "x.json"


class TestLogging:
    def test_writes_rotating_log(self, tmp_path: Path) -> None:
        logger = logging.getLogger("pulse")
        before = list(logger.handlers)
        try:
            setup_logging({"log_dir": str(tmp_path / "logs"), "log_level": "DEBUG"})
            logging.getLogger("pulse.test").info("hello from test")
            for handler in logger.handlers:
                handler.flush()
            assert "hello from test" in (tmp_path / "logs" / "pulse.log").read_text()
        finally:
            for handler in logger.handlers[len(before):]:
                handler.close()
                logger.removeHandler(handler)
