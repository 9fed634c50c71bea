"""Tests for robust configuration loading and saving."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from weighbridge.config.settings import Settings, StabilitySettings, ScaleSettings
from weighbridge.domain.models import StabilityConfig, WeightUnit


def test_load_missing_creates_defaults(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    settings = Settings.load(cfg_path)
    assert cfg_path.exists()
    payload = json.loads(cfg_path.read_text(encoding="utf-8"))
    assert payload["scale"]["port"] == "__dummy__"
    assert payload["stability"]["window_size"] == 5
    assert settings.stability.to_config() == StabilityConfig()
    assert settings.tickets.prefix == "WB"


def test_load_empty_and_corrupt_recovers(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text("", encoding="utf-8")
    settings = Settings.load(cfg_path)
    assert settings.scale.unit == "kg"

    cfg_path.write_text("{invalid", encoding="utf-8")
    settings = Settings.load(cfg_path)
    assert settings.stability.minimum_weight_kg == pytest.approx(50.0)
    assert (tmp_path / "config.json.bak").read_text(encoding="utf-8") == "{invalid"


def test_roundtrip_keeps_unknown_keys(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(json.dumps({"printer": {"name": "EPSON"}}), encoding="utf-8")
    settings = Settings.load(cfg_path)
    settings.stability.window_size = 8
    settings.scale.port = "/dev/ttyUSB1"
    settings.tickets.prefix = "GATE2"
    settings.save(cfg_path)

    assert not cfg_path.with_suffix(".tmp").exists()
    loaded = Settings.load(cfg_path)
    assert loaded.stability.window_size == 8
    assert loaded.scale.port == "/dev/ttyUSB1"
    assert loaded.scale.has_device is True
    assert loaded.tickets.prefix == "GATE2"
    payload = json.loads(cfg_path.read_text(encoding="utf-8"))
    assert payload["printer"] == {"name": "EPSON"}


def test_partial_sections_are_merged_with_defaults(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(json.dumps({"stability": {"tolerance_kg": 5}}), encoding="utf-8")
    settings = Settings.load(cfg_path)
    assert settings.stability.tolerance_kg == pytest.approx(5.0)
    assert settings.stability.window_size == 5
    assert settings.scale.baud == 9600


def test_sections_sanitise_values() -> None:
    stability = StabilitySettings(window_size="0", tolerance_kg="abc", minimum_weight_kg=-10)
    assert stability.window_size == 1
    assert stability.tolerance_kg == pytest.approx(2.0)
    assert stability.minimum_weight_kg == 0.0

    scale = ScaleSettings(baud="fast", timeout=0, unit="LB", poll_interval=None)
    assert scale.baud == 9600
    assert scale.timeout == pytest.approx(0.05)
    assert scale.weight_unit is WeightUnit.POUND
    assert scale.poll_interval == pytest.approx(0.1)
    assert scale.has_device is False

    assert ScaleSettings(unit="stone").unit == "kg"
