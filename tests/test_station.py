from __future__ import annotations

from pathlib import Path

import pytest

from weighbridge.config.settings import Settings
from weighbridge.domain.models import StabilityConfig, TransactionDirection, WeighInRequest
from weighbridge.domain.state import Idle
from weighbridge.services import scale
from weighbridge.services.repository import JsonTransactionRepository
from weighbridge.station import build_station


def _settings(tmp_path: Path) -> Settings:
    settings = Settings()
    settings.storage.transactions_path = str(tmp_path / "transactions.json")
    settings.stability.window_size = 3
    settings.stability.minimum_weight_kg = 100.0
    return settings


def _weigh_in(engine, weight: float) -> str:
    engine.start_weigh_in(
        WeighInRequest(
            vehicle_id=1,
            driver_id=1,
            product_id=1,
            direction=TransactionDirection.INBOUND,
            is_manual=True,
        )
    )
    engine.set_manual_weight(weight)
    result = engine.capture_weigh_in()
    assert result.ok
    return result.value


def test_build_station_without_device(tmp_path: Path, clock) -> None:
    station = build_station(_settings(tmp_path), clock=clock)
    assert station.scale is None
    assert isinstance(station.repository, JsonTransactionRepository)
    assert station.engine.config == StabilityConfig(window_size=3, tolerance_kg=2.0, minimum_weight_kg=100.0)

    with station:
        ticket = _weigh_in(station.engine, 5000.0)
    assert ticket == "WB-20240315-0001"
    assert isinstance(station.engine.state, Idle)


def test_ticket_numbering_survives_restart(tmp_path: Path, clock) -> None:
    settings = _settings(tmp_path)
    first = build_station(settings, clock=clock)
    _weigh_in(first.engine, 5000.0)
    _weigh_in(first.engine, 6000.0)

    restarted = build_station(settings, clock=clock)
    assert _weigh_in(restarted.engine, 7000.0) == "WB-20240315-0003"


def test_build_station_with_backend(tmp_path: Path, clock) -> None:
    backend = scale.FakeScaleBackend([2500.0, 2500.0, 2500.0])
    station = build_station(_settings(tmp_path), backend=backend, clock=clock)
    assert station.scale is not None
    for _ in range(3):
        station.scale.poll_once()
    assert station.engine.is_stable is True


def test_unavailable_serial_port_falls_back_to_manual(
    tmp_path: Path, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(scale, "serial", None)
    settings = _settings(tmp_path)
    settings.scale.port = "/dev/ttyUSB9"
    station = build_station(settings, clock=clock)
    assert station.scale is None
