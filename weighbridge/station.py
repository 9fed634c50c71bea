"""Wiring of one weighing station: settings, repository, engine and scale."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config.settings import Settings
from .core.engine import WeighingEngine
from .domain.tickets import TicketGenerator
from .services.repository import JsonTransactionRepository, TransactionRepository
from .services.scale import BackendUnavailable, BaseScaleBackend, ScaleService, SerialScaleBackend

log = logging.getLogger(__name__)


class WeighingStation:
    """Owns the collaborators of a single engine instance."""

    def __init__(
        self,
        engine: WeighingEngine,
        repository: TransactionRepository,
        scale: Optional[ScaleService] = None,
    ) -> None:
        self.engine = engine
        self.repository = repository
        self.scale = scale

    def start(self) -> None:
        if self.scale is not None:
            self.scale.start()
        log.info("Weighing station started (scale=%s)", self.scale.backend.name if self.scale else "none")

    def stop(self) -> None:
        if self.scale is not None:
            self.scale.stop()
        log.info("Weighing station stopped")

    def __enter__(self) -> "WeighingStation":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


def build_station(
    settings: Optional[Settings] = None,
    *,
    repository: Optional[TransactionRepository] = None,
    backend: Optional[BaseScaleBackend] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> WeighingStation:
    """Create a station from settings.

    Without an explicit ``backend`` a serial backend is opened when the
    settings name a port; otherwise the station runs without a weight source
    (manual entry only). The ticket counter resumes from the repository's
    last ticket so numbering survives a restart on the same day.
    """
    settings = settings or Settings()
    clock = clock or datetime.now
    if repository is None:
        repository = JsonTransactionRepository(Path(settings.storage.transactions_path), clock=clock)

    tickets = TicketGenerator(clock=clock, prefix=settings.tickets.prefix)
    tickets.seed(repository.last_ticket())

    engine = WeighingEngine(
        repository,
        settings.stability.to_config(),
        ticket_generator=tickets,
        clock=clock,
    )

    scale_cfg = settings.scale
    if backend is None and scale_cfg.has_device:
        try:
            backend = SerialScaleBackend(
                scale_cfg.port,
                scale_cfg.baud,
                timeout=scale_cfg.timeout,
                default_unit=scale_cfg.weight_unit,
            )
        except BackendUnavailable as exc:
            log.warning("Serial scale %s @%d unavailable (%s); manual entry only", scale_cfg.port, scale_cfg.baud, exc)
            backend = None

    scale = None
    if backend is not None:
        scale = ScaleService(engine, backend, poll_interval=scale_cfg.poll_interval)
    return WeighingStation(engine, repository, scale)


__all__ = ["WeighingStation", "build_station"]
