import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from weighbridge.core.engine import WeighingEngine  # noqa: E402
from weighbridge.domain.models import StabilityConfig  # noqa: E402
from weighbridge.domain.tickets import TicketGenerator  # noqa: E402
from weighbridge.services.repository import InMemoryTransactionRepository  # noqa: E402


class FixedClock:
    """Callable clock returning a settable datetime."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 15, 10, 30, 0))


@pytest.fixture
def repository(clock: FixedClock) -> InMemoryTransactionRepository:
    return InMemoryTransactionRepository(clock=clock)


@pytest.fixture
def engine(repository: InMemoryTransactionRepository, clock: FixedClock) -> WeighingEngine:
    return WeighingEngine(
        repository,
        StabilityConfig(window_size=5, tolerance_kg=2.0, minimum_weight_kg=50.0),
        ticket_generator=TicketGenerator(clock=clock),
        clock=clock,
    )
