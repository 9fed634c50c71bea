"""Value objects shared by the weighing engine and its collaborators."""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")

POUND_TO_KG = 0.45359237


class TransactionDirection(str, Enum):
    """Decides which weighing is gross and which is tare.

    INBOUND: the vehicle arrives loaded and leaves empty (first = gross).
    OUTBOUND: the vehicle arrives empty and leaves loaded (first = tare).
    """

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class ErrorKind(str, Enum):
    DEVICE_DISCONNECTED = "DEVICE_DISCONNECTED"
    UNSTABLE_WEIGHT = "UNSTABLE_WEIGHT"
    INVALID_DATA = "INVALID_DATA"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    UNKNOWN = "UNKNOWN"


class WeightUnit(str, Enum):
    KILOGRAM = "kg"
    TON = "t"
    POUND = "lb"


@dataclass(frozen=True)
class StabilityConfig:
    """Parameters of the stability test and the minimum capture weight."""

    window_size: int = 5
    tolerance_kg: float = 2.0
    minimum_weight_kg: float = 50.0

    def __post_init__(self) -> None:
        if int(self.window_size) < 1:
            raise ValueError("window_size must be >= 1")
        if not self.tolerance_kg >= 0:
            raise ValueError("tolerance_kg must be >= 0")
        if not self.minimum_weight_kg >= 0:
            raise ValueError("minimum_weight_kg must be >= 0")


@dataclass(frozen=True)
class WeightReading:
    """Raw reading delivered by a weight source."""

    weight: float
    unit: WeightUnit = WeightUnit.KILOGRAM
    stable_hint: Optional[bool] = None
    timestamp: float = field(default_factory=time.time)

    def to_kg(self) -> float:
        if self.unit is WeightUnit.TON:
            return self.weight * 1000.0
        if self.unit is WeightUnit.POUND:
            return self.weight * POUND_TO_KG
        return self.weight


@dataclass(frozen=True)
class WeighInRequest:
    vehicle_id: int
    driver_id: int
    product_id: int
    direction: TransactionDirection
    partner_id: Optional[int] = None
    is_manual: bool = False


@dataclass(frozen=True)
class WeighOutRequest:
    ticket_number: str
    first_weight: float
    direction: TransactionDirection
    vehicle_id: int
    driver_id: int
    product_id: int
    partner_id: Optional[int] = None
    is_manual: bool = False


@dataclass(frozen=True)
class CompletedTransaction:
    """Snapshot of a closed transaction, built once at weigh-out capture."""

    ticket_number: str
    vehicle_id: int
    driver_id: int
    product_id: int
    partner_id: Optional[int]
    gross_weight: float
    tare_weight: float
    net_weight: float
    direction: TransactionDirection
    is_manual_entry: bool
    completed_at: datetime


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    message: str
    kind: ErrorKind

    @property
    def ok(self) -> bool:
        return False


WeighingResult = Union[Success[T], Failure]


def is_valid_weight(value: float) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


__all__ = [
    "TransactionDirection",
    "ErrorKind",
    "WeightUnit",
    "StabilityConfig",
    "WeightReading",
    "WeighInRequest",
    "WeighOutRequest",
    "CompletedTransaction",
    "Success",
    "Failure",
    "WeighingResult",
    "is_valid_weight",
]
