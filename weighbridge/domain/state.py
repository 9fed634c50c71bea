"""Weighing state machine states.

Idle -> WeighingIn -> Idle            (first weight captured, transaction opened)
Idle -> WeighingOut -> Completed      (second weight captured, transaction closed)
Completed -> Idle                     (acknowledged)
any -> Error -> previous state / Idle (cleared)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import NoReturn, Optional, Union

from .models import ErrorKind, TransactionDirection


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class WeighingIn:
    vehicle_id: int
    driver_id: int
    product_id: int
    direction: TransactionDirection
    partner_id: Optional[int] = None
    current_weight: float = 0.0
    is_stable: bool = False
    is_manual: bool = False


@dataclass(frozen=True)
class WeighingOut:
    ticket_number: str
    first_weight: float
    direction: TransactionDirection
    vehicle_id: int
    driver_id: int
    product_id: int
    partner_id: Optional[int] = None
    current_weight: float = 0.0
    is_stable: bool = False
    is_manual: bool = False


@dataclass(frozen=True)
class Completed:
    ticket_number: str
    gross_weight: float
    tare_weight: float
    net_weight: float
    direction: TransactionDirection
    completed_at: datetime


@dataclass(frozen=True)
class Error:
    message: str
    kind: ErrorKind
    previous_state: Optional["WeighingState"] = field(default=None)


WeighingState = Union[Idle, WeighingIn, WeighingOut, Completed, Error]

IDLE = Idle()


def unknown_state(state: object) -> NoReturn:
    """Fallthrough for exhaustive matches over :data:`WeighingState`."""
    raise TypeError(f"unhandled weighing state: {state!r}")


def state_name(state: WeighingState) -> str:
    return type(state).__name__


__all__ = [
    "Idle",
    "WeighingIn",
    "WeighingOut",
    "Completed",
    "Error",
    "WeighingState",
    "IDLE",
    "unknown_state",
    "state_name",
]
