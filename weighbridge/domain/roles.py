"""Gross/tare convention for two-pass weighing."""
from __future__ import annotations

from dataclasses import dataclass

from .models import TransactionDirection


@dataclass(frozen=True)
class WeightRoles:
    gross: float
    tare: float

    @property
    def net(self) -> float:
        return abs(self.gross - self.tare)


def resolve_weight_roles(
    direction: TransactionDirection, first_weight: float, second_weight: float
) -> WeightRoles:
    """Map the two weighings of a transaction to gross and tare.

    INBOUND vehicles arrive loaded, so the first weighing is the gross one.
    OUTBOUND vehicles arrive empty, so the first weighing is the tare.
    """
    direction = TransactionDirection(direction)
    if direction is TransactionDirection.INBOUND:
        return WeightRoles(gross=float(first_weight), tare=float(second_weight))
    if direction is TransactionDirection.OUTBOUND:
        return WeightRoles(gross=float(second_weight), tare=float(first_weight))
    raise ValueError(f"unknown transaction direction: {direction!r}")


__all__ = ["WeightRoles", "resolve_weight_roles"]
