"""Pure domain types of the weighing engine."""

from .filters import StabilityDetector
from .models import (
    CompletedTransaction,
    ErrorKind,
    Failure,
    StabilityConfig,
    Success,
    TransactionDirection,
    WeighInRequest,
    WeighOutRequest,
    WeighingResult,
    WeightReading,
    WeightUnit,
)
from .roles import WeightRoles, resolve_weight_roles
from .tickets import TicketGenerator

__all__ = [
    "StabilityDetector",
    "CompletedTransaction",
    "ErrorKind",
    "Failure",
    "StabilityConfig",
    "Success",
    "TransactionDirection",
    "WeighInRequest",
    "WeighOutRequest",
    "WeighingResult",
    "WeightReading",
    "WeightUnit",
    "WeightRoles",
    "resolve_weight_roles",
    "TicketGenerator",
]
