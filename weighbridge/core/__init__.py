"""Weighing engine state machine."""

from .engine import WeighingEngine

__all__ = ["WeighingEngine"]
