"""Collaborators of the weighing engine.

Event bus, logging setup, transaction repositories and the serial weight
source.
"""

__all__ = ["event_bus", "logging", "repository", "scale"]
