"""Top level package for the weighbridge weighing engine."""

from importlib import metadata as _metadata

try:  # pragma: no cover - metadata only available when installed
    __version__ = _metadata.version("weighbridge")
except _metadata.PackageNotFoundError:  # pragma: no cover - editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
