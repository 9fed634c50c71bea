"""Serial weight source feeding samples into the weighing engine."""
from __future__ import annotations

import logging
import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Iterable, List, Optional

from ..domain.models import ErrorKind, WeightReading, WeightUnit

if TYPE_CHECKING:  # pragma: no cover
    from ..core.engine import WeighingEngine

try:  # pragma: no cover - optional dependency
    import serial  # type: ignore
    from serial import SerialException  # type: ignore
except ImportError:  # pragma: no cover
    serial = None  # type: ignore
    SerialException = OSError  # type: ignore

LOGGER = logging.getLogger("weighbridge.scale")

POLL_INTERVAL = 0.1
SIGNAL_TIMEOUT = 3.0

# Typical indicator frames: "ST,GS,+001234kg", "US,NT,  12.5 t", "1234.5 kg", "+001234"
_FRAME_RE = re.compile(
    r"(?:(?P<status>ST|US|OL)\s*,\s*(?:(?:GS|NT|TR)\s*,\s*)?)?"
    r"(?P<value>[-+]?\s*\d+(?:[.,]\d+)?)\s*(?P<unit>kg|lb|t)?\b",
    re.IGNORECASE,
)
_UNITS = {"kg": WeightUnit.KILOGRAM, "t": WeightUnit.TON, "lb": WeightUnit.POUND}


class BackendUnavailable(RuntimeError):
    """Raised when a backend cannot operate."""


@dataclass(frozen=True)
class SerialPortInfo:
    name: str
    description: str


def parse_frame(line: str, default_unit: WeightUnit = WeightUnit.KILOGRAM) -> Optional[WeightReading]:
    """Parse one line of indicator output; ``None`` when it carries no weight."""
    text = (line or "").strip()
    if not text:
        return None
    match = _FRAME_RE.search(text)
    if not match:
        return None
    status = (match.group("status") or "").upper()
    if status == "OL":
        return None
    value_text = match.group("value").replace(" ", "").replace(",", ".")
    try:
        value = float(value_text)
    except ValueError:
        return None
    unit_text = (match.group("unit") or "").lower()
    unit = _UNITS.get(unit_text, default_unit)
    hint = {"ST": True, "US": False}.get(status)
    return WeightReading(weight=value, unit=unit, stable_hint=hint)


def list_ports() -> List[SerialPortInfo]:
    """Serial ports visible to pyserial; empty when pyserial is missing."""
    try:
        from serial.tools import list_ports as _list_ports  # type: ignore
    except ImportError:
        LOGGER.warning("pyserial not available; cannot list serial ports")
        return []
    return [
        SerialPortInfo(name=port.device, description=port.description or "")
        for port in _list_ports.comports()
    ]


class BaseScaleBackend:
    """Common interface implemented by all backends."""

    name = "BASE"

    def start(self) -> None:  # pragma: no cover - default no-op
        """Prepare backend resources."""

    def stop(self) -> None:  # pragma: no cover - default no-op
        """Release backend resources."""

    def read(self) -> Optional[WeightReading]:  # pragma: no cover - interface method
        raise NotImplementedError


class SerialScaleBackend(BaseScaleBackend):
    """Backend reading indicator frames from a serial port using pyserial."""

    name = "SERIAL"

    def __init__(
        self,
        port: str,
        baud: int,
        *,
        timeout: float = 1.0,
        default_unit: WeightUnit = WeightUnit.KILOGRAM,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if serial is None:
            raise BackendUnavailable("pyserial not available")
        self._logger = logger or LOGGER
        self._port = (port or "").strip()
        self._baudrate = int(baud)
        self._default_unit = default_unit
        try:
            self._serial = serial.Serial(self._port, baudrate=self._baudrate, timeout=timeout)
        except SerialException as exc:  # pragma: no cover - depends on hardware
            raise BackendUnavailable(str(exc)) from exc
        self._logger.info("Serial %s opened @%d", self._port, self._baudrate)

    @property
    def port(self) -> str:
        return self._port

    @property
    def baudrate(self) -> int:
        return self._baudrate

    def stop(self) -> None:
        try:
            self._serial.close()
        except SerialException as exc:  # pragma: no cover - hardware dependent
            self._logger.debug("Serial close failed: %s", exc)

    def read(self) -> Optional[WeightReading]:
        try:
            raw_line = self._serial.readline().decode("ascii", errors="ignore")
        except SerialException as exc:
            raise BackendUnavailable(str(exc)) from exc
        reading = parse_frame(raw_line, self._default_unit)
        if reading is None and raw_line.strip():
            self._logger.debug("Serial %s frame without weight: %r", self._port, raw_line.strip())
        return reading


class FakeScaleBackend(BaseScaleBackend):
    """Replays a fixed list of weights; raises once exhausted if asked to."""

    name = "FAKE"

    def __init__(self, samples: Iterable[float], *, disconnect_when_empty: bool = False) -> None:
        self._samples: Deque[float] = deque(float(s) for s in samples)
        self._disconnect_when_empty = disconnect_when_empty

    def feed(self, *samples: float) -> None:
        self._samples.extend(float(s) for s in samples)

    def read(self) -> Optional[WeightReading]:
        if not self._samples:
            if self._disconnect_when_empty:
                raise BackendUnavailable("fake backend exhausted")
            return None
        return WeightReading(weight=self._samples.popleft())


class ScaleService:
    """Polls a backend and forwards readings to a :class:`WeighingEngine`.

    Signal loss (backend errors, or no valid frame for ``signal_timeout``
    seconds) is reported once per loss through ``engine.report_error`` with
    ``ErrorKind.DEVICE_DISCONNECTED``. Recovery is only logged; the operator
    acknowledges the error on the engine.
    """

    def __init__(
        self,
        engine: "WeighingEngine",
        backend: BaseScaleBackend,
        *,
        poll_interval: float = POLL_INTERVAL,
        signal_timeout: float = SIGNAL_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or LOGGER
        self._engine = engine
        self._backend = backend
        self._poll_interval = max(0.0, float(poll_interval))
        self._signal_timeout = max(0.0, float(signal_timeout))
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._signal_available = True
        self._last_valid_ts = time.monotonic()
        self._indicator_stable: Optional[bool] = None
        self.logger.info("Scale backend: %s", backend.name)

    @property
    def backend(self) -> BaseScaleBackend:
        return self._backend

    @property
    def signal_available(self) -> bool:
        return self._signal_available

    @property
    def indicator_stable(self) -> Optional[bool]:
        """Stability flag of the last frame as reported by the indicator itself.

        Informational only; capture decisions use the engine's detector.
        ``None`` when the indicator does not send a status field or no
        signal is available.
        """
        return self._indicator_stable

    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._backend.start()
        self._last_valid_ts = time.monotonic()
        self._thread = threading.Thread(target=self._run_loop, name="ScaleService", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.5)
        self._thread = None
        self._backend.stop()

    close = stop

    # ------------------------------------------------------------------
    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self._poll_interval)

    def poll_once(self) -> Optional[WeightReading]:
        try:
            reading = self._backend.read()
        except BackendUnavailable as exc:
            self._set_signal_available(False, reason=str(exc).strip() or "no signal")
            return None
        if reading is None:
            if time.monotonic() - self._last_valid_ts >= self._signal_timeout:
                self._set_signal_available(False, reason="no data")
            return None
        self._last_valid_ts = time.monotonic()
        self._set_signal_available(True)
        if reading.stable_hint != self._indicator_stable:
            self.logger.debug("%s: indicator stability flag %s", self._backend.name, reading.stable_hint)
            self._indicator_stable = reading.stable_hint
        result = self._engine.update_weight(reading.to_kg())
        if not result.ok:
            self.logger.debug("Engine rejected reading %r: %s", reading, result.message)
        return reading

    def _set_signal_available(self, available: bool, *, reason: Optional[str] = None) -> None:
        if self._signal_available == available:
            return
        self._signal_available = available
        if available:
            self.logger.info("%s: signal restored", self._backend.name)
            return
        self._indicator_stable = None
        self.logger.warning("%s: signal lost (%s)", self._backend.name, reason)
        self._engine.report_error(f"Scale disconnected ({reason}).", ErrorKind.DEVICE_DISCONNECTED)


__all__ = [
    "BackendUnavailable",
    "BaseScaleBackend",
    "SerialScaleBackend",
    "FakeScaleBackend",
    "ScaleService",
    "SerialPortInfo",
    "list_ports",
    "parse_frame",
]
