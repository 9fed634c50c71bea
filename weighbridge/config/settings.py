"""Robust configuration handling for a weighing station."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

from ..domain.models import StabilityConfig, WeightUnit
from ..domain.tickets import DEFAULT_PREFIX

log = logging.getLogger(__name__)

CONFIG_DIR = Path(os.environ.get("WEIGHBRIDGE_SETTINGS_DIR", Path.home() / ".weighbridge"))
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class StabilitySettings:
    """Stability window and capture threshold."""

    window_size: int = 5
    tolerance_kg: float = 2.0
    minimum_weight_kg: float = 50.0

    def __post_init__(self) -> None:
        try:
            self.window_size = max(1, int(self.window_size))
        except (TypeError, ValueError):
            self.window_size = 5
        try:
            self.tolerance_kg = max(0.0, float(self.tolerance_kg))
        except (TypeError, ValueError):
            self.tolerance_kg = 2.0
        try:
            self.minimum_weight_kg = max(0.0, float(self.minimum_weight_kg))
        except (TypeError, ValueError):
            self.minimum_weight_kg = 50.0

    def to_config(self) -> StabilityConfig:
        return StabilityConfig(
            window_size=self.window_size,
            tolerance_kg=self.tolerance_kg,
            minimum_weight_kg=self.minimum_weight_kg,
        )


@dataclass
class ScaleSettings:
    """Serial indicator connection."""

    port: str = "__dummy__"
    baud: int = 9600
    timeout: float = 1.0
    unit: str = WeightUnit.KILOGRAM.value
    poll_interval: float = 0.1

    def __post_init__(self) -> None:
        try:
            self.baud = int(self.baud)
        except (TypeError, ValueError):
            self.baud = 9600
        try:
            self.timeout = max(0.05, float(self.timeout))
        except (TypeError, ValueError):
            self.timeout = 1.0
        try:
            self.poll_interval = max(0.0, float(self.poll_interval))
        except (TypeError, ValueError):
            self.poll_interval = 0.1
        unit = str(self.unit or "").lower()
        self.unit = unit if unit in {u.value for u in WeightUnit} else WeightUnit.KILOGRAM.value

    @property
    def weight_unit(self) -> WeightUnit:
        return WeightUnit(self.unit)

    @property
    def has_device(self) -> bool:
        return (self.port or "").strip() not in {"", "__dummy__"}


@dataclass
class TicketSettings:
    prefix: str = DEFAULT_PREFIX

    def __post_init__(self) -> None:
        prefix = str(self.prefix or "").strip()
        self.prefix = prefix or DEFAULT_PREFIX


@dataclass
class StorageSettings:
    transactions_path: str = str(CONFIG_DIR / "transactions.json")


@dataclass
class Settings:
    """Top level station settings."""

    stability: StabilitySettings = field(default_factory=StabilitySettings)
    scale: ScaleSettings = field(default_factory=ScaleSettings)
    tickets: TicketSettings = field(default_factory=TicketSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ------------------------------------------------------------------
    @staticmethod
    def _atomic_save(payload: Dict[str, Any], path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(path)

    # ------------------------------------------------------------------
    def save(self, path: Path = CONFIG_PATH) -> None:
        """Persist the settings to disk atomically, keeping unknown keys."""

        payload = self.to_dict()
        existing: Dict[str, Any] = {}
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                existing = loaded
        except FileNotFoundError:
            existing = {}
        except (OSError, ValueError):
            log.debug("Could not read existing settings before save", exc_info=True)
            existing = {}

        self._atomic_save(_deep_update(existing, payload), path)
        log.info("Settings saved to %s", path)

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Settings":
        def load_section(section: type, data: Any) -> Any:
            if not isinstance(data, dict):
                data = {}
            field_names = set(section.__dataclass_fields__)
            filtered = {k: v for k, v in data.items() if k in field_names}
            return section(**filtered)

        return cls(
            stability=load_section(StabilitySettings, payload.get("stability", {})),
            scale=load_section(ScaleSettings, payload.get("scale", {})),
            tickets=load_section(TicketSettings, payload.get("tickets", {})),
            storage=load_section(StorageSettings, payload.get("storage", {})),
        )

    # ------------------------------------------------------------------
    @classmethod
    def load(cls, path: Path = CONFIG_PATH) -> "Settings":
        """Load settings from disk, regenerating defaults on corruption."""

        default_payload = cls().to_dict()
        needs_resave = False

        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                raise ValueError("empty settings file")
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("settings payload must be a JSON object")
            log.info("Loaded settings from %s", path)
        except FileNotFoundError:
            log.warning("Settings file %s missing; regenerating defaults", path)
            payload = default_payload
            needs_resave = True
        except ValueError as exc:
            log.warning("Settings file %s invalid (%s); regenerating defaults", path, exc)
            _backup_corrupt_file(path)
            payload = default_payload
            needs_resave = True

        merged = _deep_update(default_payload, payload)
        settings = cls.from_dict(merged)

        if merged != payload or needs_resave:
            try:
                cls._atomic_save(merged, path)
            except OSError:
                log.exception("Could not persist regenerated configuration")

        stability = settings.stability
        log.info(
            "Stability config: window=%d tolerance=%.2f kg minimum=%.1f kg; scale port=%s @%d",
            stability.window_size,
            stability.tolerance_kg,
            stability.minimum_weight_kg,
            settings.scale.port or "",
            settings.scale.baud,
        )
        return settings


# ----------------------------------------------------------------------
def _backup_corrupt_file(path: Path) -> None:
    try:
        if path.exists():
            path.with_name(path.name + ".bak").write_bytes(path.read_bytes())
            path.unlink()
    except OSError:  # pragma: no cover - best effort
        log.debug("Could not create backup for corrupt settings", exc_info=True)


def _deep_update(original: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = dict(original)
    for key, value in updates.items():
        if isinstance(value, dict):
            base = result.get(key, {})
            if not isinstance(base, dict):
                base = {}
            result[key] = _deep_update(base, value)
        else:
            result[key] = value
    return result

