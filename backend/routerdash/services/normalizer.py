"""
normalizer.py

Purpose:
  Makes router telemetry look the same whatever the firmware generation.
  The management API reports temperatures and fan speeds in two shapes:

    - Array shape (API v8+, recent boxes): `sensors[]` / `fans[]` of {id, name, value}
    - Flat shape (older firmware): `temp_cpum`, `temp_cpub`, `temp_sw`, `fan_rpm`, ...

  `normalize()` reconciles both into one superset record so consumers written
  against either generation keep working.

Contract:
  - Pure and deterministic, never raises on malformed input (bad fields are
    treated as absent).
  - If either shape is derivable, both are present in the output.
  - Nothing is fabricated: underivable fields stay absent, empty arrays are
    never emitted.
  - `normalize(normalize(x))` yields the same arrays and flat fields.
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from routerdash.models.domain import ApiCapabilities, SensorReading

# ============================================================
# LOOKUP TABLES
# ============================================================

SENSOR_NAMES: Dict[str, str] = {
    # per-core (Ultra)
    "temp_cpu0": "CPU 0",
    "temp_cpu1": "CPU 1",
    "temp_cpu2": "CPU 2",
    "temp_cpu3": "CPU 3",
    # legacy
    "temp_cpum": "CPU",
    "temp_cpub": "CPU Box",
    "temp_sw": "Switch",
    # disks
    "temp_hdd": "Disque",
    "temp_hdd0": "Disque 1",
    "temp_hdd1": "Disque 2",
    # short ids used by some firmwares
    "t1": "CPU",
    "t2": "CPU Box",
    "t3": "Switch",
    "cpu_ap": "CPU",
    "cpu_cp": "CPU Box",
    "switch": "Switch",
}

FAN_NAMES: Dict[str, str] = {
    "fan0_speed": "Ventilateur 1",
    "fan1_speed": "Ventilateur 2",
    "fan0": "Ventilateur 1",
    "fan1": "Ventilateur 2",
    "main": "Ventilateur",
    "fan": "Ventilateur",
    "fan_rpm": "Ventilateur",
}

# short sensor id -> legacy flat field
SHORT_ID_FIELDS: Dict[str, str] = {
    "t1": "temp_cpum",
    "cpu_ap": "temp_cpum",
    "t2": "temp_cpub",
    "cpu_cp": "temp_cpub",
    "t3": "temp_sw",
    "switch": "temp_sw",
}

CORE_FIELDS: Tuple[str, ...] = ("temp_cpu0", "temp_cpu1", "temp_cpu2", "temp_cpu3")
MAIN_CPU_FIELD = "temp_cpum"
FAN_FIELD = "fan_rpm"

# order in which flat fields become synthesized sensors
FLAT_SENSOR_ORDER: Tuple[str, ...] = CORE_FIELDS + ("temp_cpum", "temp_cpub", "temp_sw")

# checked in order, first hit is the "main" fan
MAIN_FAN_IDS: Tuple[str, ...] = ("fan0_speed", "main", "fan0", "fan")

# "Température Temperature CPU" -> "CPU"
_TEMPERATURE_PREFIX = re.compile(r"^(?:temp[ée]rature\s+)+", re.IGNORECASE)
_WORD_START = re.compile(r"\b\w")


# ============================================================
# HELPERS
# ============================================================

def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def round_half_up(value: float) -> int:
    # Matches the browser's Math.round(), python's round() is banker's rounding.
    return int(math.floor(value + 0.5))


def mean_rounded(values: List[Any]) -> Optional[int]:
    nums = [v for v in values if is_number(v)]
    if not nums:
        return None
    return round_half_up(sum(nums) / len(nums))


def _title_words(text: str) -> str:
    return _WORD_START.sub(lambda m: m.group(0).upper(), text)


def sensor_display_name(sensor_id: str, reported_name: Any = None) -> str:
    if sensor_id in SENSOR_NAMES:
        return SENSOR_NAMES[sensor_id]

    if isinstance(reported_name, str) and reported_name.strip():
        return _TEMPERATURE_PREFIX.sub("", reported_name.strip()).strip()

    return _title_words(sensor_id.replace("temp_", "", 1).replace("_", " "))


def fan_display_name(fan_id: str, reported_name: Any = None) -> str:
    if fan_id in FAN_NAMES:
        return FAN_NAMES[fan_id]

    if isinstance(reported_name, str) and reported_name.strip():
        return reported_name.strip()

    return _title_words(fan_id.replace("_speed", "", 1).replace("_", " "))


def is_fan_id(reading_id: str) -> bool:
    return reading_id in FAN_NAMES or reading_id.startswith("fan")


def _entries(value: Any) -> List[Mapping[str, Any]]:
    """Usable {id, name, value} entries of a vendor array, [] if it is not an array."""
    if not isinstance(value, list):
        return []
    return [e for e in value if isinstance(e, Mapping)]


def _entry_id(entry: Mapping[str, Any]) -> str:
    raw_id = entry.get("id")
    return raw_id if isinstance(raw_id, str) else ("" if raw_id is None else str(raw_id))


def _reading(reading_id: str, name: str, value: Any) -> Dict[str, Any]:
    return SensorReading(id=reading_id, name=name, value=value).model_dump()


# ============================================================
# NORMALIZATION
# ============================================================

def _normalize_sensors(out: Dict[str, Any], sensors: List[Mapping[str, Any]]) -> None:
    normalized: List[Dict[str, Any]] = []

    for entry in sensors:
        sensor_id = _entry_id(entry)
        value = entry.get("value")
        normalized.append(_reading(sensor_id, sensor_display_name(sensor_id, entry.get("name")), value))

        if value is None:
            continue
        if sensor_id.startswith("temp_"):
            out[sensor_id] = value
        legacy_field = SHORT_ID_FIELDS.get(sensor_id)
        if legacy_field:
            out[legacy_field] = value

    if normalized:
        out["sensors"] = normalized
    else:
        out.pop("sensors", None)


def _synthesize_sensors(out: Dict[str, Any]) -> None:
    sensors = [
        _reading(field, sensor_display_name(field), out[field])
        for field in FLAT_SENSOR_ORDER
        if out.get(field) is not None
    ]
    if sensors:
        out["sensors"] = sensors
    else:
        out.pop("sensors", None)


def _derive_main_cpu(out: Dict[str, Any]) -> None:
    if out.get(MAIN_CPU_FIELD) is not None:
        return
    cores = [out.get(f) for f in CORE_FIELDS if out.get(f) is not None]
    if not cores:
        return
    avg = mean_rounded(cores)
    if avg is not None:
        out[MAIN_CPU_FIELD] = avg


def _normalize_fans(out: Dict[str, Any], fans: List[Mapping[str, Any]]) -> None:
    if not fans:
        if out.get(FAN_FIELD) is not None:
            out["fans"] = [_reading(FAN_FIELD, FAN_NAMES[FAN_FIELD], out[FAN_FIELD])]
        else:
            out.pop("fans", None)
        return

    normalized = [
        _reading(_entry_id(f), fan_display_name(_entry_id(f), f.get("name")), f.get("value"))
        for f in fans
    ]
    out["fans"] = normalized

    by_id = {}
    for fan in normalized:
        by_id.setdefault(fan["id"], fan)
    main = next((by_id[i] for i in MAIN_FAN_IDS if i in by_id), normalized[0])
    if main["value"] is not None:
        out[FAN_FIELD] = main["value"]


def normalize(raw: Any) -> Dict[str, Any]:
    """
    Normalize a system info payload so it carries BOTH the array and the flat shape.
    Unknown vendor fields are preserved untouched.
    """
    if not isinstance(raw, Mapping):
        return {}

    out: Dict[str, Any] = dict(raw)

    # Fan readings reported inside sensors[] belong to the fans shape.
    sensors: List[Mapping[str, Any]] = []
    sensor_fans: List[Mapping[str, Any]] = []
    for entry in _entries(raw.get("sensors")):
        (sensor_fans if is_fan_id(_entry_id(entry)) else sensors).append(entry)

    fans = _entries(raw.get("fans"))
    seen_fan_ids = {_entry_id(f) for f in fans}
    fans.extend(f for f in sensor_fans if _entry_id(f) not in seen_fan_ids)

    if sensors:
        _normalize_sensors(out, sensors)
    else:
        _synthesize_sensors(out)
    _derive_main_cpu(out)

    _normalize_fans(out, fans)
    return out


# ============================================================
# API VERSION CAPABILITIES
# ============================================================

_LEADING_INT = re.compile(r"^\s*v?(\d+)", re.IGNORECASE)


def detect_api_capabilities(api_version: Optional[str]) -> ApiCapabilities:
    """
    What the box API can be expected to return, from its version string
    ("v8", "8.0", "10.2" ...). Unknown versions are treated as v4.
    """
    version = api_version or "v4"
    match = _LEADING_INT.match(str(version))
    version_num = int(match.group(1)) if match else 4
    if version_num == 0:
        version_num = 4

    return ApiCapabilities(
        version=str(version),
        has_sensors_array=version_num >= 8,
        has_fans_array=version_num >= 8,
        supports_pagination=version_num >= 15,
    )
