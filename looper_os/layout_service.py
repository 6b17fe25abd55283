"""Device layout resolution.

A device type (``JamManStereo``, ``JamManSoloXT`` ...) decides two
things: the name of the directory created under the target root, and
how many slots that directory holds.  Layouts are looked up by exact
name first, then case-insensitively.  There is no fallback layout: an
unknown device type is a configuration error.

Extra layouts (or overrides of the built-in ones) can be supplied via
the ``layouts`` key of ``config.json``::

    {
      "layouts": {
        "JamManExpress": {"root_dir_name": "JamManExpress",
                           "capacity_policy": "demand", "slot_capacity": null}
      }
    }
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import ConfigInvalid, InvalidPolicy


class CapacityPolicy(str, Enum):
    """How many slot directories a device root holds."""

    FIXED = "fixed"
    DEMAND = "demand"


def parse_capacity_policy(value: Any) -> CapacityPolicy:
    if isinstance(value, CapacityPolicy):
        return value
    text = str(value or "").strip().lower()
    if text == "fixed":
        return CapacityPolicy.FIXED
    if text in {"demand", "demand-sized", "demand_sized"}:
        return CapacityPolicy.DEMAND
    raise InvalidPolicy(f"Unknown capacity policy: {value!r}")


@dataclass(frozen=True)
class DeviceLayout:
    """Root directory name and slot capacity for one device type.

    ``slot_capacity`` is ``None`` under the demand-sized policy, where the
    number of slots follows the number of eligible source files.
    """

    device_type: str
    root_dir_name: str
    capacity_policy: CapacityPolicy = CapacityPolicy.FIXED
    slot_capacity: Optional[int] = 99

    def __post_init__(self) -> None:
        if self.capacity_policy is CapacityPolicy.FIXED:
            if self.slot_capacity is None or self.slot_capacity < 1:
                raise ConfigInvalid(
                    f"Fixed layout '{self.device_type}' needs a positive slot capacity, got {self.slot_capacity!r}"
                )

    def slot_count_for(self, eligible_files: int) -> int:
        """Return how many slot directories the tree should contain."""
        if self.capacity_policy is CapacityPolicy.FIXED:
            return int(self.slot_capacity)
        return eligible_files


BUILTIN_LAYOUTS: Dict[str, DeviceLayout] = {
    "JamManStereo": DeviceLayout("JamManStereo", "JamManStereo", CapacityPolicy.FIXED, 99),
    "JamManSoloXT": DeviceLayout("JamManSoloXT", "JamManSoloXT", CapacityPolicy.FIXED, 99),
}


def _layout_from_dict(device_type: str, data: Dict[str, Any]) -> DeviceLayout:
    policy = parse_capacity_policy(data.get("capacity_policy", "fixed"))
    capacity = data.get("slot_capacity", 99 if policy is CapacityPolicy.FIXED else None)
    if policy is CapacityPolicy.DEMAND:
        capacity = None
    return DeviceLayout(
        device_type=device_type,
        root_dir_name=str(data.get("root_dir_name") or device_type),
        capacity_policy=policy,
        slot_capacity=capacity,
    )


class LayoutService:
    """Resolve device types to :class:`DeviceLayout` values."""

    def __init__(self, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.layouts: Dict[str, DeviceLayout] = dict(BUILTIN_LAYOUTS)
        for name, data in (overrides or {}).items():
            self.layouts[name] = _layout_from_dict(name, data or {})

    def device_types(self) -> List[str]:
        return sorted(self.layouts)

    def resolve(self, device_type: str) -> DeviceLayout:
        """Return the layout for ``device_type`` or raise :class:`ConfigInvalid`."""
        name = (device_type or "").strip()
        if name in self.layouts:
            return self.layouts[name]
        lower = name.lower()
        for key, layout in self.layouts.items():
            if key.lower() == lower:
                return layout
        known = ", ".join(self.device_types())
        raise ConfigInvalid(f"Unsupported device type: {device_type!r} (known: {known})")
