"""
Device model and registry for the drilling rig.

Holds the blocks the controller drives (pistons, merge blocks,
projectors, welders, the LCD panel) and resolves configured names
to device handles.
"""

import logging
import threading
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field, asdict
from enum import Enum


class DeviceKind(Enum):
    """Device kind enumeration."""
    ACTUATOR = "actuator"
    COUPLER = "coupler"
    FABRICATOR = "fabricator"
    TOOL = "tool"
    TOOL_GROUP = "tool_group"
    DISPLAY = "display"


@dataclass
class Actuator:
    """Linear actuator (piston) with position feedback."""
    name: str
    current_position: float = 0.0  # m, written by the hardware side only
    velocity: float = 0.0  # m/s, + extends, - retracts
    max_limit: float = 10.0  # m
    kind: DeviceKind = field(default=DeviceKind.ACTUATOR, init=False)


@dataclass
class Coupler:
    """Merge block pair."""
    name: str
    is_connected: bool = False  # physically mated
    enabled: bool = True  # commanded
    kind: DeviceKind = field(default=DeviceKind.COUPLER, init=False)


@dataclass
class Fabricator:
    """Block projector that materializes a structure in units."""
    name: str
    enabled: bool = False  # commanded
    is_active: bool = False  # projecting
    remaining_units: int = 0
    kind: DeviceKind = field(default=DeviceKind.FABRICATOR, init=False)


@dataclass
class Tool:
    """Single tool block (welder, grinder, ...)."""
    name: str
    tool_kind: str = "welder"
    enabled: bool = False
    kind: DeviceKind = field(default=DeviceKind.TOOL, init=False)


@dataclass
class ToolGroup:
    """Named group of blocks toggled together."""
    name: str
    members: List[Any] = field(default_factory=list)
    tool_kind: str = "welder"  # only members of this kind are toggled
    kind: DeviceKind = field(default=DeviceKind.TOOL_GROUP, init=False)


@dataclass
class Display:
    """Text panel."""
    name: str
    text: str = ""
    kind: DeviceKind = field(default=DeviceKind.DISPLAY, init=False)

    def write_text(self, text: str, append: bool = False) -> None:
        self.text = self.text + text if append else text


# Fields an operator may write on a bench device, with their types
WRITABLE_FIELDS = {
    DeviceKind.ACTUATOR: {'current_position': float, 'velocity': float, 'max_limit': float},
    DeviceKind.COUPLER: {'is_connected': bool, 'enabled': bool},
    DeviceKind.FABRICATOR: {'enabled': bool, 'is_active': bool, 'remaining_units': int},
    DeviceKind.TOOL: {'enabled': bool},
    DeviceKind.DISPLAY: {'text': str},
}

# Lower bounds for numeric bench writes
FIELD_MINIMUMS = {
    'remaining_units': 0,
}


@dataclass
class DeviceNames:
    """Block names bound to each rig role."""
    top_actuator: str = "[MINE] Piston Top"
    grab_actuator: str = "[MINE] Piston Grab"
    tool_group: str = "[MINE] Welder Top"
    drill_fabricator: str = "[MINE] Projector Top"
    conveyor_fabricator: str = "[MINE] Projector Conveyor"
    top_coupler: str = "[MINE] Merge Top"
    grab_coupler: str = "[MINE] Merge Grab"
    display: str = "[MINE] LCD Screen"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DeviceNames':
        data = data or {}
        known = {k: str(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class RigDevices:
    """Resolved handles for every rig role. Absent handles are None."""
    top_actuator: Optional[Actuator] = None
    grab_actuator: Optional[Actuator] = None
    tool_group: Optional[ToolGroup] = None
    drill_fabricator: Optional[Fabricator] = None
    conveyor_fabricator: Optional[Fabricator] = None
    top_coupler: Optional[Coupler] = None
    grab_coupler: Optional[Coupler] = None
    display: Optional[Display] = None
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True if every role resolved."""
        return not self.missing


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'on', 'yes')
    return bool(value)


class DeviceRegistry:
    """
    Registry of named device blocks.

    Supports:
    - Typed lookups that return None for absent names or wrong kinds
    - Building bench devices from the YAML ``devices`` section
    - Operator writes of sensed values (bench mode)
    """

    _ROLE_KINDS = {
        'top_actuator': DeviceKind.ACTUATOR,
        'grab_actuator': DeviceKind.ACTUATOR,
        'tool_group': DeviceKind.TOOL_GROUP,
        'drill_fabricator': DeviceKind.FABRICATOR,
        'conveyor_fabricator': DeviceKind.FABRICATOR,
        'top_coupler': DeviceKind.COUPLER,
        'grab_coupler': DeviceKind.COUPLER,
        'display': DeviceKind.DISPLAY,
    }

    def __init__(self, devices: Optional[List[Any]] = None):
        """
        Initialize registry.

        Args:
            devices: Initial device blocks
        """
        self._devices: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger('rig.devices')

        for device in devices or []:
            self.add(device)

    def add(self, device: Any) -> None:
        """Register a device block under its name."""
        with self._lock:
            self._devices[device.name] = device

    def get(self, name: str, kind: Optional[DeviceKind] = None) -> Optional[Any]:
        """
        Look up a device by name.

        Args:
            name: Block name
            kind: Required device kind, or None for any

        Returns:
            Device handle, or None if absent or of another kind.
        """
        device = self._devices.get(name)
        if device is None:
            return None
        if kind is not None and device.kind != kind:
            self._logger.warning(f"Block '{name}' is a {device.kind.value}, expected {kind.value}")
            return None
        return device

    def get_actuator(self, name: str) -> Optional[Actuator]:
        return self.get(name, DeviceKind.ACTUATOR)

    def get_coupler(self, name: str) -> Optional[Coupler]:
        return self.get(name, DeviceKind.COUPLER)

    def get_fabricator(self, name: str) -> Optional[Fabricator]:
        return self.get(name, DeviceKind.FABRICATOR)

    def get_tool_group(self, name: str) -> Optional[ToolGroup]:
        return self.get(name, DeviceKind.TOOL_GROUP)

    def get_display(self, name: str) -> Optional[Display]:
        return self.get(name, DeviceKind.DISPLAY)

    def resolve(self, names: DeviceNames) -> RigDevices:
        """
        Bind every rig role to its device block.

        Args:
            names: Block names per role

        Returns:
            RigDevices with unresolved names listed in ``missing``.
        """
        resolved = RigDevices()
        for role, kind in self._ROLE_KINDS.items():
            name = getattr(names, role)
            device = self.get(name, kind)
            if device is None:
                resolved.missing.append(name)
            setattr(resolved, role, device)
        return resolved

    def set_value(self, name: str, field_name: str, value: Any) -> bool:
        """
        Write a sensed or commanded value on a device.

        Args:
            name: Block name
            field_name: Attribute to write
            value: New value (coerced to the field type)

        Returns:
            True if written.
        """
        device = self.get(name)
        if device is None:
            self._logger.error(f"Unknown block '{name}'")
            return False

        fields = WRITABLE_FIELDS.get(device.kind, {})
        if field_name not in fields:
            self._logger.error(f"Field '{field_name}' is not writable on {device.kind.value} '{name}'")
            return False

        field_type = fields[field_name]
        try:
            coerced = _parse_bool(value) if field_type is bool else field_type(value)
        except (TypeError, ValueError):
            self._logger.error(f"Invalid value {value!r} for {name}.{field_name}")
            return False

        minimum = FIELD_MINIMUMS.get(field_name)
        if minimum is not None and coerced < minimum:
            self._logger.error(f"{name}.{field_name} must be >= {minimum}, got {coerced!r}")
            return False

        with self._lock:
            setattr(device, field_name, coerced)
        self._logger.debug(f"{name}.{field_name} = {coerced!r}")
        return True

    def describe(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Serialize one device, or all devices keyed by name."""
        with self._lock:
            if name is not None:
                device = self._devices.get(name)
                return self._to_dict(device) if device is not None else {}
            return {key: self._to_dict(device) for key, device in self._devices.items()}

    @staticmethod
    def _to_dict(device: Any) -> Dict[str, Any]:
        if isinstance(device, ToolGroup):
            return {
                'name': device.name,
                'kind': device.kind.value,
                'tool_kind': device.tool_kind,
                'members': [DeviceRegistry._to_dict(m) for m in device.members],
            }
        data = asdict(device)
        data['kind'] = device.kind.value
        return data

    @property
    def names(self) -> list:
        """Get list of registered block names."""
        return list(self._devices.keys())

    # ==========================================
    # Bench construction from configuration
    # ==========================================

    @classmethod
    def from_config(cls, blocks: Optional[List[Dict[str, Any]]]) -> 'DeviceRegistry':
        """
        Build a bench registry from the ``bench.blocks`` config section.

        Each entry has ``name`` and ``kind`` plus optional initial values.
        Tool groups list their members inline under ``members``.

        Args:
            blocks: List of block dictionaries

        Returns:
            Populated DeviceRegistry.
        """
        registry = cls()
        for entry in blocks or []:
            device = cls._build(entry)
            if device is not None:
                registry.add(device)
        return registry

    @classmethod
    def _build(cls, entry: Dict[str, Any]) -> Optional[Any]:
        logger = logging.getLogger('rig.devices')
        try:
            kind = DeviceKind(entry.get('kind', ''))
        except ValueError:
            logger.error(f"Unknown block kind in config: {entry!r}")
            return None

        name = entry.get('name')
        if not name:
            logger.error(f"Block without name in config: {entry!r}")
            return None

        if kind == DeviceKind.ACTUATOR:
            return Actuator(
                name,
                current_position=float(entry.get('current_position', 0.0)),
                max_limit=float(entry.get('max_limit', 10.0)),
            )
        if kind == DeviceKind.COUPLER:
            return Coupler(
                name,
                is_connected=bool(entry.get('is_connected', False)),
                enabled=bool(entry.get('enabled', True)),
            )
        if kind == DeviceKind.FABRICATOR:
            return Fabricator(
                name,
                enabled=bool(entry.get('enabled', False)),
                is_active=bool(entry.get('is_active', False)),
                remaining_units=int(entry.get('remaining_units', 0)),
            )
        if kind == DeviceKind.TOOL:
            return Tool(name, tool_kind=entry.get('tool_kind', 'welder'))
        if kind == DeviceKind.TOOL_GROUP:
            members = [m for m in (cls._build(e) for e in entry.get('members', [])) if m is not None]
            return ToolGroup(name, members=members, tool_kind=entry.get('tool_kind', 'welder'))
        return Display(name)
