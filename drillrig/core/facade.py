"""
Device facade for the drilling rig.

Typed pass-through operations over pistons, merge blocks, projectors
and welder groups. Holds no state; every call reports one status line.
"""

from typing import Optional, Callable

from .config import SequenceConfig
from .devices import Actuator, Coupler, Fabricator, ToolGroup, Tool, RigDevices


LogSink = Callable[[str], None]


class DeviceFacade:
    """
    Pass-through operations over device handles.

    Handles may be None (block not found). Such calls are reported
    and skipped, and sensor reads on them return False.
    """

    def __init__(self, sink: LogSink, position_epsilon: float = 0.01):
        """
        Initialize facade.

        Args:
            sink: Receives one status line per operation
            position_epsilon: Tolerance for "actuator at limit" in meters
        """
        self._sink = sink
        self._epsilon = position_epsilon

    @property
    def position_epsilon(self) -> float:
        return self._epsilon

    # === Actuators ===

    def extend_actuator(self, piston: Optional[Actuator], limit: float, speed: float) -> None:
        if piston is None:
            self._sink("Cannot extend piston: not found")
            return
        piston.max_limit = limit
        piston.velocity = speed
        self._sink(f"Extending piston {piston.name} to {limit}m at {speed}m/s")

    def retract_actuator(self, piston: Optional[Actuator], speed: float) -> None:
        if piston is None:
            self._sink("Cannot retract piston: not found")
            return
        piston.velocity = -speed
        self._sink(f"Retracting piston {piston.name} at {speed}m/s")

    def is_actuator_at_limit(self, piston: Optional[Actuator], limit: float) -> bool:
        if piston is None:
            self._sink(f"Piston not found, limit {limit}m not reached")
            return False
        at_limit = abs(piston.current_position - limit) <= self._epsilon
        self._sink(f"Piston {piston.name} at {limit}m: {at_limit}")
        return at_limit

    # === Couplers ===

    def is_coupler_detachable(self, merge: Optional[Coupler]) -> bool:
        """
        Report the merge block "engaged" signal.

        True while the merge block is NOT physically connected.
        """
        if merge is None:
            self._sink("Merge block not found")
            return False
        detachable = not merge.is_connected
        self._sink(f"Merge block {merge.name} is {'engaged' if detachable else 'disengaged'}")
        return detachable

    def set_coupler(self, merge: Optional[Coupler], enabled: bool) -> None:
        if merge is None:
            self._sink("Cannot toggle merge block: not found")
            return
        merge.enabled = enabled
        self._sink(f"Merge block {merge.name} is now {'engaged' if enabled else 'disengaged'}")

    # === Fabricators ===

    def is_fabrication_complete(self, projector: Optional[Fabricator]) -> bool:
        if projector is None:
            self._sink("Projector not found")
            return False
        complete = projector.is_active and projector.remaining_units == 0
        self._sink(f"Projection on {projector.name} is complete: {complete}")
        return complete

    def set_fabricator_active(self, projector: Optional[Fabricator], enabled: bool) -> None:
        if projector is None:
            self._sink("Cannot toggle projector: not found")
            return
        projector.enabled = enabled
        self._sink(f"Projector {projector.name} is now {'enabled' if enabled else 'disabled'}")

    # === Tool groups ===

    def set_tool_group_active(self, group: Optional[ToolGroup], enabled: bool) -> None:
        if group is None:
            self._sink("No welder group found")
            return

        for block in group.members:
            if isinstance(block, Tool) and block.tool_kind == group.tool_kind:
                block.enabled = enabled

        self._sink(f"Welders in group {group.name} are now {'enabled' if enabled else 'disabled'}")

    def snapshot(self, devices: RigDevices, config: SequenceConfig) -> 'LiveSensorSnapshot':
        """Sensor view for one tick, read through this facade on demand."""
        return LiveSensorSnapshot(self, devices, config)


class LiveSensorSnapshot:
    """
    Guard inputs for one tick, read lazily through the facade.

    Only the guards the active step evaluates are read (and reported).
    Each value is read at most once per tick.
    """

    def __init__(self, facade: DeviceFacade, devices: RigDevices, config: SequenceConfig):
        self._facade = facade
        self._devices = devices
        self._config = config
        self._cache = {}

    def _read(self, key: str, reader: Callable[[], bool]) -> bool:
        if key not in self._cache:
            self._cache[key] = reader()
        return self._cache[key]

    @property
    def grab_coupler_detachable(self) -> bool:
        return self._read('grab_coupler_detachable',
                          lambda: self._facade.is_coupler_detachable(self._devices.grab_coupler))

    @property
    def drill_section_complete(self) -> bool:
        # The drill program polls the conveyor projector unless configured otherwise
        if self._config.drill_completion_fabricator == 'drill':
            target = self._devices.drill_fabricator
        else:
            target = self._devices.conveyor_fabricator
        return self._read('drill_section_complete',
                          lambda: self._facade.is_fabrication_complete(target))

    @property
    def conveyor_section_complete(self) -> bool:
        return self._read('conveyor_section_complete',
                          lambda: self._facade.is_fabrication_complete(self._devices.conveyor_fabricator))

    @property
    def top_at_extend(self) -> bool:
        return self._read('top_at_extend', lambda: self._facade.is_actuator_at_limit(
            self._devices.top_actuator, self._config.top_extend_limit))

    @property
    def top_at_connect(self) -> bool:
        return self._read('top_at_connect', lambda: self._facade.is_actuator_at_limit(
            self._devices.top_actuator, self._config.top_connect_limit))

    @property
    def top_at_zero(self) -> bool:
        return self._read('top_at_zero', lambda: self._facade.is_actuator_at_limit(
            self._devices.top_actuator, 0.0))

    @property
    def grab_at_extend(self) -> bool:
        return self._read('grab_at_extend', lambda: self._facade.is_actuator_at_limit(
            self._devices.grab_actuator, self._config.grab_extend_limit))
