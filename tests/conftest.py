"""Pytest fixtures for drilling rig tests."""

from typing import List

import pytest

from drillrig.core import DeviceRegistry, DeviceNames, RigController, PhaseSequencer, SequenceConfig
from drillrig.core.devices import Actuator, Coupler, Fabricator, Tool, ToolGroup, Display


NAMES = DeviceNames()


def build_registry(skip: tuple = ()) -> DeviceRegistry:
    """Bench registry with every rig block, minus the names in ``skip``."""
    blocks = [
        Actuator(NAMES.top_actuator),
        Actuator(NAMES.grab_actuator),
        Coupler(NAMES.top_coupler, enabled=False),
        Coupler(NAMES.grab_coupler, is_connected=True),
        Fabricator(NAMES.drill_fabricator),
        Fabricator(NAMES.conveyor_fabricator),
        ToolGroup(NAMES.tool_group, members=[
            Tool("[MINE] Welder 1"),
            Tool("[MINE] Welder 2"),
            Tool("[MINE] Welder Light", tool_kind="light"),
        ]),
        Display(NAMES.display),
    ]
    return DeviceRegistry([b for b in blocks if b.name not in skip])


@pytest.fixture
def registry() -> DeviceRegistry:
    """Complete bench registry."""
    return build_registry()


@pytest.fixture
def controller(registry: DeviceRegistry) -> RigController:
    """Initialized controller over the bench registry."""
    rig = RigController(registry, NAMES, SequenceConfig())
    assert rig.init()
    return rig


@pytest.fixture
def sequencer() -> PhaseSequencer:
    """Sequencer with the commissioned motion constants."""
    return PhaseSequencer(SequenceConfig())


@pytest.fixture
def lines() -> List[str]:
    """Collecting log sink."""
    return []
