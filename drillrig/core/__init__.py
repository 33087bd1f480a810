"""
Core modules for the Drilling Rig Controller.

Provides the device model and registry, the device facade, the phase
sequencer, the tick-driven controller and its status display.
"""

from .devices import DeviceRegistry, DeviceNames, RigDevices
from .facade import DeviceFacade
from .sequencer import PhaseSequencer, SequencerState, Phase
from .dispatcher import RigController, Command, RigStatus
from .status_display import StatusDisplay
from .scheduler import CommandQueue, TickScheduler
from .config import SequenceConfig, load_config

__all__ = [
    'DeviceRegistry',
    'DeviceNames',
    'RigDevices',
    'DeviceFacade',
    'PhaseSequencer',
    'SequencerState',
    'Phase',
    'RigController',
    'Command',
    'RigStatus',
    'StatusDisplay',
    'CommandQueue',
    'TickScheduler',
    'SequenceConfig',
    'load_config',
]
