"""
Phase sequencer for the drilling rig.

Step-indexed programs that print the drill section, print and lower
conveyor sections, and retract the rig. Each tick evaluates one step:
- Action steps issue their device actions and advance
- Guarded steps advance when the guard holds, otherwise hold
  (and optionally issue fallback actions) until the next tick
"""

from typing import Optional, List, Dict, Tuple, Callable, Any
from dataclasses import dataclass, field, replace
from enum import Enum, auto

from .config import SequenceConfig


class Phase(Enum):
    """Rig phases."""
    IDLE = auto()            # Nothing commanded
    PRINT_DRILL = auto()     # Printing and lowering the drill head
    PRINT_CONVEYOR = auto()  # Printing and lowering conveyor sections (loops)
    RETRACT = auto()         # Pulling the rig back
    COMPLETE = auto()        # Shutting everything down


class RigRole(Enum):
    """Device roles on the rig. Values match RigDevices attribute names."""
    TOP_ACTUATOR = 'top_actuator'
    GRAB_ACTUATOR = 'grab_actuator'
    TOP_COUPLER = 'top_coupler'
    GRAB_COUPLER = 'grab_coupler'
    DRILL_FABRICATOR = 'drill_fabricator'
    CONVEYOR_FABRICATOR = 'conveyor_fabricator'
    TOOL_GROUP = 'tool_group'


class ActionKind(Enum):
    """Device operations the sequencer can issue."""
    EXTEND = auto()
    RETRACT = auto()
    SET_COUPLER = auto()
    SET_FABRICATOR = auto()
    SET_TOOL_GROUP = auto()


@dataclass(frozen=True)
class DeviceAction:
    """Single commanded device operation."""
    kind: ActionKind
    role: RigRole
    enabled: bool = False
    limit: float = 0.0
    speed: float = 0.0

    @classmethod
    def extend(cls, role: RigRole, limit: float, speed: float) -> 'DeviceAction':
        return cls(ActionKind.EXTEND, role, limit=limit, speed=speed)

    @classmethod
    def retract(cls, role: RigRole, speed: float) -> 'DeviceAction':
        return cls(ActionKind.RETRACT, role, speed=speed)

    @classmethod
    def coupler(cls, role: RigRole, enabled: bool) -> 'DeviceAction':
        return cls(ActionKind.SET_COUPLER, role, enabled=enabled)

    @classmethod
    def fabricator(cls, role: RigRole, enabled: bool) -> 'DeviceAction':
        return cls(ActionKind.SET_FABRICATOR, role, enabled=enabled)

    @classmethod
    def tools(cls, enabled: bool) -> 'DeviceAction':
        return cls(ActionKind.SET_TOOL_GROUP, RigRole.TOOL_GROUP, enabled=enabled)

    def __str__(self) -> str:
        if self.kind == ActionKind.EXTEND:
            return f"extend {self.role.value} to {self.limit}m at {self.speed}m/s"
        if self.kind == ActionKind.RETRACT:
            return f"retract {self.role.value} at {self.speed}m/s"
        return f"{'enable' if self.enabled else 'disable'} {self.role.value}"


@dataclass(frozen=True)
class SequencerState:
    """Phase and step index, passed into and out of every tick."""
    phase: Phase = Phase.IDLE
    step: int = 0
    paused_phase: Optional[Phase] = None
    paused_step: int = 0

    def enter(self, phase: Phase) -> 'SequencerState':
        """Switch phase, resetting the step index."""
        return replace(self, phase=phase, step=0)

    def next_step(self) -> 'SequencerState':
        return replace(self, step=self.step + 1)


@dataclass
class SensorSnapshot:
    """Static guard inputs. LiveSensorSnapshot provides the same fields."""
    grab_coupler_detachable: bool = False
    drill_section_complete: bool = False
    conveyor_section_complete: bool = False
    top_at_extend: bool = False
    top_at_connect: bool = False
    top_at_zero: bool = False
    grab_at_extend: bool = False


Guard = Callable[[Any], bool]


@dataclass(frozen=True)
class ProgramStep:
    """
    One step of a phase program.

    Without a guard the actions run and the step advances. With a guard
    the actions run and the step advances only when the guard holds;
    otherwise ``on_hold`` runs and the step is retried next tick.
    A step with ``branch`` leaves the program for that phase when the
    guard holds and simply advances when it does not.
    """
    message: str
    actions: Tuple[DeviceAction, ...] = ()
    guard: Optional[Guard] = None
    on_hold: Tuple[DeviceAction, ...] = ()
    branch: Optional[Phase] = None


@dataclass(frozen=True)
class PhaseProgram:
    """Ordered steps of a phase and the phase entered after the last one."""
    phase: Phase
    steps: Tuple[ProgramStep, ...]
    next_phase: Phase

    def __len__(self) -> int:
        return len(self.steps)


@dataclass
class TickResult:
    """Outcome of one sequencer tick."""
    state: SequencerState
    actions: List[DeviceAction] = field(default_factory=list)
    held: bool = False


def stop_all_actions(config: SequenceConfig) -> Tuple[DeviceAction, ...]:
    """Shut down projectors and welders and pull the top piston back."""
    return (
        DeviceAction.fabricator(RigRole.DRILL_FABRICATOR, False),
        DeviceAction.fabricator(RigRole.CONVEYOR_FABRICATOR, False),
        DeviceAction.tools(False),
        DeviceAction.retract(RigRole.TOP_ACTUATOR, config.retract_speed),
    )


def build_programs(config: SequenceConfig) -> Dict[Phase, PhaseProgram]:
    """
    Build the phase programs for the given motion constants.

    Args:
        config: Speeds, limits and sequencer options

    Returns:
        Program per phase (IDLE has none).
    """
    top = RigRole.TOP_ACTUATOR
    grab = RigRole.GRAB_ACTUATOR
    drill = RigRole.DRILL_FABRICATOR
    conveyor = RigRole.CONVEYOR_FABRICATOR
    drill_target = drill if config.drill_completion_fabricator == 'drill' else conveyor

    drill_program = PhaseProgram(Phase.PRINT_DRILL, (
        # Grab merge already holding a section: drill head is built
        ProgramStep("Checking if grab merge is necessary",
                    guard=lambda s: s.grab_coupler_detachable,
                    branch=Phase.PRINT_CONVEYOR),
        ProgramStep("Enable projector, and welder",
                    actions=(DeviceAction.fabricator(drill, True), DeviceAction.tools(True))),
        ProgramStep("Checking if drill section is complete",
                    guard=lambda s: s.drill_section_complete,
                    on_hold=(DeviceAction.fabricator(drill_target, False), DeviceAction.tools(False))),
        ProgramStep("Extending top piston to connect drill section",
                    actions=(DeviceAction.extend(top, config.top_extend_limit, config.top_speed),)),
        ProgramStep("Checking if top piston is extended",
                    guard=lambda s: s.top_at_extend),
    ), next_phase=Phase.PRINT_CONVEYOR)

    conveyor_program = PhaseProgram(Phase.PRINT_CONVEYOR, (
        ProgramStep("Moving all blocks to starting positions",
                    actions=(DeviceAction.retract(top, config.retract_speed),
                             DeviceAction.extend(grab, config.grab_extend_limit, config.grab_speed))),
        ProgramStep("Checking if pistons are extended",
                    guard=lambda s: s.grab_at_extend and s.top_at_zero,
                    actions=(DeviceAction.coupler(RigRole.TOP_COUPLER, True),)),
        ProgramStep("Ensuring grab merge block is still on",
                    actions=(DeviceAction.coupler(RigRole.GRAB_COUPLER, True),)),
        ProgramStep("Checking if grab merge block is engaged",
                    guard=lambda s: s.grab_coupler_detachable),
        ProgramStep("Turning off drill projector and turning on conveyor projector",
                    actions=(DeviceAction.fabricator(drill, False), DeviceAction.fabricator(conveyor, True))),
        ProgramStep("Enable projector, and welder",
                    actions=(DeviceAction.fabricator(drill, True), DeviceAction.tools(True))),
        ProgramStep("Checking if conveyor section is complete",
                    guard=lambda s: s.conveyor_section_complete,
                    on_hold=(DeviceAction.fabricator(conveyor, False), DeviceAction.tools(False))),
        ProgramStep("Extending top piston to connect drill section",
                    actions=(DeviceAction.extend(top, config.top_connect_limit, config.drill_speed),)),
        ProgramStep("Waiting for top piston to be extended",
                    guard=lambda s: s.top_at_connect),
        ProgramStep("Disengaging grab merge block",
                    actions=(DeviceAction.coupler(RigRole.GRAB_COUPLER, False),)),
        ProgramStep("Extending top piston deeper",
                    actions=(DeviceAction.extend(top, config.top_extend_limit, config.top_speed),)),
        ProgramStep("Checking if top piston is extended",
                    guard=lambda s: s.top_at_extend),
        ProgramStep("Reconnecting grab merge block",
                    actions=(DeviceAction.coupler(RigRole.GRAB_COUPLER, True),)),
    ), next_phase=Phase.PRINT_CONVEYOR)

    retract_program = PhaseProgram(Phase.RETRACT, (
        ProgramStep("Retracting rig",
                    actions=(DeviceAction.retract(top, config.retract_speed),
                             DeviceAction.coupler(RigRole.GRAB_COUPLER, True),
                             DeviceAction.coupler(RigRole.TOP_COUPLER, False))),
    ), next_phase=Phase.COMPLETE)

    complete_program = PhaseProgram(Phase.COMPLETE, (
        ProgramStep("Stopping all systems", actions=stop_all_actions(config)),
    ), next_phase=Phase.IDLE)

    return {p.phase: p for p in (drill_program, conveyor_program, retract_program, complete_program)}


class PhaseSequencer:
    """
    Step sequencer over the rig phase programs.

    ``advance`` is a pure decision: given the state and a sensor view it
    returns the next state and the device actions to issue. It never
    blocks; an unmet guard returns the state unchanged and is evaluated
    again on the next tick.
    """

    def __init__(self, config: Optional[SequenceConfig] = None):
        """
        Initialize sequencer.

        Args:
            config: Motion constants (defaults if None)
        """
        self._config = config or SequenceConfig()
        self._programs = build_programs(self._config)

    @property
    def config(self) -> SequenceConfig:
        return self._config

    def program(self, phase: Phase) -> Optional[PhaseProgram]:
        """Get the program of a phase, None for IDLE."""
        return self._programs.get(phase)

    def program_length(self, phase: Phase) -> int:
        program = self._programs.get(phase)
        return len(program) if program else 0

    def step_message(self, state: SequencerState) -> str:
        """Describe the step the state points at, empty when idle."""
        program = self._programs.get(state.phase)
        if program is None or state.step >= len(program):
            return ""
        return program.steps[state.step].message

    def advance(self, state: SequencerState, sensors: Any) -> TickResult:
        """
        Evaluate one step.

        Args:
            state: Current phase and step
            sensors: SensorSnapshot or LiveSensorSnapshot

        Returns:
            TickResult with the new state and the actions to issue, in order.
        """
        program = self._programs.get(state.phase)
        if program is None:
            return TickResult(state)

        if state.step >= len(program):
            # Out-of-range step (e.g. restored from a shorter program)
            return TickResult(state.enter(program.next_phase))

        step = program.steps[state.step]

        if step.guard is None:
            return TickResult(self._next(program, state), list(step.actions))

        if step.branch is not None:
            if step.guard(sensors):
                return TickResult(state.enter(step.branch))
            return TickResult(self._next(program, state), list(step.actions))

        if step.guard(sensors):
            return TickResult(self._next(program, state), list(step.actions))

        return TickResult(state, list(step.on_hold), held=True)

    def _next(self, program: PhaseProgram, state: SequencerState) -> SequencerState:
        """Advance the step, leaving the program after its last step."""
        advanced = state.next_step()
        if advanced.step >= len(program):
            return advanced.enter(program.next_phase)
        return advanced
