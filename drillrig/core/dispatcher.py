"""
Top-level controller for the drilling rig.

Maps incoming command tokens to phase changes and advances the phase
sequencer once per tick:
- drill / conveyor / retract select a phase program
- stop shuts everything down at once, pause / resume hold and restore
- reset clears the status log

start-drill-sequence, start-conveyor-sequence and reset-log are accepted
as aliases of drill, conveyor and reset.
"""

import logging
from typing import Optional, List, Callable
from dataclasses import dataclass, field
from enum import Enum, auto

from .config import SequenceConfig
from .devices import DeviceRegistry, DeviceNames, RigDevices
from .facade import DeviceFacade
from .sequencer import (
    Phase, PhaseSequencer, SequencerState, DeviceAction, ActionKind, stop_all_actions
)
from .status_display import StatusDisplay


class Command(str, Enum):
    """Recognized command tokens (exact, case-sensitive)."""
    DRILL = "drill"
    CONVEYOR = "conveyor"
    RETRACT = "retract"
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"
    RESET = "reset"

    @classmethod
    def parse(cls, token: Optional[str]) -> Optional['Command']:
        """Match a token or a long-form alias exactly, None if absent or unrecognized."""
        if token is None:
            return None
        for command in cls:
            if command.value == token:
                return command
        return _COMMAND_ALIASES.get(token)


# Long-form spellings accepted alongside the short tokens
_COMMAND_ALIASES = {
    "start-drill-sequence": Command.DRILL,
    "start-conveyor-sequence": Command.CONVEYOR,
    "reset-log": Command.RESET,
}


class RigError(Enum):
    """Controller error types."""
    NONE = auto()
    MISSING_DEVICE = auto()


@dataclass
class RigStatus:
    """Current controller status."""
    phase: Phase
    step: int = 0
    total_steps: int = 0
    step_message: str = ""
    error: RigError = RigError.NONE
    error_message: str = ""
    missing_devices: List[str] = field(default_factory=list)
    paused_phase: Optional[Phase] = None
    last_command: str = ""
    tick_count: int = 0
    sections_completed: int = 0
    initialized: bool = False


class RigController:
    """
    Tick-driven controller for the drilling rig.

    Each tick:
    1. Apply the incoming command, if any
    2. Advance the active phase program by one step
    3. Issue the resulting device actions through the facade

    Phase and step only change inside tick(), so the controller needs no
    locking as long as a single scheduler drives it.
    """

    # Commands that enter a phase program
    _START_COMMANDS = {
        Command.DRILL: Phase.PRINT_DRILL,
        Command.CONVEYOR: Phase.PRINT_CONVEYOR,
        Command.RETRACT: Phase.RETRACT,
    }

    def __init__(self,
                 registry: DeviceRegistry,
                 names: Optional[DeviceNames] = None,
                 config: Optional[SequenceConfig] = None,
                 max_lines: int = StatusDisplay.DEFAULT_MAX_LINES):
        """
        Initialize controller.

        Args:
            registry: Device registry to resolve block names from
            names: Block name per rig role
            config: Motion constants and sequencer options
            max_lines: Status panel line bound
        """
        self._registry = registry
        self._names = names or DeviceNames()
        self._config = config or SequenceConfig()

        # State
        self._state = SequencerState()
        self._error = RigError.NONE
        self._error_message = ""
        self._initialized = False
        self._last_command = ""
        self._tick_count = 0
        self._sections_completed = 0

        # Callbacks
        self._state_callbacks: List[Callable[[RigStatus], None]] = []
        self._log_callbacks: List[Callable[[str, str], None]] = []

        # Logger
        self._logger = logging.getLogger('rig')

        # Collaborators; the display header reads self._state
        self._sequencer = PhaseSequencer(self._config)
        self._display = StatusDisplay(None, max_lines, header=self._header_fields)
        self._facade = DeviceFacade(self._report, self._config.position_epsilon)
        self._devices = RigDevices()

    # === Initialization ===

    def init(self) -> bool:
        """
        Resolve every rig device.

        Returns:
            True if all blocks were found. Otherwise the controller stays
            IDLE and refuses to start a phase.
        """
        self._devices = self._registry.resolve(self._names)
        self._display.bind(self._devices.display)

        if not self._devices.complete:
            missing = ", ".join(self._devices.missing)
            self._initialized = False
            self._error = RigError.MISSING_DEVICE
            self._error_message = f"Blocks not found: {missing}"
            self._state = SequencerState()
            self._report(self._error_message)
            self._log('ERROR', self._error_message)
            self._notify_state_change()
            return False

        self._initialized = True
        self._error = RigError.NONE
        self._error_message = ""
        self._log('INFO', "All rig blocks found")
        self._notify_state_change()
        return True

    # === Tick entry point ===

    def tick(self, command: Optional[str] = None) -> None:
        """
        Run one controller step.

        Args:
            command: Command token for this tick, None for none
        """
        self._tick_count += 1

        if command is not None:
            self._handle_command(command)

        self._advance()
        # Header shows the post-tick phase and step
        self._display.render()

    def _handle_command(self, token: str) -> None:
        parsed = Command.parse(token)
        if parsed is None:
            self._log('WARNING', f"Unrecognized command: {token!r}")
            return

        self._last_command = parsed.value

        if parsed == Command.STOP:
            self.stop()
        elif parsed == Command.PAUSE:
            self.pause()
        elif parsed == Command.RESUME:
            self.resume()
        elif parsed == Command.RESET:
            self.reset_log()
        else:
            self.start(self._START_COMMANDS[parsed])

    def _advance(self) -> None:
        if self._state.phase == Phase.IDLE:
            return

        before = self._state
        message = self._sequencer.step_message(before)
        if message:
            self._report(message)

        sensors = self._facade.snapshot(self._devices, self._config)
        result = self._sequencer.advance(before, sensors)
        self._apply(result.actions)

        if (before.phase == Phase.PRINT_CONVEYOR
                and before.step == self._sequencer.program_length(Phase.PRINT_CONVEYOR) - 1
                and not result.held):
            self._sections_completed += 1
            self._log('INFO', f"Conveyor section {self._sections_completed} lowered")

        self._set_state(result.state)

    # === Phase control ===

    def start(self, phase: Phase) -> bool:
        """
        Enter a phase program at step 0.

        Args:
            phase: PRINT_DRILL, PRINT_CONVEYOR or RETRACT

        Returns:
            True if the phase was entered.
        """
        if not self._initialized:
            self._log('WARNING', f"Cannot start {phase.name}: rig not initialized")
            return False

        self._set_state(SequencerState(phase=phase))
        return True

    def stop(self) -> None:
        """Shut down projectors and welders, retract, go IDLE immediately."""
        self._report("Stopping all systems")
        self._apply(stop_all_actions(self._config))
        self._set_state(SequencerState())

    def pause(self) -> None:
        """Hold the current phase and step without touching devices."""
        if self._state.phase == Phase.IDLE:
            return
        self._set_state(SequencerState(paused_phase=self._state.phase,
                                       paused_step=self._state.step))

    def resume(self) -> bool:
        """Continue a paused phase where it stopped."""
        if self._state.paused_phase is None:
            return False
        if not self._initialized:
            self._log('WARNING', "Cannot resume: rig not initialized")
            return False
        self._set_state(SequencerState(phase=self._state.paused_phase,
                                       step=self._state.paused_step))
        return True

    def reset_log(self) -> None:
        """Clear the status log, keeping the header."""
        self._display.reset()

    # === Device actions ===

    def _apply(self, actions) -> None:
        """Issue device actions in order."""
        for action in actions:
            self._issue(action)

    def _issue(self, action: DeviceAction) -> None:
        handle = getattr(self._devices, action.role.value)

        if action.kind == ActionKind.EXTEND:
            self._facade.extend_actuator(handle, action.limit, action.speed)
        elif action.kind == ActionKind.RETRACT:
            self._facade.retract_actuator(handle, action.speed)
        elif action.kind == ActionKind.SET_COUPLER:
            self._facade.set_coupler(handle, action.enabled)
        elif action.kind == ActionKind.SET_FABRICATOR:
            self._facade.set_fabricator_active(handle, action.enabled)
        elif action.kind == ActionKind.SET_TOOL_GROUP:
            self._facade.set_tool_group_active(handle, action.enabled)

    # === State Management ===

    def _set_state(self, state: SequencerState) -> None:
        """Set current state and notify callbacks on change."""
        previous = self._state
        self._state = state

        if state.phase != previous.phase:
            self._log('INFO', f"Phase: {previous.phase.name} -> {state.phase.name}")
        if state != previous:
            self._notify_state_change()

    def _header_fields(self) -> List[str]:
        return [f"Phase: {self._state.phase.name}", f"Step: {self._state.step}"]

    # === Status and Callbacks ===

    def get_status(self) -> RigStatus:
        """Get current controller status."""
        state = self._state
        return RigStatus(
            phase=state.phase,
            step=state.step,
            total_steps=self._sequencer.program_length(state.phase),
            step_message=self._sequencer.step_message(state),
            error=self._error,
            error_message=self._error_message,
            missing_devices=list(self._devices.missing),
            paused_phase=state.paused_phase,
            last_command=self._last_command,
            tick_count=self._tick_count,
            sections_completed=self._sections_completed,
            initialized=self._initialized,
        )

    def on_state_change(self, callback: Callable[[RigStatus], None]) -> None:
        """Register state change callback."""
        self._state_callbacks.append(callback)

    def on_log(self, callback: Callable[[str, str], None]) -> None:
        """Register log callback (level, message)."""
        self._log_callbacks.append(callback)

    def _notify_state_change(self) -> None:
        status = self.get_status()
        for cb in self._state_callbacks:
            try:
                cb(status)
            except Exception as e:
                self._logger.error(f"State callback error: {e}")

    def _report(self, line: str) -> None:
        """Status line from the sequencer or the device facade."""
        self._display.write(line)
        self._emit('INFO', line)

    def _log(self, level: str, message: str) -> None:
        """Log message and notify callbacks."""
        getattr(self._logger, level.lower(), self._logger.info)(message)
        self._emit(level, message)

    def _emit(self, level: str, message: str) -> None:
        for cb in self._log_callbacks:
            try:
                cb(level, message)
            except Exception as e:
                self._logger.error(f"Log callback error: {e}")

    # === Properties ===

    @property
    def state(self) -> Phase:
        """Get current phase."""
        return self._state.phase

    @property
    def sequencer_state(self) -> SequencerState:
        return self._state

    @property
    def devices(self) -> RigDevices:
        return self._devices

    @property
    def display(self) -> StatusDisplay:
        return self._display

    @property
    def sequencer(self) -> PhaseSequencer:
        return self._sequencer

    @property
    def is_running(self) -> bool:
        """Check if a phase program is active."""
        return self._state.phase != Phase.IDLE

    @property
    def is_paused(self) -> bool:
        return self._state.paused_phase is not None
