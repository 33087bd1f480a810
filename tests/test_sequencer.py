"""Tests for the phase sequencer programs."""

from dataclasses import replace

from drillrig.core import PhaseSequencer, SequencerState, Phase, SequenceConfig
from drillrig.core.sequencer import (
    SensorSnapshot, DeviceAction, RigRole, stop_all_actions
)


ALL_MET = SensorSnapshot(
    grab_coupler_detachable=True,
    drill_section_complete=True,
    conveyor_section_complete=True,
    top_at_extend=True,
    top_at_connect=True,
    top_at_zero=True,
    grab_at_extend=True,
)
NONE_MET = SensorSnapshot()

TOP = RigRole.TOP_ACTUATOR
GRAB = RigRole.GRAB_ACTUATOR
DRILL = RigRole.DRILL_FABRICATOR
CONVEYOR = RigRole.CONVEYOR_FABRICATOR


def at(phase: Phase, step: int = 0) -> SequencerState:
    return SequencerState(phase=phase, step=step)


class TestDrillProgram:
    """Tests for the drill section program."""

    def test_grab_engaged_skips_to_conveyor(self, sequencer: PhaseSequencer) -> None:
        """Test grab merge already engaged skips drilling with no actions."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 0), ALL_MET)
        assert result.state == at(Phase.PRINT_CONVEYOR, 0)
        assert result.actions == []

    def test_grab_not_engaged_advances(self, sequencer: PhaseSequencer) -> None:
        """Test drill program continues when the grab merge is connected."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 0), NONE_MET)
        assert result.state == at(Phase.PRINT_DRILL, 1)
        assert result.actions == []

    def test_enable_projector_and_welders(self, sequencer: PhaseSequencer) -> None:
        """Test step 1 enables the drill projector and the welders."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 1), NONE_MET)
        assert result.state.step == 2
        assert result.actions == [DeviceAction.fabricator(DRILL, True), DeviceAction.tools(True)]

    def test_incomplete_section_holds_and_disables(self, sequencer: PhaseSequencer) -> None:
        """Test step 2 polls the conveyor projector and disables it while holding."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 2), NONE_MET)
        assert result.held
        assert result.state == at(Phase.PRINT_DRILL, 2)
        assert result.actions == [DeviceAction.fabricator(CONVEYOR, False), DeviceAction.tools(False)]

    def test_complete_section_advances(self, sequencer: PhaseSequencer) -> None:
        """Test step 2 advances once the section is complete."""
        snapshot = replace(NONE_MET, drill_section_complete=True)
        result = sequencer.advance(at(Phase.PRINT_DRILL, 2), snapshot)
        assert result.state.step == 3
        assert result.actions == []

    def test_extend_top_piston(self, sequencer: PhaseSequencer) -> None:
        """Test step 3 extends the top piston to full extension."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 3), NONE_MET)
        assert result.actions == [DeviceAction.extend(TOP, 9.9, 5.0)]
        assert result.state.step == 4

    def test_end_of_program_enters_conveyor(self, sequencer: PhaseSequencer) -> None:
        """Test leaving the last step enters the conveyor program at step 0."""
        held = sequencer.advance(at(Phase.PRINT_DRILL, 4), NONE_MET)
        assert held.state == at(Phase.PRINT_DRILL, 4)

        result = sequencer.advance(at(Phase.PRINT_DRILL, 4), ALL_MET)
        assert result.state == at(Phase.PRINT_CONVEYOR, 0)

    def test_drill_projector_target(self) -> None:
        """Test the completion check can be pointed at the drill projector."""
        sequencer = PhaseSequencer(SequenceConfig(drill_completion_fabricator='drill'))
        result = sequencer.advance(at(Phase.PRINT_DRILL, 2), NONE_MET)
        assert result.actions == [DeviceAction.fabricator(DRILL, False), DeviceAction.tools(False)]


class TestConveyorProgram:
    """Tests for the conveyor section program."""

    def test_pistons_in_position_engage_top_merge(self, sequencer: PhaseSequencer) -> None:
        """Test step 1 engages the top merge once both pistons are in place."""
        snapshot = replace(NONE_MET, grab_at_extend=True, top_at_zero=True)
        result = sequencer.advance(at(Phase.PRINT_CONVEYOR, 1), snapshot)
        assert result.state == at(Phase.PRINT_CONVEYOR, 2)
        assert result.actions == [DeviceAction.coupler(RigRole.TOP_COUPLER, True)]

    def test_pistons_out_of_position_hold(self, sequencer: PhaseSequencer) -> None:
        """Test step 1 holds while only one piston is in place."""
        snapshot = replace(NONE_MET, grab_at_extend=True)
        result = sequencer.advance(at(Phase.PRINT_CONVEYOR, 1), snapshot)
        assert result.held
        assert result.actions == []

    def test_incomplete_conveyor_section_disables(self, sequencer: PhaseSequencer) -> None:
        """Test step 6 disables projector and welders while the section prints."""
        result = sequencer.advance(at(Phase.PRINT_CONVEYOR, 6), NONE_MET)
        assert result.state == at(Phase.PRINT_CONVEYOR, 6)
        assert result.actions == [DeviceAction.fabricator(CONVEYOR, False), DeviceAction.tools(False)]

    def test_full_cycle(self, sequencer: PhaseSequencer) -> None:
        """Test a full cycle issues the documented actions and loops to step 0."""
        state = at(Phase.PRINT_CONVEYOR, 0)
        actions = []
        phases = []

        for _ in range(13):
            result = sequencer.advance(state, ALL_MET)
            actions.extend(result.actions)
            state = result.state
            phases.append(state.phase)

        assert state == at(Phase.PRINT_CONVEYOR, 0)
        assert Phase.IDLE not in phases
        assert actions == [
            DeviceAction.retract(TOP, 5.0),
            DeviceAction.extend(GRAB, 2.3, 2.0),
            DeviceAction.coupler(RigRole.TOP_COUPLER, True),
            DeviceAction.coupler(RigRole.GRAB_COUPLER, True),
            DeviceAction.fabricator(DRILL, False),
            DeviceAction.fabricator(CONVEYOR, True),
            DeviceAction.fabricator(DRILL, True),
            DeviceAction.tools(True),
            DeviceAction.extend(TOP, 2.5, 0.1),
            DeviceAction.coupler(RigRole.GRAB_COUPLER, False),
            DeviceAction.extend(TOP, 9.9, 5.0),
            DeviceAction.coupler(RigRole.GRAB_COUPLER, True),
        ]


class TestSingleActionPhases:
    """Tests for retract, complete and idle."""

    def test_retract(self, sequencer: PhaseSequencer) -> None:
        """Test retract pulls back, re-engages grab, releases top, then completes."""
        result = sequencer.advance(at(Phase.RETRACT), NONE_MET)
        assert result.state == at(Phase.COMPLETE)
        assert result.actions == [
            DeviceAction.retract(TOP, 5.0),
            DeviceAction.coupler(RigRole.GRAB_COUPLER, True),
            DeviceAction.coupler(RigRole.TOP_COUPLER, False),
        ]

    def test_complete_stops_all(self, sequencer: PhaseSequencer) -> None:
        """Test complete issues the stop-all actions and goes idle."""
        result = sequencer.advance(at(Phase.COMPLETE), NONE_MET)
        assert result.state == at(Phase.IDLE)
        assert result.actions == list(stop_all_actions(sequencer.config))

    def test_idle_does_nothing(self, sequencer: PhaseSequencer) -> None:
        """Test idle issues nothing and keeps its state."""
        result = sequencer.advance(at(Phase.IDLE), ALL_MET)
        assert result.state == at(Phase.IDLE)
        assert result.actions == []


class TestSequencerProperties:
    """Invariants across every program."""

    def test_unmet_guard_holds_step(self, sequencer: PhaseSequencer) -> None:
        """Test every guarded step keeps its state while the guard is unmet."""
        checked = 0
        for phase in (Phase.PRINT_DRILL, Phase.PRINT_CONVEYOR):
            program = sequencer.program(phase)
            for index, step in enumerate(program.steps):
                if step.guard is None or step.branch is not None:
                    continue
                state = at(phase, index)
                for _ in range(3):
                    assert sequencer.advance(state, NONE_MET).state == state
                checked += 1
        assert checked == 7

    def test_step_never_reaches_program_length(self, sequencer: PhaseSequencer) -> None:
        """Test the step index stays inside the program across many ticks."""
        for start in (Phase.PRINT_DRILL, Phase.PRINT_CONVEYOR, Phase.RETRACT):
            state = at(start)
            for _ in range(40):
                state = sequencer.advance(state, ALL_MET).state
                length = sequencer.program_length(state.phase)
                assert state.step == 0 or state.step < length

    def test_out_of_range_step_leaves_program(self, sequencer: PhaseSequencer) -> None:
        """Test a stale out-of-range step moves on to the next phase."""
        result = sequencer.advance(at(Phase.PRINT_DRILL, 9), NONE_MET)
        assert result.state == at(Phase.PRINT_CONVEYOR, 0)

    def test_step_messages(self, sequencer: PhaseSequencer) -> None:
        """Test each step has a narration line and idle has none."""
        assert sequencer.step_message(at(Phase.PRINT_DRILL, 0)) == "Checking if grab merge is necessary"
        assert sequencer.step_message(at(Phase.PRINT_CONVEYOR, 12)) == "Reconnecting grab merge block"
        assert sequencer.step_message(at(Phase.IDLE)) == ""
        assert sequencer.program_length(Phase.PRINT_DRILL) == 5
        assert sequencer.program_length(Phase.PRINT_CONVEYOR) == 13
