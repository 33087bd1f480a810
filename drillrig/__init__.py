"""Drilling Rig Controller: tick-driven sequencer for a piston/merge/projector drilling rig."""

__version__ = "1.0.0"
