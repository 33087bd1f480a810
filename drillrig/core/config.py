"""
Configuration for the drilling rig controller.

Typed views over the sections of settings.yaml. Missing keys fall back
to the values the rig was commissioned with.
"""

from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass

import yaml


@dataclass
class SequenceConfig:
    """Motion constants and sequencer options."""
    top_speed: float = 5.0  # m/s
    grab_speed: float = 2.0
    retract_speed: float = 5.0
    drill_speed: float = 0.1
    top_extend_limit: float = 9.9  # m
    top_connect_limit: float = 2.5
    grab_extend_limit: float = 2.3
    position_epsilon: float = 0.01  # m, 0.0 = exact comparison
    drill_completion_fabricator: str = 'conveyor'  # projector polled by drill step 2

    @classmethod
    def from_dict(cls, motion: Optional[Dict[str, Any]] = None,
                  sequencer: Optional[Dict[str, Any]] = None) -> 'SequenceConfig':
        """
        Build from the ``motion`` and ``sequencer`` config sections.

        Args:
            motion: Speeds (m/s) and limits (m)
            sequencer: position_epsilon, drill_completion_fabricator

        Returns:
            SequenceConfig with defaults for missing keys.
        """
        motion = motion or {}
        sequencer = sequencer or {}
        defaults = cls()

        target = sequencer.get('drill_completion_fabricator', defaults.drill_completion_fabricator)
        if target not in ('conveyor', 'drill'):
            raise ValueError(f"drill_completion_fabricator must be 'conveyor' or 'drill', got {target!r}")

        epsilon = float(sequencer.get('position_epsilon', defaults.position_epsilon))
        if epsilon < 0:
            raise ValueError(f"position_epsilon must be >= 0, got {epsilon}")

        return cls(
            top_speed=float(motion.get('top_speed', defaults.top_speed)),
            grab_speed=float(motion.get('grab_speed', defaults.grab_speed)),
            retract_speed=float(motion.get('retract_speed', defaults.retract_speed)),
            drill_speed=float(motion.get('drill_speed', defaults.drill_speed)),
            top_extend_limit=float(motion.get('top_extend_limit', defaults.top_extend_limit)),
            top_connect_limit=float(motion.get('top_connect_limit', defaults.top_connect_limit)),
            grab_extend_limit=float(motion.get('grab_extend_limit', defaults.grab_extend_limit)),
            position_epsilon=epsilon,
            drill_completion_fabricator=target,
        )


# Config paths to search, first match wins
CONFIG_PATHS: List[Path] = [
    Path(__file__).parent.parent / 'config' / 'settings.yaml',
    Path('/etc/drillrig/settings.yaml'),
    Path('settings.yaml'),
]


def load_config(paths: Optional[List[Path]] = None) -> dict:
    """Load configuration from the first readable YAML file."""
    config = {}

    for path in paths or CONFIG_PATHS:
        path = Path(path)
        if path.exists():
            try:
                with open(path, 'r') as f:
                    config = yaml.safe_load(f) or {}
                print(f"Loaded config from {path}")
                break
            except (OSError, yaml.YAMLError) as e:
                print(f"WARNING: Failed to load config from {path}: {e}")

    return config
