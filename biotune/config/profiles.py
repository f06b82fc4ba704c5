# config/profiles.py

from dataclasses import dataclass
from typing import Dict, List, Tuple

from biotune.core.biofeedback.reading import BiofeedbackProfile


@dataclass(frozen=True)
class ScenarioTimeline:
    """Scripted sequence of (elapsed seconds, profile name) checkpoints"""
    name: str
    description: str
    duration: float
    checkpoints: Tuple[Tuple[float, str], ...]

    @property
    def initial_profile(self) -> str:
        return self.checkpoints[0][1]


BIOFEEDBACK_PROFILES: Dict[str, BiofeedbackProfile] = {
    "relaxed": BiofeedbackProfile(
        name="relaxed",
        description="Calm, rested state with slow breathing",
        heart_rate=62.0, heart_rate_variability=75.0,
        arousal=20.0, valence=70.0,
        respiration_rate=10.0, skin_conductance=2.0, muscle_tension=15.0,
    ),
    "focused": BiofeedbackProfile(
        name="focused",
        description="Engaged, moderately activated attention",
        heart_rate=72.0, heart_rate_variability=60.0,
        arousal=50.0, valence=60.0,
        respiration_rate=14.0, skin_conductance=4.0, muscle_tension=35.0,
    ),
    "stressed": BiofeedbackProfile(
        name="stressed",
        description="Elevated sympathetic activity with negative affect",
        heart_rate=95.0, heart_rate_variability=30.0,
        arousal=80.0, valence=30.0,
        respiration_rate=20.0, skin_conductance=7.5, muscle_tension=70.0,
    ),
    "anxious": BiofeedbackProfile(
        name="anxious",
        description="High arousal, strongly negative valence, shallow breathing",
        heart_rate=100.0, heart_rate_variability=25.0,
        arousal=85.0, valence=25.0,
        respiration_rate=22.0, skin_conductance=8.5, muscle_tension=75.0,
    ),
    "energized": BiofeedbackProfile(
        name="energized",
        description="High arousal with positive affect",
        heart_rate=88.0, heart_rate_variability=55.0,
        arousal=75.0, valence=80.0,
        respiration_rate=17.0, skin_conductance=5.5, muscle_tension=45.0,
    ),
    "fatigued": BiofeedbackProfile(
        name="fatigued",
        description="Low energy with flat or low mood",
        heart_rate=60.0, heart_rate_variability=40.0,
        arousal=20.0, valence=35.0,
        respiration_rate=11.0, skin_conductance=2.5, muscle_tension=25.0,
    ),
}

DEFAULT_PROFILE = "focused"


SCENARIOS: Dict[str, ScenarioTimeline] = {
    "stress_reduction": ScenarioTimeline(
        name="stress_reduction",
        description="Stressed listener gradually settling into relaxation",
        duration=600.0,
        checkpoints=((0.0, "stressed"), (120.0, "focused"), (300.0, "relaxed")),
    ),
    "focus_enhancement": ScenarioTimeline(
        name="focus_enhancement",
        description="Fatigued listener brought up to focused attention",
        duration=480.0,
        checkpoints=((0.0, "fatigued"), (90.0, "relaxed"), (240.0, "focused")),
    ),
    "anxiety_management": ScenarioTimeline(
        name="anxiety_management",
        description="Anxious listener stepped down through stress and focus to calm",
        duration=600.0,
        checkpoints=((0.0, "anxious"), (150.0, "stressed"), (300.0, "focused"),
                     (450.0, "relaxed")),
    ),
}


def get_profile(name: str) -> BiofeedbackProfile:
    if name not in BIOFEEDBACK_PROFILES:
        raise ValueError(f"Unknown biofeedback profile: {name}")
    return BIOFEEDBACK_PROFILES[name]


def get_scenario(name: str) -> ScenarioTimeline:
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {name}")
    return SCENARIOS[name]


def list_profiles() -> List[str]:
    return list(BIOFEEDBACK_PROFILES.keys())


def list_scenarios() -> List[str]:
    return list(SCENARIOS.keys())
