import numpy as np
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List


class GoalType(Enum):
    RELAXATION = "relaxation"
    FOCUS = "focus"
    ENERGIZE = "energize"
    MOOD_ELEVATION = "mood_elevation"


class AdaptationAlgorithm(Enum):
    ISO_PRINCIPLE = "iso_principle"
    ENTRAINMENT = "entrainment"
    PROGRESSIVE = "progressive"


class Harmony(Enum):
    CONSONANT = "consonant"
    COMPLEX = "complex"
    DISSONANT = "dissonant"


class Timbre(Enum):
    SOFT = "soft"
    NEUTRAL = "neutral"
    BRIGHT = "bright"


class Rhythm(Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


# Ordered scales used when a learner action nudges a categorical parameter
CATEGORICAL_LEVELS: Dict[str, List[Enum]] = {
    "harmony": list(Harmony),
    "timbre": list(Timbre),
    "rhythm": list(Rhythm),
}

CONTINUOUS_PARAMETERS = ("tempo", "volume", "density")


@dataclass
class ParameterSpec:
    """Bounds and clinical guidance for a continuous music parameter"""
    min_val: float
    max_val: float
    default: float
    clinical_notes: str = ""

    def __post_init__(self):
        self.default = float(np.clip(self.default, self.min_val, self.max_val))

    def clip(self, value: float) -> float:
        return float(np.clip(value, self.min_val, self.max_val))


PARAMETER_SPECS: Dict[str, ParameterSpec] = {
    "tempo": ParameterSpec(
        min_val=40.0, max_val=200.0, default=90.0,
        clinical_notes="Tempo entrains heart rate; slow tempi support down-regulation"
    ),
    "volume": ParameterSpec(
        min_val=0.0, max_val=100.0, default=50.0,
        clinical_notes="Lower volume for aroused listeners avoids startle responses"
    ),
    "density": ParameterSpec(
        min_val=0.0, max_val=100.0, default=50.0,
        clinical_notes="Note density drives cognitive load"
    ),
}


def coerce_enum(enum_cls, value):
    """Accept an enum member or its value"""
    if isinstance(value, enum_cls):
        return value
    return enum_cls(value)


@dataclass
class TherapeuticGoal:
    goal_type: GoalType = GoalType.RELAXATION
    intensity: float = 70.0

    def __post_init__(self):
        self.goal_type = coerce_enum(GoalType, self.goal_type)
        self.intensity = float(np.clip(self.intensity, 0.0, 100.0))

    def to_dict(self) -> Dict[str, Any]:
        return {'goal_type': self.goal_type.value, 'intensity': self.intensity}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TherapeuticGoal":
        return cls(goal_type=data['goal_type'], intensity=data.get('intensity', 70.0))


@dataclass
class MusicParameters:
    """Music-control parameters consumed by the playback layer"""
    tempo: float = 90.0
    harmony: Harmony = Harmony.CONSONANT
    volume: float = 50.0
    density: float = 50.0
    timbre: Timbre = Timbre.NEUTRAL
    rhythm: Rhythm = Rhythm.MODERATE

    def __post_init__(self):
        self.harmony = coerce_enum(Harmony, self.harmony)
        self.timbre = coerce_enum(Timbre, self.timbre)
        self.rhythm = coerce_enum(Rhythm, self.rhythm)

    def clipped(self) -> "MusicParameters":
        return replace(self, **{name: PARAMETER_SPECS[name].clip(getattr(self, name))
                                for name in CONTINUOUS_PARAMETERS})

    def copy(self) -> "MusicParameters":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tempo': self.tempo,
            'harmony': self.harmony.value,
            'volume': self.volume,
            'density': self.density,
            'timbre': self.timbre.value,
            'rhythm': self.rhythm.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MusicParameters":
        return cls(**data).clipped()


def default_parameters() -> MusicParameters:
    return MusicParameters(tempo=PARAMETER_SPECS["tempo"].default,
                           volume=PARAMETER_SPECS["volume"].default,
                           density=PARAMETER_SPECS["density"].default)
