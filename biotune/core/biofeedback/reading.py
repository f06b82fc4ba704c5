import time
from dataclasses import dataclass, asdict, fields
from typing import Dict, Tuple

import numpy as np

# Physiologically plausible range of every reading field
PHYSIOLOGICAL_BOUNDS: Dict[str, Tuple[float, float]] = {
    "heart_rate": (50.0, 120.0),
    "heart_rate_variability": (20.0, 100.0),
    "arousal": (0.0, 100.0),
    "valence": (0.0, 100.0),
    "respiration_rate": (8.0, 25.0),
    "skin_conductance": (1.0, 10.0),
    "muscle_tension": (0.0, 100.0),
}

# Relative noise magnitude applied to each field per tick
NOISE_LEVELS: Dict[str, float] = {
    "heart_rate": 0.03,
    "heart_rate_variability": 0.08,
    "arousal": 0.05,
    "valence": 0.04,
    "respiration_rate": 0.06,
    "skin_conductance": 0.07,
    "muscle_tension": 0.06,
}

SIGNAL_FIELDS = tuple(PHYSIOLOGICAL_BOUNDS.keys())


def clamp_signal(name: str, value: float) -> float:
    low, high = PHYSIOLOGICAL_BOUNDS[name]
    return float(np.clip(value, low, high))


@dataclass
class Reading:
    """One synthetic physiological sample.

    Every signal field is clamped to PHYSIOLOGICAL_BOUNDS on creation, so a
    Reading that exists is always within range.
    """
    timestamp: float
    heart_rate: float
    heart_rate_variability: float
    arousal: float
    valence: float
    respiration_rate: float
    skin_conductance: float
    muscle_tension: float

    def __post_init__(self):
        for name in SIGNAL_FIELDS:
            setattr(self, name, clamp_signal(name, getattr(self, name)))

    @classmethod
    def from_signals(cls, signals: Dict[str, float], timestamp: float = None) -> "Reading":
        return cls(timestamp=time.time() if timestamp is None else timestamp,
                   **{name: signals[name] for name in SIGNAL_FIELDS})

    def signals(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in SIGNAL_FIELDS}

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "Reading":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class BiofeedbackProfile:
    """Named archetype: the central value of every signal field"""
    name: str
    description: str
    heart_rate: float
    heart_rate_variability: float
    arousal: float
    valence: float
    respiration_rate: float
    skin_conductance: float
    muscle_tension: float

    def signals(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in SIGNAL_FIELDS}
