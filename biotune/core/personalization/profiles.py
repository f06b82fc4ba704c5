"""
User profile data structures for personalization
Profiles live in a ProfileStore owned by the session orchestrator; persistence
goes through explicit export/import snapshots.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from biotune.core.biofeedback.reading import Reading
from biotune.core.music.parameter_space import (
    AdaptationAlgorithm, TherapeuticGoal, coerce_enum
)


def default_responsiveness() -> Dict[str, float]:
    return {algorithm.value: 50.0 for algorithm in AdaptationAlgorithm}


@dataclass
class UserPreferences:
    preferred_genres: List[str] = field(default_factory=list)
    avoided_genres: List[str] = field(default_factory=list)
    preferred_tempo: Dict[str, float] = field(default_factory=lambda: {'min': 60.0, 'max': 120.0})
    volume_preference: float = 50.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'preferred_genres': list(self.preferred_genres),
            'avoided_genres': list(self.avoided_genres),
            'preferred_tempo': dict(self.preferred_tempo),
            'volume_preference': self.volume_preference,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreferences":
        return cls(
            preferred_genres=list(data.get('preferred_genres', [])),
            avoided_genres=list(data.get('avoided_genres', [])),
            preferred_tempo=dict(data.get('preferred_tempo', {'min': 60.0, 'max': 120.0})),
            volume_preference=float(data.get('volume_preference', 50.0)),
        )


@dataclass
class BaselineMetrics:
    """Running (EMA) baselines of the user's physiology"""
    resting_heart_rate: float = 70.0
    typical_arousal: float = 50.0
    typical_valence: float = 50.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'resting_heart_rate': self.resting_heart_rate,
            'typical_arousal': self.typical_arousal,
            'typical_valence': self.typical_valence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "BaselineMetrics":
        return cls(**{k: float(v) for k, v in data.items()
                      if k in ('resting_heart_rate', 'typical_arousal', 'typical_valence')})


@dataclass(frozen=True)
class TherapeuticSession:
    """Immutable record of one completed session"""
    session_id: str
    timestamp: float
    goal: TherapeuticGoal
    algorithm_used: AdaptationAlgorithm
    duration: float
    initial_reading: Reading
    final_reading: Reading
    effectiveness: float
    user_satisfaction: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'timestamp': self.timestamp,
            'goal': self.goal.to_dict(),
            'algorithm_used': self.algorithm_used.value,
            'duration': self.duration,
            'initial_reading': self.initial_reading.to_dict(),
            'final_reading': self.final_reading.to_dict(),
            'effectiveness': self.effectiveness,
            'user_satisfaction': self.user_satisfaction,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TherapeuticSession":
        return cls(
            session_id=data['session_id'],
            timestamp=float(data['timestamp']),
            goal=TherapeuticGoal.from_dict(data['goal']),
            algorithm_used=coerce_enum(AdaptationAlgorithm, data['algorithm_used']),
            duration=float(data.get('duration', 0.0)),
            initial_reading=Reading.from_dict(data['initial_reading']),
            final_reading=Reading.from_dict(data['final_reading']),
            effectiveness=float(data['effectiveness']),
            user_satisfaction=data.get('user_satisfaction'),
        )


@dataclass
class UserProfile:
    user_id: str
    preferences: UserPreferences = field(default_factory=UserPreferences)
    therapeutic_history: List[TherapeuticSession] = field(default_factory=list)
    baseline_metrics: BaselineMetrics = field(default_factory=BaselineMetrics)
    responsiveness: Dict[str, float] = field(default_factory=default_responsiveness)
    created_at: float = field(default_factory=time.time)
    last_updated: float = field(default_factory=time.time)

    def effectiveness_for(self, algorithm: AdaptationAlgorithm) -> float:
        return self.responsiveness.get(algorithm.value, 50.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'preferences': self.preferences.to_dict(),
            'therapeutic_history': [s.to_dict() for s in self.therapeutic_history],
            'baseline_metrics': self.baseline_metrics.to_dict(),
            'responsiveness': dict(self.responsiveness),
            'created_at': self.created_at,
            'last_updated': self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        responsiveness = default_responsiveness()
        responsiveness.update({k: float(v) for k, v in data.get('responsiveness', {}).items()})
        now = time.time()
        return cls(
            user_id=data['user_id'],
            preferences=UserPreferences.from_dict(data.get('preferences', {})),
            therapeutic_history=[TherapeuticSession.from_dict(s)
                                 for s in data.get('therapeutic_history', [])],
            baseline_metrics=BaselineMetrics.from_dict(data.get('baseline_metrics', {})),
            responsiveness=responsiveness,
            created_at=float(data.get('created_at', now)),
            last_updated=float(data.get('last_updated', now)),
        )


class ProfileStore:
    """Process-wide table of user profiles.

    Owned by one orchestrating context and passed to the personalization
    engine. Profile read-modify-writes go through ``update`` so each one is
    applied under the store lock.
    """

    def __init__(self):
        self._profiles: Dict[str, UserProfile] = {}
        self._lock = threading.RLock()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    def get(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            return self._profiles.get(user_id)

    def get_or_create(self, user_id: str) -> UserProfile:
        with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                profile = UserProfile(user_id=user_id)
                self._profiles[user_id] = profile
            return profile

    def put(self, profile: UserProfile):
        with self._lock:
            self._profiles[profile.user_id] = profile

    def update(self, user_id: str, fn: Callable[[UserProfile], Any]) -> Any:
        """Apply fn to the (lazily created) profile under the store lock"""
        with self._lock:
            profile = self.get_or_create(user_id)
            result = fn(profile)
            profile.last_updated = time.time()
            return result

    def user_ids(self) -> List[str]:
        with self._lock:
            return list(self._profiles.keys())

    def export_all(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {user_id: profile.to_dict() for user_id, profile in self._profiles.items()}

    def import_all(self, data: Dict[str, Dict[str, Any]]):
        with self._lock:
            for profile_data in data.values():
                self.put(UserProfile.from_dict(profile_data))
