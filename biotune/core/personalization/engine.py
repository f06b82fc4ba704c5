import time
import uuid
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from biotune.config.music_params import distance_to_goal
from biotune.core.biofeedback.reading import Reading
from biotune.core.emotion.emotion_state import EmotionCategory
from biotune.core.music.parameter_space import (
    AdaptationAlgorithm, GoalType, TherapeuticGoal, coerce_enum
)
from biotune.core.personalization.profiles import (
    ProfileStore, TherapeuticSession, UserPreferences, UserProfile
)
from biotune.utils.logging import get_logger

logger = get_logger()

# Tie-break order when algorithm scores are equal
ALGORITHM_PRECEDENCE = (
    AdaptationAlgorithm.ISO_PRINCIPLE,
    AdaptationAlgorithm.ENTRAINMENT,
    AdaptationAlgorithm.PROGRESSIVE,
)

ALGORITHM_RATIONALE = {
    AdaptationAlgorithm.ISO_PRINCIPLE:
        "ISO-principle shows best historical effectiveness for your profile.",
    AdaptationAlgorithm.ENTRAINMENT:
        "Entrainment has been most effective for you in similar situations.",
    AdaptationAlgorithm.PROGRESSIVE:
        "Progressive adaptation aligns well with your response patterns.",
}
HIGH_STRESS_NOTE = " High stress detected - gradual approach recommended."

DISTRESSED_EMOTIONS = (EmotionCategory.ANXIOUS, EmotionCategory.FRUSTRATED)
INSIGHT_WINDOW = 20
SUCCESS_DISTANCE = 10.0


@dataclass
class AlgorithmRecommendation:
    algorithm: AdaptationAlgorithm
    confidence: float
    rationale: str
    scores: Dict[str, float]


def generate_session_id(clock: Callable[[], float] = time.time) -> str:
    return f"session_{int(clock() * 1000)}_{uuid.uuid4().hex[:9]}"


class PersonalizationEngine:
    """Per-user baselines, algorithm effectiveness and session history"""

    def __init__(self,
                 store: Optional[ProfileStore] = None,
                 baseline_alpha: float = 0.1,
                 effectiveness_alpha: float = 0.15,
                 history_limit: int = 100,
                 clock: Callable[[], float] = time.time):
        self.store = store if store is not None else ProfileStore()
        self.baseline_alpha = baseline_alpha
        self.effectiveness_alpha = effectiveness_alpha
        self.history_limit = history_limit
        self.clock = clock

    def get_user_profile(self, user_id: str) -> UserProfile:
        """Profile for ``user_id``, created with defaults on first access"""
        if user_id not in self.store:
            logger.info(f"Creating default profile for user '{user_id}'")
        return self.store.get_or_create(user_id)

    def update_baseline_metrics(self, user_id: str, reading: Reading):
        alpha = self.baseline_alpha

        def ema(profile: UserProfile):
            baseline = profile.baseline_metrics
            baseline.resting_heart_rate += alpha * (reading.heart_rate - baseline.resting_heart_rate)
            baseline.typical_arousal += alpha * (reading.arousal - baseline.typical_arousal)
            baseline.typical_valence += alpha * (reading.valence - baseline.typical_valence)

        self.store.update(user_id, ema)

    def update_preferences(self, user_id: str, **updates) -> UserPreferences:
        """Explicitly set preference fields"""
        allowed = {f.name for f in fields(UserPreferences)}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")

        def apply(profile: UserProfile) -> UserPreferences:
            preferences = profile.preferences
            for name, value in updates.items():
                if name == 'volume_preference':
                    value = float(np.clip(value, 0.0, 100.0))
                elif name == 'preferred_tempo':
                    value = {**preferences.preferred_tempo, **value}
                elif name in ('preferred_genres', 'avoided_genres'):
                    value = list(value)
                setattr(preferences, name, value)
            return preferences

        preferences = self.store.update(user_id, apply)
        logger.info(f"Preferences updated for '{user_id}': {sorted(updates)}")
        return preferences

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_effectiveness(initial: Reading, final: Reading, goal: TherapeuticGoal) -> float:
        initial_distance = distance_to_goal(initial.arousal, initial.valence, goal.goal_type)
        final_distance = distance_to_goal(final.arousal, final.valence, goal.goal_type)

        if np.isclose(initial_distance, 0.0):
            return 100.0 if np.isclose(final_distance, 0.0) else 0.0

        improvement = (initial_distance - final_distance) / initial_distance
        effectiveness = float(np.clip(improvement * 100.0 + 50.0, 0.0, 100.0))
        if final_distance < SUCCESS_DISTANCE:
            effectiveness = min(100.0, effectiveness + 20.0)
        return effectiveness

    def record_session(self,
                       user_id: str,
                       goal: TherapeuticGoal,
                       algorithm,
                       initial_reading: Reading,
                       final_reading: Reading,
                       duration: float = 0.0,
                       user_satisfaction: Optional[float] = None,
                       session_id: Optional[str] = None) -> TherapeuticSession:
        algorithm = coerce_enum(AdaptationAlgorithm, algorithm)
        session = TherapeuticSession(
            session_id=session_id or generate_session_id(self.clock),
            timestamp=self.clock(),
            goal=goal,
            algorithm_used=algorithm,
            duration=duration,
            initial_reading=initial_reading,
            final_reading=final_reading,
            effectiveness=self.calculate_effectiveness(initial_reading, final_reading, goal),
            user_satisfaction=user_satisfaction,
        )
        alpha = self.effectiveness_alpha

        def append(profile: UserProfile):
            profile.therapeutic_history.append(session)
            overflow = len(profile.therapeutic_history) - self.history_limit
            if overflow > 0:
                del profile.therapeutic_history[:overflow]
            previous = profile.effectiveness_for(algorithm)
            profile.responsiveness[algorithm.value] = float(np.clip(
                previous * (1 - alpha) + session.effectiveness * alpha, 0.0, 100.0))

        self.store.update(user_id, append)
        logger.info(f"Recorded session {session.session_id} for '{user_id}': "
                    f"{algorithm.value} effectiveness={session.effectiveness:.1f}")
        return session

    # ------------------------------------------------------------------
    # Recommendations and insights
    # ------------------------------------------------------------------

    def recommend_algorithm(self,
                            user_id: str,
                            reading: Reading,
                            goal: TherapeuticGoal,
                            emotion: Optional[EmotionCategory] = None) -> AlgorithmRecommendation:
        profile = self.get_user_profile(user_id)
        scores = {algorithm: profile.effectiveness_for(algorithm) for algorithm in ALGORITHM_PRECEDENCE}
        arousal = reading.arousal

        if arousal > 70 or emotion in DISTRESSED_EMOTIONS:
            scores[AdaptationAlgorithm.ISO_PRINCIPLE] += 20
        if arousal < 40 and goal.goal_type == GoalType.RELAXATION:
            scores[AdaptationAlgorithm.ENTRAINMENT] += 15
        if 40 <= arousal <= 70:
            scores[AdaptationAlgorithm.PROGRESSIVE] += 10

        best = ALGORITHM_PRECEDENCE[0]
        for algorithm in ALGORITHM_PRECEDENCE[1:]:
            if scores[algorithm] > scores[best]:
                best = algorithm

        rationale = ALGORITHM_RATIONALE[best]
        if arousal > 75:
            rationale += HIGH_STRESS_NOTE

        recommendation = AlgorithmRecommendation(
            algorithm=best,
            confidence=min(95.0, scores[best]),
            rationale=rationale,
            scores={algorithm.value: score for algorithm, score in scores.items()},
        )
        logger.debug(f"Recommended {best.value} for '{user_id}' "
                     f"(confidence {recommendation.confidence:.1f})")
        return recommendation

    def get_user_insights(self, user_id: str) -> Dict[str, Any]:
        profile = self.get_user_profile(user_id)
        recent: List[TherapeuticSession] = profile.therapeutic_history[-INSIGHT_WINDOW:]
        scores = [s.effectiveness for s in recent]

        by_goal: Dict[str, List[float]] = {}
        for session in recent:
            by_goal.setdefault(session.goal.goal_type.value, []).append(session.effectiveness)
        most_effective_goal = None
        best_goal_score = None
        for goal_name, values in by_goal.items():
            mean = float(np.mean(values))
            if best_goal_score is None or mean > best_goal_score:
                most_effective_goal, best_goal_score = goal_name, mean

        best_algorithm = None
        if profile.therapeutic_history:
            best_algorithm = ALGORITHM_PRECEDENCE[0]
            for algorithm in ALGORITHM_PRECEDENCE[1:]:
                if profile.effectiveness_for(algorithm) > profile.effectiveness_for(best_algorithm):
                    best_algorithm = algorithm

        improvement_trend = 0.0
        if len(scores) >= 2:
            half = len(scores) // 2
            improvement_trend = float(np.mean(scores[half:]) - np.mean(scores[:half]))

        return {
            'total_sessions': len(profile.therapeutic_history),
            'average_effectiveness': float(np.mean(scores)) if scores else 0.0,
            'most_effective_goal': most_effective_goal,
            'most_effective_algorithm': best_algorithm.value if best_algorithm else None,
            'improvement_trend': improvement_trend,
            'baseline_metrics': profile.baseline_metrics.to_dict(),
            'algorithm_scores': dict(profile.responsiveness),
        }

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        profile = self.store.get(user_id)
        return profile.to_dict() if profile is not None else None

    def import_profile(self, data: Dict[str, Any]) -> UserProfile:
        profile = UserProfile.from_dict(data)
        self.store.put(profile)
        logger.info(f"Imported profile for '{profile.user_id}' "
                    f"({len(profile.therapeutic_history)} sessions)")
        return profile
