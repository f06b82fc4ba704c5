import threading
from typing import Optional

import numpy as np

from biotune.config.music_params import (
    ENTRAINMENT_PRESETS, progressive_target_arousal
)
from biotune.core.biofeedback.reading import Reading
from biotune.core.music.parameter_space import (
    CATEGORICAL_LEVELS, PARAMETER_SPECS, AdaptationAlgorithm, GoalType, Harmony,
    MusicParameters, Rhythm, TherapeuticGoal, Timbre, coerce_enum, default_parameters
)
from biotune.utils.logging import get_logger

logger = get_logger()

# Thresholds on the 0-100 arousal/valence scales
AROUSAL_COMPLEX_HARMONY = 70.0
AROUSAL_DISSONANT_HARMONY = 85.0
AROUSAL_VOLUME_REDUCTION = 70.0
VALENCE_BRIGHT = 60.0
VALENCE_SOFT = 40.0

PROGRESSIVE_DEAD_ZONE = 5.0
PROGRESSIVE_TEMPO_STEP = 2.0
PROGRESSIVE_TEMPO_RANGE = (50.0, 150.0)

# Categorical learner adjustments below this magnitude are ignored
CATEGORICAL_ADJUSTMENT_THRESHOLD = 5.0


class AdaptiveMusicEngine:
    """Maps readings to smoothed music parameters under a therapeutic goal.

    ``calculate_optimal_parameters`` computes the target for the selected
    algorithm. ``update`` moves the current parameters toward it: tempo,
    volume and density by exponential smoothing, harmony by a random switch,
    timbre and rhythm immediately.
    """

    def __init__(self,
                 goal: Optional[TherapeuticGoal] = None,
                 algorithm: AdaptationAlgorithm = AdaptationAlgorithm.ISO_PRINCIPLE,
                 transition_speed: float = 0.05,
                 harmony_switch_probability: float = 0.3,
                 rng=None):
        self.goal = goal if goal is not None else TherapeuticGoal(GoalType.RELAXATION, 70.0)
        self.algorithm = coerce_enum(AdaptationAlgorithm, algorithm)
        self.transition_speed = float(np.clip(transition_speed, 0.01, 1.0))
        self.harmony_switch_probability = float(np.clip(harmony_switch_probability, 0.0, 1.0))
        self.rng = rng if rng is not None else np.random.default_rng()

        self.current_parameters = default_parameters()
        self.target_parameters = default_parameters()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_algorithm(self, algorithm):
        self.algorithm = coerce_enum(AdaptationAlgorithm, algorithm)
        logger.info(f"Adaptation algorithm set to {self.algorithm.value}")

    def set_goal(self, goal: TherapeuticGoal):
        self.goal = goal
        logger.info(f"Therapeutic goal set to {goal.goal_type.value} ({goal.intensity:.0f})")

    def set_transition_speed(self, speed: float):
        self.transition_speed = float(np.clip(speed, 0.01, 1.0))

    def reset(self):
        with self._lock:
            self.current_parameters = default_parameters()
            self.target_parameters = default_parameters()
        logger.debug("Adaptive music engine reset to neutral parameters")

    # ------------------------------------------------------------------
    # Target computation
    # ------------------------------------------------------------------

    def calculate_optimal_parameters(self, reading: Reading) -> MusicParameters:
        if self.algorithm == AdaptationAlgorithm.ISO_PRINCIPLE:
            params = self._iso_principle(reading)
        elif self.algorithm == AdaptationAlgorithm.ENTRAINMENT:
            params = self._entrainment()
        else:
            params = self._progressive(reading)
        return params.clipped()

    def _iso_principle(self, reading: Reading) -> MusicParameters:
        """Match the listener's current tempo, then lead toward the goal"""
        arousal, valence = reading.arousal, reading.valence
        intensity = self.goal.intensity
        matched_tempo = float(np.clip(reading.heart_rate * 0.95, 60.0, 140.0))

        goal_type = self.goal.goal_type
        if goal_type == GoalType.RELAXATION:
            target_tempo = 60.0 + 20.0 * (1.0 - intensity / 100.0)
            harmony = Harmony.CONSONANT
            volume = 40.0 - intensity / 5.0
        elif goal_type == GoalType.FOCUS:
            target_tempo = 70.0 + arousal * 0.3
            harmony = Harmony.CONSONANT
            volume = 50.0
        elif goal_type == GoalType.ENERGIZE:
            target_tempo = 110.0 + intensity * 0.3
            harmony = Harmony.COMPLEX
            volume = 60.0 + intensity / 5.0
        else:
            target_tempo = 85.0 + valence * 0.4
            harmony = Harmony.CONSONANT if valence > 50 else Harmony.COMPLEX
            volume = 55.0

        blend = intensity / 100.0
        tempo = matched_tempo * (1.0 - blend) + target_tempo * blend

        if arousal > AROUSAL_DISSONANT_HARMONY:
            harmony = Harmony.DISSONANT
        elif arousal > AROUSAL_COMPLEX_HARMONY:
            harmony = Harmony.COMPLEX

        if arousal > AROUSAL_VOLUME_REDUCTION:
            volume -= (arousal - AROUSAL_VOLUME_REDUCTION) * 0.3

        return MusicParameters(
            tempo=tempo,
            harmony=harmony,
            volume=volume,
            density=max(20.0, 60.0 - arousal * 0.3),
            timbre=self._timbre_for(valence),
            rhythm=self._rhythm_for(arousal),
        )

    def _entrainment(self) -> MusicParameters:
        return ENTRAINMENT_PRESETS[self.goal.goal_type].copy()

    def _progressive(self, reading: Reading) -> MusicParameters:
        """Bang-bang tempo control with a dead zone around the goal arousal"""
        arousal = reading.arousal
        error = progressive_target_arousal(self.goal.goal_type) - arousal
        current = self.current_parameters

        tempo = current.tempo
        if abs(error) > PROGRESSIVE_DEAD_ZONE:
            step = PROGRESSIVE_TEMPO_STEP if error > 0 else -PROGRESSIVE_TEMPO_STEP
            tempo = float(np.clip(tempo + step, *PROGRESSIVE_TEMPO_RANGE))

        return MusicParameters(
            tempo=tempo,
            harmony=Harmony.COMPLEX if arousal > 65 else Harmony.CONSONANT,
            volume=float(np.clip(50.0 - (arousal - 50.0) * 0.4, 20.0, 80.0)),
            density=float(np.clip(60.0 - arousal * 0.3, 20.0, 80.0)),
            timbre=current.timbre,
            rhythm=current.rhythm,
        )

    @staticmethod
    def _timbre_for(valence: float) -> Timbre:
        if valence > VALENCE_BRIGHT:
            return Timbre.BRIGHT
        if valence < VALENCE_SOFT:
            return Timbre.SOFT
        return Timbre.NEUTRAL

    @staticmethod
    def _rhythm_for(arousal: float) -> Rhythm:
        if arousal > 70:
            return Rhythm.COMPLEX
        if arousal > 40:
            return Rhythm.MODERATE
        return Rhythm.SIMPLE

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------

    def update(self, reading: Reading) -> MusicParameters:
        target = self.calculate_optimal_parameters(reading)

        with self._lock:
            self.target_parameters = target
            current = self.current_parameters
            speed = self.transition_speed

            current.tempo += (target.tempo - current.tempo) * speed
            current.volume += (target.volume - current.volume) * speed
            current.density += (target.density - current.density) * speed

            if current.harmony != target.harmony and \
                    self.rng.random() < self.harmony_switch_probability:
                current.harmony = target.harmony

            current.timbre = target.timbre
            current.rhythm = target.rhythm

            self.current_parameters = current.clipped()
            result = self.current_parameters.copy()

        logger.log_music_update(result.to_dict(), algorithm=self.algorithm.value,
                                goal=self.goal.goal_type.value)
        return result

    def apply_adjustment(self, action) -> MusicParameters:
        """Apply a learner action to the current parameters.

        Continuous parameters move by the adjustment and are clamped.
        Categorical parameters step one level along their scale when the
        adjustment is large enough.
        """
        parameter, adjustment = action.parameter, action.adjustment

        with self._lock:
            current = self.current_parameters
            if parameter in PARAMETER_SPECS:
                setattr(current, parameter,
                        PARAMETER_SPECS[parameter].clip(getattr(current, parameter) + adjustment))
            elif parameter in CATEGORICAL_LEVELS:
                if abs(adjustment) >= CATEGORICAL_ADJUSTMENT_THRESHOLD:
                    levels = CATEGORICAL_LEVELS[parameter]
                    index = levels.index(getattr(current, parameter))
                    index = int(np.clip(index + (1 if adjustment > 0 else -1), 0, len(levels) - 1))
                    setattr(current, parameter, levels[index])
            else:
                raise ValueError(f"Unknown music parameter: {parameter}")
            result = current.copy()

        logger.debug(f"Applied adjustment {parameter}{adjustment:+.2f}")
        return result
