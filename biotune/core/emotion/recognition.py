import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

import numpy as np

from biotune.core.biofeedback.reading import Reading
from biotune.core.emotion.emotion_state import (
    EmotionCategory, EmotionDistribution, EmotionPrediction, Modality, dominant_emotion,
    normalize_distribution
)
from biotune.core.emotion.fusion import fuse_predictions
from biotune.utils.logging import get_logger

logger = get_logger()


# (category, base weight, random spread)
WeightBand = Tuple[EmotionCategory, float, float]

HIGH_AROUSAL = 65.0
LOW_AROUSAL = 35.0

_QUADRANT_RULES: List[Tuple[Callable[[float, float], bool], List[WeightBand]]] = [
    (lambda a, v: a > HIGH_AROUSAL and v > 60, [
        (EmotionCategory.HAPPY, 0.4, 0.3),
        (EmotionCategory.ENERGIZED, 0.3, 0.2),
        (EmotionCategory.FOCUSED, 0.1, 0.15),
    ]),
    (lambda a, v: a > HIGH_AROUSAL and v < 45, [
        (EmotionCategory.ANXIOUS, 0.5, 0.3),
        (EmotionCategory.FRUSTRATED, 0.2, 0.2),
        (EmotionCategory.SAD, 0.1, 0.1),
    ]),
    (lambda a, v: a < LOW_AROUSAL and v > 55, [
        (EmotionCategory.CALM, 0.6, 0.25),
        (EmotionCategory.HAPPY, 0.15, 0.1),
        (EmotionCategory.FOCUSED, 0.1, 0.05),
    ]),
    (lambda a, v: a < LOW_AROUSAL and v < 45, [
        (EmotionCategory.SAD, 0.5, 0.3),
        (EmotionCategory.FRUSTRATED, 0.2, 0.15),
        (EmotionCategory.CALM, 0.1, 0.05),
    ]),
]

_NEUTRAL_RULE: List[WeightBand] = [
    (EmotionCategory.FOCUSED, 0.5, 0.25),
    (EmotionCategory.CALM, 0.2, 0.15),
    (EmotionCategory.HAPPY, 0.1, 0.1),
]

FACIAL_BOOSTS = {
    EmotionCategory.HAPPY.value: 1.2,
    EmotionCategory.SAD.value: 1.15,
}


class EmotionRecognizer:
    """Heuristic arousal/valence quadrant classifier with simulated inference latency"""

    def __init__(self,
                 recognition_delay: float = 0.5,
                 rng=None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self.recognition_delay = max(0.0, recognition_delay)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.sleep = sleep
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="EmotionRecognizer")

    def set_recognition_delay(self, seconds: float):
        self.recognition_delay = max(0.0, seconds)

    def classify(self, arousal: float, valence: float) -> EmotionDistribution:
        bands = _NEUTRAL_RULE
        for matches, rule_bands in _QUADRANT_RULES:
            if matches(arousal, valence):
                bands = rule_bands
                break

        weights = {}
        for category, base, spread in bands:
            weights[category.value] = base + self.rng.random() * spread
        return normalize_distribution(weights)

    def get_emotion_distribution(self, reading: Reading) -> EmotionDistribution:
        return self.classify(reading.arousal, reading.valence)

    def _simulate_latency(self, factor: float = 1.0):
        delay = self.recognition_delay * factor
        if delay > 0:
            self.sleep(delay)

    def _physiological(self, reading: Reading) -> EmotionPrediction:
        self._simulate_latency()
        distribution = self.classify(reading.arousal, reading.valence)
        emotion = dominant_emotion(distribution)
        confidence = min(0.95, distribution[emotion.value] * 0.85 + self.rng.random() * 0.1)
        return EmotionPrediction(emotion=emotion, confidence=confidence,
                                 timestamp=self.clock(), modality=Modality.PHYSIOLOGICAL,
                                 distribution=distribution)

    def _facial(self, reading: Reading) -> EmotionPrediction:
        self._simulate_latency(2.0)
        distribution = dict(self.classify(reading.arousal, reading.valence))
        for name, boost in FACIAL_BOOSTS.items():
            if distribution[name] > 0.3:
                distribution[name] *= boost
        distribution = normalize_distribution(distribution)
        emotion = dominant_emotion(distribution)
        confidence = min(0.98, distribution[emotion.value])
        return EmotionPrediction(emotion=emotion, confidence=confidence,
                                 timestamp=self.clock(), modality=Modality.FACIAL,
                                 distribution=distribution)

    def recognize_from_physiological(self, reading: Reading) -> EmotionPrediction:
        prediction = self._physiological(reading)
        self._log_prediction(prediction, reading)
        return prediction

    def recognize_from_facial(self, reading: Reading) -> EmotionPrediction:
        prediction = self._facial(reading)
        self._log_prediction(prediction, reading)
        return prediction

    def recognize_multimodal(self, reading: Reading) -> EmotionPrediction:
        """Run both modalities concurrently and fuse once both have completed"""
        physiological = self._executor.submit(self._physiological, reading)
        facial = self._executor.submit(self._facial, reading)
        prediction = fuse_predictions(physiological.result(), facial.result(),
                                      timestamp=self.clock())
        self._log_prediction(prediction, reading)
        return prediction

    def _log_prediction(self, prediction: EmotionPrediction, reading: Reading):
        logger.log_emotion(emotion=prediction.emotion.value,
                           confidence=prediction.confidence,
                           modality=prediction.modality.value,
                           arousal=reading.arousal,
                           valence=reading.valence,
                           distribution=prediction.distribution)

    def shutdown(self):
        self._executor.shutdown(wait=True)
