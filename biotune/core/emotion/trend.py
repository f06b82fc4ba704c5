import time
from collections import deque
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from biotune.core.emotion.emotion_state import EmotionCategory, EmotionPrediction
from biotune.utils.logging import get_logger

logger = get_logger()


class EmotionTrend(Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


# Valence score used to compare windows of categorical predictions
EMOTION_VALENCE_SCORES: Dict[EmotionCategory, float] = {
    EmotionCategory.HAPPY: 85.0,
    EmotionCategory.ENERGIZED: 75.0,
    EmotionCategory.CALM: 70.0,
    EmotionCategory.FOCUSED: 60.0,
    EmotionCategory.FRUSTRATED: 35.0,
    EmotionCategory.ANXIOUS: 30.0,
    EmotionCategory.SAD: 25.0,
}

TREND_WINDOW = 5
TREND_THRESHOLD = 10.0


class EmotionTrendAnalyzer:
    """Rolling window of recent predictions with dominant-emotion and trend queries"""

    def __init__(self, max_history: int = 60, clock: Callable[[], float] = time.time):
        self.max_history = max_history
        self.clock = clock
        self.history = deque(maxlen=max_history)

    def add_prediction(self, prediction: EmotionPrediction):
        self.history.append(prediction)

    def get_dominant_emotion(self, window_seconds: float = 30.0) -> Optional[EmotionCategory]:
        """Most frequent emotion within the window; earliest seen wins ties"""
        cutoff = self.clock() - window_seconds
        counts: Dict[EmotionCategory, int] = {}
        for prediction in self.history:
            if prediction.timestamp >= cutoff:
                counts[prediction.emotion] = counts.get(prediction.emotion, 0) + 1

        dominant = None
        best = 0
        for emotion, count in counts.items():
            if count > best:
                dominant, best = emotion, count
        return dominant

    def get_trend(self) -> EmotionTrend:
        if len(self.history) < 2 * TREND_WINDOW:
            return EmotionTrend.STABLE

        recent = list(self.history)[-2 * TREND_WINDOW:]
        scores = [EMOTION_VALENCE_SCORES[p.emotion] for p in recent]
        older = float(np.mean(scores[:TREND_WINDOW]))
        newer = float(np.mean(scores[TREND_WINDOW:]))

        if newer - older > TREND_THRESHOLD:
            return EmotionTrend.IMPROVING
        if newer - older < -TREND_THRESHOLD:
            return EmotionTrend.DECLINING
        return EmotionTrend.STABLE

    def get_history(self) -> List[EmotionPrediction]:
        return list(self.history)

    def clear(self):
        self.history.clear()
        logger.debug("Emotion trend history cleared")
