from typing import Optional

from biotune.core.emotion.emotion_state import EmotionPrediction, Modality, normalize_distribution
from biotune.utils.logging import get_logger

logger = get_logger()

PHYSIOLOGICAL_WEIGHT = 0.6
FACIAL_WEIGHT = 0.4
AGREEMENT_BOOST = 1.15
AGREEMENT_CAP = 0.99
DISAGREEMENT_PENALTY = 0.85


def fuse_predictions(physiological: EmotionPrediction,
                     facial: EmotionPrediction,
                     timestamp: Optional[float] = None) -> EmotionPrediction:
    """Combine physiological and facial estimates of the same reading.

    When both modalities name the same dominant emotion the weighted
    confidence is boosted (capped at 0.99). Otherwise the more confident
    modality wins, physiological only when strictly more confident, and its
    confidence is penalised.
    """
    distribution = normalize_distribution({
        name: PHYSIOLOGICAL_WEIGHT * physiological.distribution.get(name, 0.0)
        + FACIAL_WEIGHT * facial.distribution.get(name, 0.0)
        for name in set(physiological.distribution) | set(facial.distribution)
    })
    if timestamp is None:
        timestamp = max(physiological.timestamp, facial.timestamp)

    if physiological.emotion == facial.emotion:
        confidence = min(AGREEMENT_CAP,
                         (PHYSIOLOGICAL_WEIGHT * physiological.confidence
                          + FACIAL_WEIGHT * facial.confidence) * AGREEMENT_BOOST)
        emotion = physiological.emotion
    else:
        winner = physiological if physiological.confidence > facial.confidence else facial
        emotion = winner.emotion
        confidence = winner.confidence * DISAGREEMENT_PENALTY
        logger.debug(f"Modalities disagree: physiological={physiological.emotion.value} "
                     f"facial={facial.emotion.value}; using {winner.modality.value}")

    return EmotionPrediction(emotion=emotion, confidence=confidence, timestamp=timestamp,
                             modality=Modality.MULTIMODAL, distribution=distribution)
