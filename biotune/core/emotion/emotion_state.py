"""Emotion categories and the prediction record shared by recognition, fusion and trends"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class EmotionCategory(Enum):
    HAPPY = "happy"
    SAD = "sad"
    ANXIOUS = "anxious"
    CALM = "calm"
    FOCUSED = "focused"
    FRUSTRATED = "frustrated"
    ENERGIZED = "energized"


class Modality(Enum):
    PHYSIOLOGICAL = "physiological"
    FACIAL = "facial"
    MULTIMODAL = "multimodal"


# Probability per category value, always normalised to sum 1
EmotionDistribution = Dict[str, float]


@dataclass
class EmotionPrediction:
    """Categorical emotion estimate for one reading"""
    emotion: EmotionCategory
    confidence: float
    timestamp: float
    modality: Modality
    distribution: EmotionDistribution = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'emotion': self.emotion.value,
            'confidence': self.confidence,
            'timestamp': self.timestamp,
            'modality': self.modality.value,
            'distribution': dict(self.distribution),
        }


def normalize_distribution(weights: Dict[str, float]) -> EmotionDistribution:
    """Fill every category and scale so the values sum to 1"""
    full = {category.value: max(0.0, float(weights.get(category.value, 0.0)))
            for category in EmotionCategory}
    total = sum(full.values())
    if total <= 0:
        return {name: 1.0 / len(full) for name in full}
    return {name: value / total for name, value in full.items()}


def dominant_emotion(distribution: EmotionDistribution) -> EmotionCategory:
    """First strict maximum in category order; calm for an all-zero distribution"""
    best = EmotionCategory.CALM
    best_value = 0.0
    for category in EmotionCategory:
        value = distribution.get(category.value, 0.0)
        if value > best_value:
            best = category
            best_value = value
    return best
