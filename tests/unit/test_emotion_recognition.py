#!/usr/bin/env python3
"""
Emotion recognition, fusion and trend tests
"""
import sys

import numpy as np
import pytest

from conftest import ConstantRng, FakeClock, make_reading
from biotune.core.emotion.emotion_state import (
    EmotionCategory, EmotionPrediction, Modality, dominant_emotion, normalize_distribution
)
from biotune.core.emotion.fusion import fuse_predictions
from biotune.core.emotion.recognition import EmotionRecognizer
from biotune.core.emotion.trend import EmotionTrend, EmotionTrendAnalyzer


def recognizer(rng=None, delay=0.0, sleep=None):
    return EmotionRecognizer(recognition_delay=delay, rng=rng or ConstantRng(0.5),
                             sleep=sleep or (lambda seconds: None))


def prediction(emotion, confidence=0.8, timestamp=1000.0, modality=Modality.PHYSIOLOGICAL):
    return EmotionPrediction(emotion=emotion, confidence=confidence, timestamp=timestamp,
                             modality=modality,
                             distribution=normalize_distribution({emotion.value: 1.0}))


def test_distribution_always_sums_to_one():
    classifier = recognizer(rng=np.random.default_rng(3))
    for arousal in range(0, 101, 5):
        for valence in range(0, 101, 5):
            distribution = classifier.classify(arousal, valence)
            assert set(distribution) == {c.value for c in EmotionCategory}
            assert sum(distribution.values()) == pytest.approx(1.0, abs=1e-6)
            assert all(p >= 0 for p in distribution.values())


@pytest.mark.parametrize("arousal, valence, expected", [
    (80, 80, EmotionCategory.HAPPY),
    (80, 20, EmotionCategory.ANXIOUS),
    (20, 80, EmotionCategory.CALM),
    (20, 20, EmotionCategory.SAD),
    (50, 50, EmotionCategory.FOCUSED),
    (80, 50, EmotionCategory.FOCUSED),
])
def test_quadrant_rules(arousal, valence, expected):
    distribution = recognizer().classify(arousal, valence)
    assert dominant_emotion(distribution) == expected


def test_quadrant_leaves_unlisted_categories_at_zero():
    distribution = recognizer().classify(20, 20)
    assert distribution["happy"] == 0.0
    assert distribution["energized"] == 0.0


def test_dominant_emotion_tie_and_empty():
    assert dominant_emotion({"sad": 0.5, "happy": 0.5}) == EmotionCategory.HAPPY
    assert dominant_emotion({}) == EmotionCategory.CALM


def test_emotion_distribution_for_reading():
    classifier = recognizer()
    reading = make_reading(arousal=20, valence=80)
    assert classifier.get_emotion_distribution(reading) == classifier.classify(20, 80)


def test_physiological_confidence_is_dampened():
    result = recognizer().recognize_from_physiological(make_reading(arousal=20, valence=80))
    # calm 0.725 / 1.05 weighted, then x0.85 plus half the jitter band
    assert result.emotion == EmotionCategory.CALM
    assert result.modality == Modality.PHYSIOLOGICAL
    assert result.confidence == pytest.approx(0.725 / 1.05 * 0.85 + 0.05)


def test_physiological_confidence_capped():
    result = recognizer(rng=ConstantRng(0.999)).recognize_from_physiological(
        make_reading(arousal=20, valence=20))
    assert result.confidence <= 0.95


def test_facial_boosts_happy():
    result = recognizer().recognize_from_facial(make_reading(arousal=80, valence=80))
    happy = 0.55 / 1.125 * 1.2
    total = happy + 0.4 / 1.125 + 0.175 / 1.125
    assert result.modality == Modality.FACIAL
    assert result.emotion == EmotionCategory.HAPPY
    assert result.confidence == pytest.approx(happy / total)
    assert sum(result.distribution.values()) == pytest.approx(1.0)


def test_facial_latency_is_double():
    delays = []
    classifier = recognizer(delay=0.5, sleep=delays.append)
    reading = make_reading()

    classifier.recognize_from_physiological(reading)
    classifier.recognize_from_facial(reading)
    assert delays == [0.5, 1.0]

    classifier.set_recognition_delay(0.0)
    classifier.recognize_from_physiological(reading)
    assert delays == [0.5, 1.0]


def test_multimodal_agreement_boosts_confidence():
    classifier = recognizer()
    result = classifier.recognize_multimodal(make_reading(arousal=20, valence=80))
    physiological = 0.725 / 1.05 * 0.85 + 0.05
    facial = 0.725 / 1.05

    assert result.modality == Modality.MULTIMODAL
    assert result.emotion == EmotionCategory.CALM
    assert result.confidence == pytest.approx((0.6 * physiological + 0.4 * facial) * 1.15)
    classifier.shutdown()


def test_multimodal_confidence_capped():
    fused = fuse_predictions(prediction(EmotionCategory.CALM, 0.98),
                             prediction(EmotionCategory.CALM, 0.98, modality=Modality.FACIAL))
    assert fused.confidence == 0.99


def test_disagreement_takes_more_confident_modality():
    fused = fuse_predictions(prediction(EmotionCategory.HAPPY, 0.8),
                             prediction(EmotionCategory.SAD, 0.6, modality=Modality.FACIAL))
    assert fused.emotion == EmotionCategory.HAPPY
    assert fused.confidence == pytest.approx(0.68)


def test_disagreement_tie_goes_to_facial():
    fused = fuse_predictions(prediction(EmotionCategory.HAPPY, 0.7),
                             prediction(EmotionCategory.SAD, 0.7, modality=Modality.FACIAL))
    assert fused.emotion == EmotionCategory.SAD
    assert fused.confidence == pytest.approx(0.595)
    assert sum(fused.distribution.values()) == pytest.approx(1.0)


def test_trend_requires_ten_samples():
    analyzer = EmotionTrendAnalyzer()
    for _ in range(9):
        analyzer.add_prediction(prediction(EmotionCategory.SAD))
    assert analyzer.get_trend() == EmotionTrend.STABLE


def test_trend_improving_and_declining():
    analyzer = EmotionTrendAnalyzer()
    for emotion in [EmotionCategory.SAD] * 5 + [EmotionCategory.HAPPY] * 5:
        analyzer.add_prediction(prediction(emotion))
    assert analyzer.get_trend() == EmotionTrend.IMPROVING

    analyzer.clear()
    for emotion in [EmotionCategory.CALM] * 5 + [EmotionCategory.ANXIOUS] * 5:
        analyzer.add_prediction(prediction(emotion))
    assert analyzer.get_trend() == EmotionTrend.DECLINING


def test_trend_within_threshold_is_stable():
    analyzer = EmotionTrendAnalyzer()
    # focused (60) to calm (70) is exactly the threshold, not beyond it
    for emotion in [EmotionCategory.FOCUSED] * 5 + [EmotionCategory.CALM] * 5:
        analyzer.add_prediction(prediction(emotion))
    assert analyzer.get_trend() == EmotionTrend.STABLE


def test_dominant_emotion_respects_window():
    clock = FakeClock(start=1000.0)
    analyzer = EmotionTrendAnalyzer(clock=clock)
    for _ in range(3):
        analyzer.add_prediction(prediction(EmotionCategory.SAD, timestamp=900.0))
    analyzer.add_prediction(prediction(EmotionCategory.CALM, timestamp=990.0))
    analyzer.add_prediction(prediction(EmotionCategory.FOCUSED, timestamp=995.0))

    assert analyzer.get_dominant_emotion(window_seconds=30) == EmotionCategory.CALM
    assert analyzer.get_dominant_emotion(window_seconds=200) == EmotionCategory.SAD


def test_dominant_emotion_empty():
    assert EmotionTrendAnalyzer().get_dominant_emotion() is None


def test_history_is_bounded():
    analyzer = EmotionTrendAnalyzer(max_history=60)
    for _ in range(75):
        analyzer.add_prediction(prediction(EmotionCategory.CALM))
    assert len(analyzer.get_history()) == 60


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
