# config/music_params.py

from typing import Dict, Tuple

import numpy as np

from biotune.core.music.parameter_space import (
    GoalType, Harmony, MusicParameters, Rhythm, Timbre
)

# (target arousal, target valence) each goal steers the listener toward
GOAL_TARGET_POINTS: Dict[GoalType, Tuple[float, float]] = {
    GoalType.RELAXATION: (20.0, 70.0),
    GoalType.FOCUS: (45.0, 60.0),
    GoalType.ENERGIZE: (75.0, 80.0),
    GoalType.MOOD_ELEVATION: (60.0, 85.0),
}
DEFAULT_TARGET_POINT = (50.0, 60.0)

# Tempo a track should have to serve a goal
GOAL_TARGET_TEMPO: Dict[GoalType, float] = {
    GoalType.RELAXATION: 60.0,
    GoalType.FOCUS: 72.0,
    GoalType.ENERGIZE: 120.0,
    GoalType.MOOD_ELEVATION: 95.0,
}
DEFAULT_TARGET_TEMPO = 90.0

# Arousal the progressive controller steers toward
PROGRESSIVE_TARGET_AROUSAL: Dict[GoalType, float] = {
    GoalType.RELAXATION: 20.0,
    GoalType.FOCUS: 45.0,
}
DEFAULT_PROGRESSIVE_AROUSAL = 75.0

# Fixed parameter sets presented directly by the entrainment algorithm
ENTRAINMENT_PRESETS: Dict[GoalType, MusicParameters] = {
    GoalType.RELAXATION: MusicParameters(
        tempo=60.0, harmony=Harmony.CONSONANT, volume=35.0, density=25.0,
        timbre=Timbre.SOFT, rhythm=Rhythm.SIMPLE),
    GoalType.FOCUS: MusicParameters(
        tempo=72.0, harmony=Harmony.CONSONANT, volume=45.0, density=40.0,
        timbre=Timbre.NEUTRAL, rhythm=Rhythm.MODERATE),
    GoalType.ENERGIZE: MusicParameters(
        tempo=120.0, harmony=Harmony.COMPLEX, volume=65.0, density=70.0,
        timbre=Timbre.BRIGHT, rhythm=Rhythm.COMPLEX),
    GoalType.MOOD_ELEVATION: MusicParameters(
        tempo=95.0, harmony=Harmony.CONSONANT, volume=55.0, density=50.0,
        timbre=Timbre.BRIGHT, rhythm=Rhythm.MODERATE),
}


def goal_target_point(goal_type: GoalType) -> Tuple[float, float]:
    return GOAL_TARGET_POINTS.get(goal_type, DEFAULT_TARGET_POINT)


def goal_target_tempo(goal_type: GoalType) -> float:
    return GOAL_TARGET_TEMPO.get(goal_type, DEFAULT_TARGET_TEMPO)


def progressive_target_arousal(goal_type: GoalType) -> float:
    return PROGRESSIVE_TARGET_AROUSAL.get(goal_type, DEFAULT_PROGRESSIVE_AROUSAL)


def distance_to_goal(arousal: float, valence: float, goal_type: GoalType) -> float:
    """Euclidean distance from a point to the goal's target point"""
    target_arousal, target_valence = goal_target_point(goal_type)
    return float(np.hypot(arousal - target_arousal, valence - target_valence))
