import numpy as np
from typing import Tuple

from biotune.config.music_params import goal_target_point
from biotune.core.music.parameter_space import GoalType

Point = Tuple[float, float]


def linear_target_path(start: Point, target: Point, n_points: int) -> np.ndarray:
    """Evenly spaced straight path from start to target, shape (n_points, 2)"""
    if n_points <= 0:
        return np.empty((0, 2))
    if n_points == 1:
        return np.array([target], dtype=float)
    alphas = np.linspace(0.0, 1.0, n_points)[:, None]
    return np.asarray(start, dtype=float) + (np.asarray(target, dtype=float)
                                             - np.asarray(start, dtype=float)) * alphas


def goal_target_path(start: Point, goal_type: GoalType, n_points: int) -> np.ndarray:
    return linear_target_path(start, goal_target_point(goal_type), n_points)
