import numpy as np
from typing import Optional, Sequence, Tuple

from dtaidistance import dtw_ndim

from biotune.utils.logging import get_logger
logger = get_logger()

# Diagonal of the 100x100 arousal/valence plane
MAX_POINT_DISTANCE = float(np.hypot(100.0, 100.0))


def _as_path(trajectory) -> np.ndarray:
    return np.asarray(trajectory, dtype=np.double).reshape(-1, 2)


class DTWMatcher:
    """Dynamic Time Warping comparison of (arousal, valence) trajectories"""

    def __init__(self, window_size: Optional[int] = None):
        self.window_size = window_size

    def compute_dtw_distance(self, trajectory1: Sequence[Tuple[float, float]],
                             trajectory2: Sequence[Tuple[float, float]]) -> float:
        path1, path2 = _as_path(trajectory1), _as_path(trajectory2)
        if len(path1) == 0 or len(path2) == 0:
            return float('inf')
        return float(dtw_ndim.distance(path1, path2, window=self.window_size))

    def compute_trajectory_deviation(self, actual_path: Sequence[Tuple[float, float]],
                                     target_path: Sequence[Tuple[float, float]]) -> float:
        """Deviation of the actual path from the target path, normalised to [0, 1]"""
        actual, target = _as_path(actual_path), _as_path(target_path)
        if len(actual) == 0 or len(target) == 0:
            return 1.0

        dtw_dist = self.compute_dtw_distance(actual, target)
        max_possible_dist = MAX_POINT_DISTANCE * np.sqrt(max(len(actual), len(target)))
        deviation = float(min(1.0, dtw_dist / max_possible_dist))
        logger.debug(f"Trajectory deviation {deviation:.3f} over {len(actual)} points")
        return deviation
