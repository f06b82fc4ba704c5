import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from biotune.config.music_params import goal_target_point, goal_target_tempo
from biotune.config.tracks import MUSIC_LIBRARY
from biotune.core.biofeedback.reading import Reading
from biotune.core.emotion.emotion_state import EmotionCategory, EmotionPrediction
from biotune.core.music.parameter_space import AdaptationAlgorithm, GoalType, TherapeuticGoal
from biotune.core.recommendation.track import MusicTrack
from biotune.utils.logging import get_logger

logger = get_logger()

DEFAULT_PREFERENCE = 50.0
PREFERENCE_STEP = 10.0
MAX_CONFIDENCE = 95.0


@dataclass
class PlaylistRecommendation:
    tracks: List[MusicTrack]
    confidence: float
    rationale: str
    strategy: AdaptationAlgorithm

    def to_dict(self) -> Dict:
        return {
            'tracks': [track.to_dict() for track in self.tracks],
            'confidence': self.confidence,
            'rationale': self.rationale,
            'strategy': self.strategy.value,
        }


class PlaylistRecommender:
    """Candidate generation, scoring, ranking and diversification of tracks.

    Strategy selection here is independent of the personalization engine's
    algorithm recommendation and uses its own thresholds.
    """

    def __init__(self,
                 library: Optional[Sequence[MusicTrack]] = None,
                 rng=None,
                 processing_delay: Tuple[float, float] = (0.1, 0.3),
                 sleep: Callable[[float], None] = time.sleep):
        self.library: List[MusicTrack] = list(library) if library is not None else list(MUSIC_LIBRARY)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.processing_delay = processing_delay
        self.sleep = sleep

        self.preferences: Dict[str, float] = {}
        self.recent_recommendations = deque(maxlen=20)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="PlaylistRecommender")

    # ------------------------------------------------------------------
    # Strategy and candidates
    # ------------------------------------------------------------------

    def select_strategy(self, reading: Reading, emotion: EmotionPrediction,
                        goal: TherapeuticGoal) -> AdaptationAlgorithm:
        if emotion.emotion in (EmotionCategory.ANXIOUS, EmotionCategory.FRUSTRATED) \
                or reading.arousal > 75:
            return AdaptationAlgorithm.ISO_PRINCIPLE
        if reading.arousal < 40 and goal.goal_type in (GoalType.RELAXATION, GoalType.FOCUS):
            return AdaptationAlgorithm.ENTRAINMENT
        return AdaptationAlgorithm.PROGRESSIVE

    def generate_candidates(self, reading: Reading, goal: TherapeuticGoal,
                            strategy: AdaptationAlgorithm) -> List[MusicTrack]:
        if strategy == AdaptationAlgorithm.ISO_PRINCIPLE:
            return [track for track in self.library
                    if abs(track.tempo - reading.heart_rate) < 20
                    or abs(track.valence - reading.valence) < 30]

        if strategy == AdaptationAlgorithm.ENTRAINMENT:
            return [track for track in self.library if track.serves(goal.goal_type.value)]

        target_arousal, _ = goal_target_point(goal.goal_type)
        low = min(reading.arousal, target_arousal) - 20
        high = max(reading.arousal, target_arousal) + 20
        return [track for track in self.library if low <= track.energy <= high]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def get_preference(self, track_id: str) -> float:
        return self.preferences.get(track_id, DEFAULT_PREFERENCE)

    def score_track(self, track: MusicTrack, goal: TherapeuticGoal) -> float:
        score = 0.0
        if track.serves(goal.goal_type.value):
            score += 40.0

        tempo_distance = abs(track.tempo - goal_target_tempo(goal.goal_type))
        score += max(0.0, 20.0 - tempo_distance / 5.0)

        _, target_valence = goal_target_point(goal.goal_type)
        valence_distance = abs(track.valence - target_valence)
        score += max(0.0, 20.0 - valence_distance / 5.0)

        score += self.get_preference(track.id) / 100.0 * 20.0
        score += self.rng.random() * 5.0
        return score

    def rank_and_select(self, candidates: Sequence[MusicTrack], goal: TherapeuticGoal,
                        count: int) -> List[MusicTrack]:
        scored = [(self.score_track(track, goal), track) for track in candidates]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [track for _, track in scored[:count]]

    def diversify_playlist(self, tracks: Sequence[MusicTrack],
                           length: Optional[int] = None) -> List[MusicTrack]:
        """Reorder ranked tracks to spread genres, without duplicates.

        The first half of the playlist prefers the first track of each genre
        not yet used; remaining slots take the best tracks left in rank order.
        """
        unique: List[MusicTrack] = []
        seen_ids = set()
        for track in tracks:
            if track.id not in seen_ids:
                seen_ids.add(track.id)
                unique.append(track)

        limit = len(unique) if length is None else min(max(0, length), len(unique))
        playlist: List[MusicTrack] = []
        used_genres = set()

        for track in unique:
            if len(playlist) >= limit:
                break
            if track.genre not in used_genres or len(playlist) > limit / 2:
                playlist.append(track)
                used_genres.add(track.genre)

        chosen = {track.id for track in playlist}
        for track in unique:
            if len(playlist) >= limit:
                break
            if track.id not in chosen:
                playlist.append(track)
                chosen.add(track.id)

        return playlist

    # ------------------------------------------------------------------
    # Recommendation
    # ------------------------------------------------------------------

    def generate_rationale(self, emotion: EmotionPrediction, goal: TherapeuticGoal,
                           strategy: AdaptationAlgorithm, track_count: int) -> str:
        goal_text = goal.goal_type.value.replace('_', ' ')
        if track_count == 0:
            return (f"No tracks in the library suit the current state for {goal_text}; "
                    f"try a different goal or adjust your preferences.")
        if strategy == AdaptationAlgorithm.ISO_PRINCIPLE:
            return (f"Detected {emotion.emotion.value} state. Using ISO-principle: playlist starts "
                    f"by matching your current mood, then gradually guides you toward {goal_text}.")
        if strategy == AdaptationAlgorithm.ENTRAINMENT:
            return (f"Your current state is suitable for direct guidance. Playlist designed to "
                    f"entrain your physiology toward {goal_text} using targeted music.")
        return (f"Progressive adaptation: playlist gradually shifts your emotional state toward "
                f"{goal_text} through carefully sequenced tracks.")

    def calculate_confidence(self, emotion: EmotionPrediction, tracks: Sequence[MusicTrack]) -> float:
        """Recommendation confidence on a 0-95 scale"""
        confidence = emotion.confidence * 100.0
        if len(tracks) < 5:
            confidence *= 0.8
        if not tracks:
            confidence *= 0.5
        confidence += (self.rng.random() - 0.5) * 5.0
        return float(np.clip(confidence, 0.0, MAX_CONFIDENCE))

    def _simulate_latency(self):
        low, high = self.processing_delay
        delay = low + self.rng.random() * max(0.0, high - low)
        if delay > 0:
            self.sleep(delay)

    def recommend_playlist(self, reading: Reading, emotion: EmotionPrediction,
                           goal: TherapeuticGoal, length: int = 10) -> PlaylistRecommendation:
        with logger.performance_timer("recommender", "recommend_playlist"):
            self._simulate_latency()

            strategy = self.select_strategy(reading, emotion, goal)
            candidates = self.generate_candidates(reading, goal, strategy)
            ranked = self.rank_and_select(candidates, goal, length)
            tracks = self.diversify_playlist(ranked, length)

            recommendation = PlaylistRecommendation(
                tracks=tracks,
                confidence=self.calculate_confidence(emotion, tracks),
                rationale=self.generate_rationale(emotion, goal, strategy, len(tracks)),
                strategy=strategy,
            )

        self.recent_recommendations.append([track.id for track in tracks])
        if not tracks:
            logger.warning(f"No candidate tracks for {goal.goal_type.value} "
                           f"with strategy {strategy.value}")
        logger.info(f"Recommended {len(tracks)} tracks ({strategy.value}, "
                    f"confidence {recommendation.confidence:.1f})")
        return recommendation

    def recommend_playlist_async(self, reading: Reading, emotion: EmotionPrediction,
                                 goal: TherapeuticGoal, length: int = 10) -> "Future[PlaylistRecommendation]":
        return self._executor.submit(self.recommend_playlist, reading, emotion, goal, length)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def update_preference(self, track_id: str, liked: bool) -> float:
        step = PREFERENCE_STEP if liked else -PREFERENCE_STEP
        score = float(np.clip(self.get_preference(track_id) + step, 0.0, 100.0))
        self.preferences[track_id] = score
        logger.debug(f"Track {track_id} preference -> {score:.0f}")
        return score

    def export_preferences(self) -> Dict[str, float]:
        return dict(self.preferences)

    def import_preferences(self, preferences: Dict[str, float]):
        self.preferences = {str(k): float(np.clip(v, 0.0, 100.0)) for k, v in preferences.items()}

    def shutdown(self):
        self._executor.shutdown(wait=True)
