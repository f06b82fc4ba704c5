import json
import os
import threading
import time
from dataclasses import dataclass, asdict, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from biotune.config.profiles import DEFAULT_PROFILE
from biotune.core.biofeedback.reading import Reading
from biotune.core.biofeedback.scenario import ScenarioSimulator
from biotune.core.biofeedback.simulator import BiofeedbackSimulator
from biotune.core.emotion.emotion_state import EmotionPrediction
from biotune.core.emotion.recognition import EmotionRecognizer
from biotune.core.emotion.trend import EmotionTrendAnalyzer
from biotune.core.music.adaptive_engine import AdaptiveMusicEngine
from biotune.core.music.parameter_space import (
    AdaptationAlgorithm, MusicParameters, TherapeuticGoal, coerce_enum
)
from biotune.core.music.rl_agent import Action, QTable, ReinforcementLearner
from biotune.core.personalization.engine import (
    AlgorithmRecommendation, PersonalizationEngine, generate_session_id
)
from biotune.core.personalization.profiles import ProfileStore
from biotune.core.recommendation.playlist import PlaylistRecommendation, PlaylistRecommender
from biotune.core.trajectory.dtw_matcher import DTWMatcher
from biotune.core.trajectory.library import goal_target_path
from biotune.utils.data_persistence import SnapshotRepository, SystemSnapshot
from biotune.utils.logging import get_logger

logger = get_logger()

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(
    os.path.abspath(__file__)))), "config", "default.json")


@dataclass
class SessionConfig:
    tick_interval: float = 1.0  # seconds between readings
    transition_step: float = 0.02
    initial_profile: str = DEFAULT_PROFILE
    scenario_check_interval: float = 5.0
    recognition_delay: float = 0.5
    recommendation_delay_min: float = 0.1
    recommendation_delay_max: float = 0.3
    use_multimodal: bool = False
    trend_history_size: int = 60
    transition_speed: float = 0.05
    harmony_switch_probability: float = 0.3
    enable_rl: bool = True
    learning_rate: float = 0.1
    discount_factor: float = 0.95
    exploration_rate: float = 0.2
    exploration_decay: float = 0.995
    min_exploration_rate: float = 0.05
    baseline_alpha: float = 0.1
    effectiveness_alpha: float = 0.15
    history_limit: int = 100
    playlist_length: int = 10
    seed: Optional[int] = None

    @classmethod
    def from_file(cls, path: Optional[str] = None, **overrides) -> "SessionConfig":
        """Load defaults from a JSON file; keyword overrides win over the file"""
        with open(path or DEFAULT_CONFIG_PATH) as f:
            values = json.load(f)
        values.update(overrides)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {unknown}")
        return cls(**{k: v for k, v in values.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionManager:
    """Owns the stores and components and wires one therapeutic session.

    Each reading from the signal source flows through recognition, trend
    tracking, baseline updates, parameter adaptation and (optionally) one
    Q-learning step. ``step`` drives the source synchronously; ``run`` lets
    the source tick in real time.
    """

    def __init__(self,
                 config: Optional[SessionConfig] = None,
                 rng=None,
                 simulator: Optional[BiofeedbackSimulator] = None,
                 repository: Optional[SnapshotRepository] = None,
                 q_table: Optional[QTable] = None,
                 profile_store: Optional[ProfileStore] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time):
        self.config = config if config is not None else SessionConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.repository = repository
        self.clock = clock

        # Explicit long-lived stores
        self.q_table = q_table if q_table is not None else QTable()
        self.profile_store = profile_store if profile_store is not None else ProfileStore()

        self._init_subsystems(simulator, sleep)

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._reset_session_state()

        # Callbacks
        self.on_reading_processed: Optional[Callable[[Reading, EmotionPrediction, MusicParameters], None]] = None
        self.on_session_end: Optional[Callable[[Dict[str, Any]], None]] = None

    def _init_subsystems(self, simulator: Optional[BiofeedbackSimulator], sleep):
        cfg = self.config
        self.simulator = simulator if simulator is not None else BiofeedbackSimulator(
            initial_profile=cfg.initial_profile,
            update_interval=cfg.tick_interval,
            transition_step=cfg.transition_step,
            rng=self.rng,
            clock=self.clock,
        )
        self.recognizer = EmotionRecognizer(recognition_delay=cfg.recognition_delay,
                                            rng=self.rng, sleep=sleep, clock=self.clock)
        self.trend_analyzer = EmotionTrendAnalyzer(max_history=cfg.trend_history_size,
                                                   clock=self.clock)
        self.engine = AdaptiveMusicEngine(transition_speed=cfg.transition_speed,
                                          harmony_switch_probability=cfg.harmony_switch_probability,
                                          rng=self.rng)
        self.learner = ReinforcementLearner(q_table=self.q_table,
                                            learning_rate=cfg.learning_rate,
                                            discount_factor=cfg.discount_factor,
                                            exploration_rate=cfg.exploration_rate,
                                            exploration_decay=cfg.exploration_decay,
                                            min_exploration_rate=cfg.min_exploration_rate,
                                            rng=self.rng)
        self.personalizer = PersonalizationEngine(store=self.profile_store,
                                                  baseline_alpha=cfg.baseline_alpha,
                                                  effectiveness_alpha=cfg.effectiveness_alpha,
                                                  history_limit=cfg.history_limit,
                                                  clock=self.clock)
        self.recommender = PlaylistRecommender(
            rng=self.rng,
            processing_delay=(cfg.recommendation_delay_min, cfg.recommendation_delay_max),
            sleep=sleep,
        )
        self.dtw_matcher = DTWMatcher()

    def _reset_session_state(self):
        self.session_id: Optional[str] = None
        self.user_id: Optional[str] = None
        self.goal: Optional[TherapeuticGoal] = None
        self.algorithm_recommendation: Optional[AlgorithmRecommendation] = None
        self.scenario: Optional[ScenarioSimulator] = None
        self.session_start_time = 0.0

        self.initial_reading: Optional[Reading] = None
        self.latest_reading: Optional[Reading] = None
        self.latest_prediction: Optional[EmotionPrediction] = None
        self.latest_parameters: Optional[MusicParameters] = None
        self.readings_processed = 0
        self.stepped_ticks = 0
        self.realtime_seconds = 0.0
        self.emotion_path: List[Tuple[float, float]] = []

        self._previous_reading: Optional[Reading] = None
        self._previous_action: Optional[Action] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def active(self) -> bool:
        return self.session_id is not None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self,
                      user_id: str,
                      goal: TherapeuticGoal,
                      scenario: Optional[str] = None,
                      algorithm: Optional[Union[AdaptationAlgorithm, str]] = None) -> str:
        if self.active:
            raise RuntimeError(f"Session {self.session_id} is still active")

        if algorithm is not None:
            algorithm = coerce_enum(AdaptationAlgorithm, algorithm)
        timeline = None
        if scenario is not None:
            timeline = ScenarioSimulator(scenario,
                                         check_interval=self.config.scenario_check_interval,
                                         simulator=self.simulator,
                                         clock=self.clock)

        with self._lock:
            self.session_id = generate_session_id(self.clock)
            logger.set_session_id(self.session_id)
            self.user_id = user_id
            self.goal = goal
            self.session_start_time = self.clock()
            self._stop_event.clear()

            self.scenario = timeline
            if timeline is not None:
                timeline.begin()

            self.engine.reset()
            self.engine.set_goal(goal)
            self.trend_analyzer.clear()

            current = self.simulator.get_current_reading()
            if algorithm is None:
                self.algorithm_recommendation = self.personalizer.recommend_algorithm(
                    user_id, current, goal)
                algorithm = self.algorithm_recommendation.algorithm
                logger.info(f"Personalized algorithm: {algorithm.value} "
                            f"({self.algorithm_recommendation.rationale})")
            self.engine.set_algorithm(algorithm)

            self._unsubscribe = self.simulator.subscribe(self.process_reading)

        logger.info(f"Session {self.session_id} started: user={user_id} "
                    f"goal={goal.goal_type.value}({goal.intensity:.0f}) "
                    f"algorithm={self.engine.algorithm.value} scenario={scenario}")
        return self.session_id

    def process_reading(self, reading: Reading) -> Optional[MusicParameters]:
        """Run one reading through the adaptation pipeline"""
        with self._lock:
            if not self.active:
                return None
            if logger.get_session_id() != self.session_id:
                logger.set_session_id(self.session_id)

            with logger.performance_timer("session", "process_reading"):
                if self.config.use_multimodal:
                    prediction = self.recognizer.recognize_multimodal(reading)
                else:
                    prediction = self.recognizer.recognize_from_physiological(reading)
                self.trend_analyzer.add_prediction(prediction)
                self.personalizer.update_baseline_metrics(self.user_id, reading)

                parameters = self.engine.update(reading)
                if self.config.enable_rl:
                    parameters = self._learning_step(reading)

            if self.initial_reading is None:
                self.initial_reading = reading
            self.latest_reading = reading
            self.latest_prediction = prediction
            self.latest_parameters = parameters
            self.emotion_path.append((reading.arousal, reading.valence))
            self.readings_processed += 1
            callback = self.on_reading_processed

        if callback is not None:
            try:
                callback(reading, prediction, parameters)
            except Exception:
                logger.exception("on_reading_processed callback failed")
        return parameters

    def _learning_step(self, reading: Reading) -> MusicParameters:
        if self._previous_reading is not None and self._previous_action is not None:
            self.learner.learn(self._previous_reading, self._previous_action, reading, self.goal)
        action = self.learner.select_action(reading, self.goal)
        self._previous_reading = reading
        self._previous_action = action
        return self.engine.apply_adjustment(action)

    def step(self, n: int = 1) -> Optional[MusicParameters]:
        """Produce ``n`` readings synchronously, advancing any scenario on simulated time"""
        if not self.active:
            raise RuntimeError("No active session")
        for _ in range(n):
            if self.scenario is not None:
                elapsed = self.session_duration()
                if not self.scenario.check_timeline_progress(elapsed):
                    break
            self.simulator.tick()
            self.stepped_ticks += 1
        return self.latest_parameters

    def run(self, duration: float):
        """Let the signal source tick in real time for ``duration`` seconds"""
        if not self.active:
            raise RuntimeError("No active session")
        if self.scenario is not None:
            self.scenario.play()
        else:
            self.simulator.start()
        started = self.clock()
        try:
            self._stop_event.wait(duration)
        finally:
            self._stop_sources()
            self.realtime_seconds += self.clock() - started

    def _stop_sources(self):
        if self.scenario is not None:
            self.scenario.stop()
        elif self.simulator.is_running:
            self.simulator.stop()

    def end_session(self, user_satisfaction: Optional[float] = None) -> Dict[str, Any]:
        if not self.active:
            raise RuntimeError("No active session")

        self._stop_event.set()
        self._stop_sources()
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()

            fallback = self.simulator.get_current_reading()
            initial = self.initial_reading or fallback
            final = self.latest_reading or initial
            duration = self.session_duration()

            session = self.personalizer.record_session(
                self.user_id, self.goal, self.engine.algorithm, initial, final,
                duration=duration, user_satisfaction=user_satisfaction,
                session_id=self.session_id)
            self.learner.decay_exploration()

            adherence = self._trajectory_adherence(initial)
            logger.log_session(user_id=self.user_id, goal=self.goal.goal_type.value,
                               algorithm=self.engine.algorithm.value,
                               effectiveness=session.effectiveness, duration=duration,
                               adherence=adherence)

            dominant = self.trend_analyzer.get_dominant_emotion(window_seconds=float('inf'))
            summary = {
                'session_id': self.session_id,
                'user_id': self.user_id,
                'goal': self.goal.to_dict(),
                'algorithm': self.engine.algorithm.value,
                'scenario': self.scenario.name if self.scenario else None,
                'readings_processed': self.readings_processed,
                'duration': duration,
                'effectiveness': session.effectiveness,
                'trajectory_adherence': adherence,
                'initial_reading': initial.to_dict(),
                'final_reading': final.to_dict(),
                'final_parameters': self.engine.current_parameters.to_dict(),
                'dominant_emotion': dominant.value if dominant else None,
                'emotion_trend': self.trend_analyzer.get_trend().value,
                'learning': self.learner.get_statistics(),
                'insights': self.personalizer.get_user_insights(self.user_id),
            }
            logger.info(f"Session {self.session_id} ended: effectiveness="
                        f"{session.effectiveness:.1f} adherence={adherence}")
            self._reset_session_state()
            callback = self.on_session_end

        if callback is not None:
            try:
                callback(summary)
            except Exception:
                logger.exception("on_session_end callback failed")
        return summary

    def session_duration(self) -> float:
        """Simulated seconds from stepped ticks plus wall-clock seconds spent in ``run``"""
        return self.stepped_ticks * self.config.tick_interval + self.realtime_seconds

    def _trajectory_adherence(self, initial: Reading) -> Optional[float]:
        if len(self.emotion_path) < 2:
            return None
        target = goal_target_path((initial.arousal, initial.valence), self.goal.goal_type,
                                  len(self.emotion_path))
        deviation = self.dtw_matcher.compute_trajectory_deviation(self.emotion_path, target)
        return 1.0 - deviation

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def recommend_playlist(self, length: Optional[int] = None,
                           asynchronous: bool = False):
        """Playlist for the latest reading; a Future when ``asynchronous``"""
        if not self.active:
            raise RuntimeError("No active session")
        reading = self.latest_reading or self.simulator.get_current_reading()
        prediction = self.latest_prediction or self.recognizer.recognize_from_physiological(reading)
        length = length or self.config.playlist_length

        if asynchronous:
            return self.recommender.recommend_playlist_async(reading, prediction, self.goal, length)
        return self.recommender.recommend_playlist(reading, prediction, self.goal, length)

    def rate_track(self, track_id: str, liked: bool) -> float:
        return self.recommender.update_preference(track_id, liked)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> SystemSnapshot:
        snapshot = SystemSnapshot(
            created_at=self.clock(),
            profiles=self.profile_store.export_all(),
            q_table=self.learner.export_q_table(),
            track_preferences=self.recommender.export_preferences(),
            metadata={'exploration_rate': self.learner.exploration_rate},
        )
        if self.repository is not None:
            self.repository.save(snapshot)
            logger.info(f"Snapshot saved: {len(snapshot.profiles)} profiles, "
                        f"{len(snapshot.q_table)} Q-states")
        return snapshot

    def load(self, snapshot: Optional[SystemSnapshot] = None) -> bool:
        """Restore learned state from a snapshot or the repository's latest one"""
        if snapshot is None and self.repository is not None:
            snapshot = self.repository.load_latest()
        if snapshot is None:
            logger.info("No snapshot to restore")
            return False

        self.profile_store.import_all(snapshot.profiles)
        self.learner.import_q_table(snapshot.q_table)
        self.recommender.import_preferences(snapshot.track_preferences)
        if 'exploration_rate' in snapshot.metadata:
            self.learner.exploration_rate = float(snapshot.metadata['exploration_rate'])
        logger.info(f"Snapshot restored: {len(snapshot.profiles)} profiles")
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            'active': self.active,
            'session_id': self.session_id,
            'user_id': self.user_id,
            'goal': self.goal.to_dict() if self.goal else None,
            'algorithm': self.engine.algorithm.value,
            'simulator': {
                'status': self.simulator.status.value,
                'profile': self.simulator.current_profile_name,
                'target_profile': self.simulator.target_profile_name,
                'transition_progress': self.simulator.transition_progress,
            },
            'readings_processed': self.readings_processed,
            'duration': self.session_duration(),
            'emotion': self.latest_prediction.to_dict() if self.latest_prediction else None,
            'parameters': self.engine.current_parameters.to_dict(),
            'emotion_trend': self.trend_analyzer.get_trend().value,
            'learning': self.learner.get_statistics(),
        }

    def shutdown(self):
        if self.active:
            self.end_session()
        self._stop_sources()
        self.recognizer.shutdown()
        self.recommender.shutdown()
        logger.info("Session manager shut down")
