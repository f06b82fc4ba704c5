#!/usr/bin/env python3
"""
End-to-end session tests: scenario -> recognition -> adaptation -> learning -> summary
"""
import json
import sys

import pytest

from biotune import create_session_manager
from biotune.core.emotion.emotion_state import Modality
from biotune.core.music.parameter_space import (
    PARAMETER_SPECS, AdaptationAlgorithm, GoalType, TherapeuticGoal
)
from biotune.core.session.manager import SessionConfig, SessionManager
from biotune.utils.data_persistence import InMemorySnapshotRepository

RELAXATION = TherapeuticGoal(GoalType.RELAXATION, 70.0)


def fast_config(**overrides):
    values = dict(seed=42, recognition_delay=0.0, recommendation_delay_min=0.0,
                  recommendation_delay_max=0.0)
    values.update(overrides)
    return SessionConfig(**values)


@pytest.fixture
def manager():
    session_manager = SessionManager(config=fast_config(), sleep=lambda seconds: None)
    yield session_manager
    session_manager.shutdown()


def test_scenario_session_end_to_end(manager):
    manager.start_session("alice", RELAXATION, scenario="stress_reduction")
    assert manager.simulator.current_profile_name == "stressed"

    manager.step(200)
    status = manager.get_status()
    assert status['active']
    assert status['readings_processed'] == 200
    # checkpoint at 120s, fifty ticks to converge
    assert status['simulator']['profile'] == "focused"
    for name, spec in PARAMETER_SPECS.items():
        assert spec.min_val <= status['parameters'][name] <= spec.max_val

    summary = manager.end_session(user_satisfaction=4.0)
    assert not manager.active
    assert summary['user_id'] == "alice"
    assert summary['scenario'] == "stress_reduction"
    assert summary['readings_processed'] == 200
    assert summary['duration'] == pytest.approx(200.0)
    assert 0.0 <= summary['effectiveness'] <= 100.0
    assert 0.0 <= summary['trajectory_adherence'] <= 1.0
    assert summary['initial_reading']['arousal'] > summary['final_reading']['arousal']
    assert summary['learning']['total_transitions'] == 199
    assert summary['insights']['total_sessions'] == 1
    json.dumps(summary)

    profile = manager.profile_store.get("alice")
    assert len(profile.therapeutic_history) == 1
    assert profile.therapeutic_history[0].user_satisfaction == 4.0
    assert manager.q_table.size > 0
    assert manager.learner.exploration_rate < manager.config.exploration_rate


def test_scenario_stops_stepping_when_finished(manager):
    manager.start_session("alice", RELAXATION, scenario="focus_enhancement")
    manager.step(1000)
    assert manager.readings_processed == 480


def test_explicit_algorithm_overrides_personalization(manager):
    manager.start_session("bob", RELAXATION, algorithm="entrainment")
    assert manager.algorithm_recommendation is None
    manager.step(5)
    summary = manager.end_session()
    assert summary['algorithm'] == AdaptationAlgorithm.ENTRAINMENT.value


def test_personalized_algorithm_is_used(manager):
    manager.start_session("carol", RELAXATION)
    assert manager.algorithm_recommendation is not None
    assert manager.engine.algorithm == manager.algorithm_recommendation.algorithm
    manager.end_session()


def test_learning_can_be_disabled():
    session_manager = SessionManager(config=fast_config(enable_rl=False), sleep=lambda s: None)
    session_manager.start_session("dave", RELAXATION)
    session_manager.step(20)
    assert session_manager.q_table.size == 0
    session_manager.shutdown()


def test_playlist_for_current_state(manager):
    manager.start_session("alice", RELAXATION, scenario="stress_reduction")
    manager.step(10)

    recommendation = manager.recommend_playlist(length=5)
    ids = [t.id for t in recommendation.tracks]
    assert 0 < len(ids) <= 5
    assert len(set(ids)) == len(ids)
    assert 0.0 <= recommendation.confidence <= 95.0

    future = manager.recommend_playlist(length=3, asynchronous=True)
    assert len(future.result(timeout=5).tracks) <= 3

    assert manager.rate_track(ids[0], liked=True) == 60.0


def test_snapshot_restores_learned_state():
    repository = InMemorySnapshotRepository()
    first = SessionManager(config=fast_config(), repository=repository, sleep=lambda s: None)
    first.start_session("alice", RELAXATION, scenario="stress_reduction")
    first.step(30)
    first.end_session()
    first.rate_track("3", liked=False)
    first.snapshot()
    first.shutdown()
    assert len(repository) == 1

    second = SessionManager(config=fast_config(seed=7), repository=repository,
                            sleep=lambda s: None)
    assert second.load()
    assert "alice" in second.profile_store
    assert len(second.profile_store.get("alice").therapeutic_history) == 1
    assert second.learner.export_q_table() == first.learner.export_q_table()
    assert second.recommender.get_preference("3") == 40.0
    assert second.learner.exploration_rate == first.learner.exploration_rate
    second.shutdown()


def test_load_without_snapshot(manager):
    assert manager.load() is False


def test_failing_callback_does_not_stop_pipeline(manager):
    seen = []

    def callback(reading, prediction, parameters):
        seen.append(prediction.emotion)
        raise RuntimeError("display unavailable")

    manager.on_reading_processed = callback
    manager.start_session("alice", RELAXATION)
    manager.step(3)
    assert len(seen) == 3
    assert manager.readings_processed == 3


def test_session_end_callback_receives_summary(manager):
    summaries = []
    manager.on_session_end = summaries.append
    manager.start_session("alice", RELAXATION)
    manager.step(2)
    summary = manager.end_session()
    assert summaries == [summary]


def test_lifecycle_errors(manager):
    with pytest.raises(RuntimeError):
        manager.step()
    with pytest.raises(RuntimeError):
        manager.end_session()
    with pytest.raises(RuntimeError):
        manager.recommend_playlist()

    manager.start_session("alice", RELAXATION)
    with pytest.raises(RuntimeError):
        manager.start_session("alice", RELAXATION)
    manager.end_session()


def test_rejected_start_leaves_no_session(manager):
    with pytest.raises(ValueError):
        manager.start_session("alice", RELAXATION, scenario="marathon")
    with pytest.raises(ValueError):
        manager.start_session("alice", RELAXATION, algorithm="shuffle")
    assert not manager.active


def test_session_without_readings(manager):
    manager.start_session("alice", RELAXATION)
    summary = manager.end_session()
    assert summary['readings_processed'] == 0
    assert summary['trajectory_adherence'] is None


def test_multimodal_recognition():
    session_manager = SessionManager(config=fast_config(use_multimodal=True), sleep=lambda s: None)
    session_manager.start_session("alice", RELAXATION)
    session_manager.step(5)
    assert session_manager.latest_prediction.modality == Modality.MULTIMODAL
    session_manager.shutdown()


def test_real_time_run():
    session_manager = SessionManager(config=fast_config(tick_interval=0.01),
                                     sleep=lambda s: None)
    session_manager.start_session("alice", RELAXATION)
    session_manager.run(0.3)
    assert not session_manager.simulator.is_running
    assert session_manager.readings_processed > 0
    summary = session_manager.end_session()
    assert summary['readings_processed'] > 0
    assert summary["duration"] == pytest.approx(0.3, abs=0.2)
    session_manager.shutdown()


def test_config_from_file_with_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"tick_interval": 2.0, "playlist_length": 4, "volume_knob": 11}))
    config = SessionConfig.from_file(str(path), playlist_length=6)
    assert config.tick_interval == 2.0
    assert config.playlist_length == 6
    assert config.exploration_rate == 0.2


def test_default_config_file_matches_dataclass():
    assert SessionConfig.from_file().to_dict() == SessionConfig().to_dict()


def test_create_session_manager():
    session_manager = create_session_manager(seed=3, recognition_delay=0.0,
                                             recommendation_delay_min=0.0,
                                             recommendation_delay_max=0.0)
    assert session_manager.config.seed == 3
    assert isinstance(session_manager.repository, InMemorySnapshotRepository)
    session_manager.start_session("alice", RELAXATION)
    session_manager.step(3)
    session_manager.end_session()
    session_manager.shutdown()


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
