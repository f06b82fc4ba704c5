#!/usr/bin/env python3
"""
Structured logging tests
"""
import json
import logging
import sys
import threading

import pytest

from biotune.utils.logging import BioTuneLogger, get_logger, setup_logging


@pytest.fixture
def session_logger(tmp_path):
    biotune_logger = BioTuneLogger(log_dir=tmp_path, log_level=logging.WARNING)
    yield biotune_logger
    # Point the shared 'biotune' logger back at the global instance's directory
    global_logger = get_logger()
    global_logger.configure_handlers(logging.INFO)


def test_structured_entries_are_written_per_session(session_logger, tmp_path):
    session_logger.set_session_id("session_a")
    session_logger.log_emotion("calm", 0.7, "physiological", 20.0, 80.0)
    session_logger.log_emotion("happy", 0.9, "physiological", 70.0, 80.0)
    session_logger.set_session_id("session_b")
    session_logger.log_emotion("sad", 0.4, "physiological", 20.0, 20.0)

    lines = (tmp_path / "emotions.jsonl").read_text().splitlines()
    assert [json.loads(line)['session_id'] for line in lines] == ["session_a", "session_a",
                                                                 "session_b"]

    summary = session_logger.get_session_summary("session_a")
    assert summary['emotions']['count'] == 2
    assert summary['emotions']['arousal']['mean'] == pytest.approx(45.0)
    assert summary['emotions']['emotions'] == {"calm": 1, "happy": 1}
    assert summary['learning'] == {'count': 0}


def test_learning_and_music_summary(session_logger):
    session_logger.set_session_id("s1")
    session_logger.log_music_update({'tempo': 90.0}, algorithm="iso_principle", goal="relaxation")
    session_logger.log_music_update({'tempo': 80.0}, algorithm="iso_principle", goal="relaxation")
    session_logger.log_learning("high-low-relaxation", "tempo:-2.0", "medium-low-relaxation",
                                reward=2.0, q_value=0.2, exploration_rate=0.2)
    session_logger.log_learning("medium-low-relaxation", "volume:1.0", "medium-low-relaxation",
                                reward=-1.0, q_value=-0.1, exploration_rate=0.2)

    summary = session_logger.get_session_summary()
    assert summary['session_id'] == "s1"
    assert summary['music']['tempo'] == {'mean': 85.0, 'start': 90.0, 'end': 80.0}
    assert summary['music']['algorithms'] == {"iso_principle": 2}
    assert summary['learning']['reward']['total'] == pytest.approx(1.0)
    assert summary['learning']['positive_fraction'] == pytest.approx(0.5)


def test_performance_timer(session_logger):
    session_logger.set_session_id("perf")
    with session_logger.performance_timer("session", "process_reading"):
        pass
    with pytest.raises(KeyError):
        with session_logger.performance_timer("session", "process_reading"):
            raise KeyError("boom")

    performance = session_logger.get_session_summary()['performance']
    assert performance['count'] == 2
    assert performance['operations']['session.process_reading']['count'] == 2


def test_structured_logging_can_be_disabled(tmp_path):
    biotune_logger = BioTuneLogger(log_dir=tmp_path, enable_structured_logging=False)
    biotune_logger.log_session("alice", "relaxation", "iso_principle", 80.0, 120.0)
    assert not (tmp_path / "sessions.jsonl").exists()
    get_logger().configure_handlers(logging.INFO)


def test_read_stream_skips_corrupt_lines(session_logger, tmp_path):
    session_logger.set_session_id("s2")
    session_logger.log_session("alice", "relaxation", "iso_principle", 80.0, 120.0, adherence=0.9)
    with open(tmp_path / "sessions.jsonl", "a") as f:
        f.write("{not json\n")

    entries = session_logger.read_stream("sessions", "s2")
    assert len(entries) == 1
    assert entries[0]['adherence'] == 0.9
    assert session_logger.read_stream("emotions", "s2") == []


def test_setup_logging_keeps_existing_instance():
    assert setup_logging() is get_logger()


def test_session_id_is_thread_local(session_logger):
    session_logger.set_session_id("outer")
    seen = []
    worker = threading.Thread(target=lambda: seen.append(session_logger.get_session_id()))
    worker.start()
    worker.join()
    assert seen == ["unknown"]
    assert session_logger.get_session_id() == "outer"


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-q"]))
