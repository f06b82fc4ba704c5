"""
Shared fixtures for BioTune tests
"""
import itertools
import os
import sys
import tempfile

# Ensure project root on path and keep test logs out of the working tree
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("BIOTUNE_LOG_DIR", tempfile.mkdtemp(prefix="biotune_test_logs_"))

import pytest

from biotune.core.biofeedback.reading import Reading


class ConstantRng:
    """Random source that always returns the same value"""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class SequenceRng:
    """Random source cycling through fixed values"""

    def __init__(self, values):
        self._values = itertools.cycle(values)

    def random(self) -> float:
        return next(self._values)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_reading(arousal=50.0, valence=50.0, heart_rate=72.0, timestamp=0.0, **overrides):
    signals = dict(
        timestamp=timestamp,
        heart_rate=heart_rate,
        heart_rate_variability=60.0,
        arousal=arousal,
        valence=valence,
        respiration_rate=14.0,
        skin_conductance=4.0,
        muscle_tension=35.0,
    )
    signals.update(overrides)
    return Reading(**signals)


@pytest.fixture
def constant_rng():
    return ConstantRng(0.5)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    calls = []
    return calls.append, calls
