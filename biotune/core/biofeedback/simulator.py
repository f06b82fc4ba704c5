import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from biotune.config.profiles import DEFAULT_PROFILE, get_profile
from biotune.core.biofeedback.reading import (
    NOISE_LEVELS, SIGNAL_FIELDS, BiofeedbackProfile, Reading
)
from biotune.utils.logging import get_logger

logger = get_logger()

ReadingListener = Callable[[Reading], None]

LISTENER_THREAD_PREFIX = "BiofeedbackListeners"


class SimulatorStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    TRANSITIONING = "transitioning"


def add_noise(value: float, level: float, rng) -> float:
    """Proportional uniform noise in [-level*value, +level*value]"""
    return value + (rng.random() - 0.5) * 2.0 * level * value


class BiofeedbackSimulator:
    """Periodic source of synthetic physiological readings.

    Readings are centred on a named archetype profile. ``transition_to`` moves
    the centre linearly toward another profile, one ``transition_step`` per
    tick. Listeners are notified in registration order. ``tick`` notifies them
    on the calling thread; the background loop hands each reading to a single
    listener thread and keeps its own schedule, so a slow listener never
    delays the next tick.
    """

    def __init__(self,
                 initial_profile: str = DEFAULT_PROFILE,
                 update_interval: float = 1.0,
                 transition_step: float = 0.02,
                 rng=None,
                 clock: Callable[[], float] = time.time):
        if update_interval <= 0:
            raise ValueError("update_interval must be positive")
        if not 0.0 < transition_step <= 1.0:
            raise ValueError("transition_step must be in (0, 1]")

        self.update_interval = update_interval
        self.transition_step = transition_step
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

        self._current_profile: BiofeedbackProfile = get_profile(initial_profile)
        self._target_profile: Optional[BiofeedbackProfile] = None
        self._transition_ticks = 0
        self._transition_total = int(math.ceil(round(1.0 / transition_step, 9)))
        self.transition_progress = 0.0

        self._listeners: List[ReadingListener] = []
        self._last_reading: Optional[Reading] = None
        self._lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dispatcher: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_transitioning(self) -> bool:
        return self._target_profile is not None

    @property
    def status(self) -> SimulatorStatus:
        if not self.is_running:
            return SimulatorStatus.IDLE
        if self.is_transitioning:
            return SimulatorStatus.TRANSITIONING
        return SimulatorStatus.RUNNING

    def start(self):
        if self.is_running:
            logger.warning("Biofeedback simulator is already running")
            return

        self._stop_event.clear()
        self._dispatcher = ThreadPoolExecutor(max_workers=1,
                                              thread_name_prefix=LISTENER_THREAD_PREFIX)
        self._thread = threading.Thread(target=self._tick_loop, daemon=True,
                                        name="BiofeedbackSimulator")
        self._thread.start()
        logger.info(f"Biofeedback simulator started (profile={self.current_profile_name}, "
                    f"interval={self.update_interval}s)")

    def stop(self):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

        dispatcher = self._dispatcher
        self._dispatcher = None
        if dispatcher is not None:
            # readings still queued for listeners are dropped
            in_listener = threading.current_thread().name.startswith(LISTENER_THREAD_PREFIX)
            dispatcher.shutdown(wait=not in_listener, cancel_futures=True)
        logger.info("Biofeedback simulator stopped")

    def set_update_interval(self, seconds: float):
        """Change the tick period; a running loop is restarted with the new period"""
        if seconds <= 0:
            raise ValueError("update interval must be positive")
        was_running = self.is_running
        if was_running:
            self.stop()
        self.update_interval = seconds
        if was_running:
            self.start()

    def _tick_loop(self):
        dispatcher = self._dispatcher
        deadline = time.monotonic()
        while not self._stop_event.is_set():
            try:
                reading, listeners = self._generate()
                dispatcher.submit(self._notify, reading, listeners)
            except Exception:
                logger.exception("Error while generating biofeedback reading")

            deadline += self.update_interval
            now = time.monotonic()
            if deadline < now:
                deadline = now
            self._stop_event.wait(deadline - now)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    @property
    def current_profile_name(self) -> str:
        return self._current_profile.name

    @property
    def target_profile_name(self) -> Optional[str]:
        return self._target_profile.name if self._target_profile else None

    def set_profile(self, name: str):
        """Jump to a profile immediately, cancelling any transition"""
        profile = get_profile(name)
        with self._lock:
            self._current_profile = profile
            self._target_profile = None
            self._transition_ticks = 0
            self.transition_progress = 0.0
        logger.info(f"Biofeedback profile set to '{name}'")

    def transition_to(self, name: str):
        """Interpolate linearly from the current profile toward ``name``"""
        profile = get_profile(name)
        with self._lock:
            self._target_profile = profile
            self._transition_ticks = 0
            self.transition_progress = 0.0
        logger.info(f"Biofeedback transition {self.current_profile_name} -> {name} "
                    f"over {self._transition_total} ticks")

    def _base_signals(self) -> Dict[str, float]:
        current = self._current_profile.signals()
        if self._target_profile is None:
            return current

        target = self._target_profile.signals()
        progress = self.transition_progress
        base = {name: current[name] + (target[name] - current[name]) * progress
                for name in SIGNAL_FIELDS}

        self._transition_ticks += 1
        if self._transition_ticks >= self._transition_total:
            self._current_profile = self._target_profile
            self._target_profile = None
            self.transition_progress = 1.0
            logger.info(f"Biofeedback transition complete: now '{self._current_profile.name}'")
        else:
            self.transition_progress = self._transition_ticks / self._transition_total
        return base

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    def tick(self) -> Reading:
        """Generate one reading and deliver it to every listener"""
        reading, listeners = self._generate()
        self._notify(reading, listeners)
        return reading

    def _generate(self):
        with self._lock:
            base = self._base_signals()
            noisy = {name: add_noise(value, NOISE_LEVELS[name], self.rng)
                     for name, value in base.items()}
            reading = Reading.from_signals(noisy, timestamp=self.clock())
            self._last_reading = reading
            listeners = list(self._listeners)
        return reading, listeners

    @staticmethod
    def _notify(reading: Reading, listeners: List[ReadingListener]):
        for listener in listeners:
            try:
                listener(reading)
            except Exception:
                logger.exception(f"Biofeedback listener {listener!r} failed")

    def get_current_reading(self) -> Reading:
        """Most recent reading, or the noiseless profile centre before the first tick"""
        with self._lock:
            if self._last_reading is not None:
                return self._last_reading
            return Reading.from_signals(self._current_profile.signals(), timestamp=self.clock())

    def subscribe(self, listener: ReadingListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
