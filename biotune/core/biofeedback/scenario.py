import threading
import time
from typing import Callable, Optional

from biotune.config.profiles import ScenarioTimeline, get_scenario
from biotune.core.biofeedback.simulator import BiofeedbackSimulator, ReadingListener
from biotune.utils.logging import get_logger

logger = get_logger()


class ScenarioSimulator:
    """Plays a scripted ScenarioTimeline through a BiofeedbackSimulator.

    Elapsed time is polled every ``check_interval`` seconds. Crossing a
    checkpoint starts a transition toward that checkpoint's profile (once per
    checkpoint); once the scenario duration has elapsed the underlying
    simulator is stopped.
    """

    def __init__(self,
                 scenario_name: str,
                 check_interval: float = 5.0,
                 simulator: Optional[BiofeedbackSimulator] = None,
                 clock: Callable[[], float] = time.time):
        self.timeline: ScenarioTimeline = get_scenario(scenario_name)
        self.check_interval = check_interval
        self.clock = clock
        self.simulator = simulator if simulator is not None else BiofeedbackSimulator(
            initial_profile=self.timeline.initial_profile, clock=clock)

        self.start_time: Optional[float] = None
        self.finished = False
        self._next_checkpoint = 1

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def name(self) -> str:
        return self.timeline.name

    @property
    def is_playing(self) -> bool:
        return self.start_time is not None and not self.finished

    def begin(self):
        """Reset the timeline and place the simulator on its initial profile"""
        self.simulator.set_profile(self.timeline.initial_profile)
        self.start_time = self.clock()
        self.finished = False
        self._next_checkpoint = 1
        logger.info(f"Scenario '{self.name}' begun ({self.timeline.duration:.0f}s, "
                    f"{len(self.timeline.checkpoints)} checkpoints)")

    def play(self):
        """Start the simulator and the timeline polling thread"""
        self.begin()
        self.simulator.start()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True,
                                        name=f"Scenario-{self.name}")
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None
        self.simulator.stop()
        logger.info(f"Scenario '{self.name}' stopped")

    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return self.clock() - self.start_time

    def check_timeline_progress(self, elapsed: Optional[float] = None) -> bool:
        """Advance the timeline; returns False once the scenario has finished"""
        if self.start_time is None:
            self.begin()
        if self.finished:
            return False
        if elapsed is None:
            elapsed = self.elapsed()

        checkpoints = self.timeline.checkpoints
        while (self._next_checkpoint < len(checkpoints)
               and elapsed >= checkpoints[self._next_checkpoint][0]):
            at, profile = checkpoints[self._next_checkpoint]
            self._next_checkpoint += 1
            # Several crossed checkpoints collapse onto the latest one
            if (self._next_checkpoint < len(checkpoints)
                    and elapsed >= checkpoints[self._next_checkpoint][0]):
                continue
            logger.info(f"Scenario '{self.name}' checkpoint at {at:.0f}s -> '{profile}'")
            self.simulator.transition_to(profile)

        if elapsed >= self.timeline.duration:
            self.finished = True
            self._stop_event.set()
            self.simulator.stop()
            logger.info(f"Scenario '{self.name}' finished after {elapsed:.1f}s")
            return False
        return True

    def _poll_loop(self):
        while not self._stop_event.is_set():
            try:
                if not self.check_timeline_progress():
                    break
            except Exception:
                logger.exception(f"Scenario '{self.name}' timeline check failed")
            self._stop_event.wait(self.check_interval)

    def subscribe(self, listener: ReadingListener) -> Callable[[], None]:
        return self.simulator.subscribe(listener)
