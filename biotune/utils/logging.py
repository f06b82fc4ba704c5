"""
Logging System for BioTune
Human-readable logs go through the standard ``biotune`` logger; every
emotion prediction, parameter update, learning step, finished session and
timed operation is also appended as one JSON line to a per-stream file so a
session can be summarised afterwards.
"""

import json
import logging
import os
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

DEFAULT_LOG_DIR = "logs"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SLOW_OPERATION_MS = 1000.0

# stream name -> JSONL file name
STRUCTURED_STREAMS = {
    'emotions': 'emotions.jsonl',
    'music': 'music.jsonl',
    'learning': 'learning.jsonl',
    'sessions': 'sessions.jsonl',
    'performance': 'performance.jsonl',
}


@dataclass
class LogEntry:
    timestamp: float
    session_id: str


@dataclass
class EmotionLogEntry(LogEntry):
    emotion: str
    confidence: float
    modality: str  # physiological | facial | multimodal
    arousal: float
    valence: float
    distribution: Optional[Dict[str, float]] = None


@dataclass
class MusicLogEntry(LogEntry):
    parameters: Dict[str, Any]
    algorithm: Optional[str] = None
    goal: Optional[str] = None


@dataclass
class LearningLogEntry(LogEntry):
    state: str
    action: str
    next_state: str
    reward: float
    q_value: float
    exploration_rate: float


@dataclass
class SessionLogEntry(LogEntry):
    user_id: str
    goal: str
    algorithm: str
    effectiveness: float
    duration: float
    adherence: Optional[float] = None


@dataclass
class PerformanceLogEntry(LogEntry):
    component: str
    operation: str
    duration_ms: float


def _stats(values: Iterable[float], *names: str) -> Dict[str, float]:
    """Selected numpy statistics of a sequence (mean, std, min, max, sum)"""
    array = np.asarray(list(values), dtype=float)
    functions = {'mean': np.mean, 'std': np.std, 'min': np.min, 'max': np.max, 'total': np.sum}
    return {name: float(functions[name](array)) for name in names}


class BioTuneLogger:
    """Process-wide logger: standard logging plus JSONL analytics streams.

    The session id attached to structured entries is thread-local, so the
    simulator thread and the caller's thread can each carry their own.
    """

    def __init__(self,
                 log_dir: Union[str, Path] = DEFAULT_LOG_DIR,
                 log_level: int = logging.INFO,
                 max_file_size_mb: int = 100,
                 backup_count: int = 5,
                 enable_performance_logging: bool = True,
                 enable_structured_logging: bool = True):
        self.enable_performance_logging = enable_performance_logging
        self.enable_structured_logging = enable_structured_logging
        self.set_log_dir(log_dir)
        self._local = threading.local()
        self._write_lock = threading.Lock()

        self.logger = logging.getLogger('biotune')
        self.configure_handlers(log_level, max_file_size_mb, backup_count)
        self.set_session_id("main_thread")
        self.logger.info(f"BioTune logging initialized in {self.log_dir}")

    def set_log_dir(self, log_dir: Union[str, Path]):
        """Point the log file and every JSONL stream at ``log_dir``.

        Call ``configure_handlers`` afterwards to move an already open log file.
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.streams: Dict[str, Path] = {name: self.log_dir / filename
                                         for name, filename in STRUCTURED_STREAMS.items()}

    def configure_handlers(self, log_level: int = logging.INFO,
                           max_file_size_mb: int = 100, backup_count: int = 5):
        """(Re)attach the rotating file and console handlers to the ``biotune`` logger"""
        self.logger.setLevel(logging.DEBUG)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(LOG_FORMAT)
        try:
            file_handler = RotatingFileHandler(self.log_dir / 'biotune.log',
                                               maxBytes=max_file_size_mb * 1024 * 1024,
                                               backupCount=backup_count)
        except OSError as e:
            print(f"BioTune log file unavailable: {e}", file=sys.stderr)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(log_level)
        console.setFormatter(formatter)
        self.logger.addHandler(console)
        self.logger.propagate = False

    # ------------------------------------------------------------------
    # Session context
    # ------------------------------------------------------------------

    def set_session_id(self, session_id: str):
        self._local.session_id = session_id
        self.logger.debug(f"Session context set: {session_id}")

    def get_session_id(self) -> str:
        return getattr(self._local, 'session_id', 'unknown')

    # ------------------------------------------------------------------
    # Structured records
    # ------------------------------------------------------------------

    def _record(self, stream: str, entry_cls, **values):
        entry = entry_cls(timestamp=time.time(), session_id=self.get_session_id(), **values)
        self._append(self.streams[stream], entry)
        return entry

    def _append(self, path: Path, entry: LogEntry):
        if not self.enable_structured_logging:
            return
        line = json.dumps(asdict(entry), default=str)
        try:
            with self._write_lock:
                with open(path, 'a') as f:
                    f.write(line + '\n')
        except OSError as e:
            self.logger.error(f"Could not append to {path.name}: {e}")

    def log_emotion(self, emotion: str, confidence: float, modality: str,
                    arousal: float, valence: float,
                    distribution: Optional[Dict[str, float]] = None):
        self._record('emotions', EmotionLogEntry, emotion=emotion, confidence=confidence,
                     modality=modality, arousal=arousal, valence=valence,
                     distribution=distribution)
        self.logger.debug(f"[{modality}] {emotion} conf={confidence:.3f} "
                          f"arousal={arousal:.1f} valence={valence:.1f}")

    def log_music_update(self, parameters: Dict[str, Any],
                         algorithm: Optional[str] = None, goal: Optional[str] = None):
        self._record('music', MusicLogEntry, parameters=parameters, algorithm=algorithm, goal=goal)
        self.logger.debug(f"Music parameters ({algorithm}/{goal}): "
                          f"tempo={parameters.get('tempo')}")

    def log_learning(self, state: str, action: str, next_state: str, reward: float,
                     q_value: float, exploration_rate: float):
        self._record('learning', LearningLogEntry, state=state, action=action,
                     next_state=next_state, reward=reward, q_value=q_value,
                     exploration_rate=exploration_rate)
        self.logger.debug(f"Q-update {state} [{action}] -> {next_state}: "
                          f"reward={reward:.2f} Q={q_value:.3f}")

    def log_session(self, user_id: str, goal: str, algorithm: str, effectiveness: float,
                    duration: float, adherence: Optional[float] = None):
        """One line per finished therapeutic session"""
        self._record('sessions', SessionLogEntry, user_id=user_id, goal=goal,
                     algorithm=algorithm, effectiveness=effectiveness, duration=duration,
                     adherence=adherence)
        self.logger.info(f"Session complete for {user_id}: {goal} via {algorithm}, "
                         f"effectiveness {effectiveness:.1f}")

    def log_performance(self, component: str, operation: str, duration_ms: float):
        if not self.enable_performance_logging:
            return
        self._record('performance', PerformanceLogEntry, component=component,
                     operation=operation, duration_ms=duration_ms)
        if duration_ms > SLOW_OPERATION_MS:
            self.logger.warning(f"{component}.{operation} was slow: {duration_ms:.1f}ms")

    @contextmanager
    def performance_timer(self, component: str, operation: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            self.log_performance(component, operation, (time.perf_counter() - started) * 1000.0)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def read_stream(self, stream: str, session_id: str) -> List[Dict[str, Any]]:
        """All entries of one stream that belong to ``session_id``"""
        path = self.streams[stream]
        if not path.exists():
            return []

        entries = []
        with open(path) as f:
            for line in f:
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if entry.get('session_id') == session_id:
                    entries.append(entry)
        return entries

    def get_session_summary(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        session_id = session_id or self.get_session_id()
        return {
            'session_id': session_id,
            'emotions': self._summarize_emotions(self.read_stream('emotions', session_id)),
            'music': self._summarize_music(self.read_stream('music', session_id)),
            'learning': self._summarize_learning(self.read_stream('learning', session_id)),
            'performance': self._summarize_performance(self.read_stream('performance', session_id)),
        }

    @staticmethod
    def _summarize_emotions(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not entries:
            return {'count': 0}
        labels: Dict[str, int] = {}
        for entry in entries:
            labels[entry['emotion']] = labels.get(entry['emotion'], 0) + 1
        return {
            'count': len(entries),
            'duration_minutes': (entries[-1]['timestamp'] - entries[0]['timestamp']) / 60.0,
            'arousal': _stats((e['arousal'] for e in entries), 'mean', 'std', 'min', 'max'),
            'valence': _stats((e['valence'] for e in entries), 'mean', 'std', 'min', 'max'),
            'confidence': _stats((e['confidence'] for e in entries), 'mean', 'min'),
            'emotions': labels,
        }

    @staticmethod
    def _summarize_music(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not entries:
            return {'count': 0}
        algorithms: Dict[str, int] = {}
        for entry in entries:
            if entry.get('algorithm') is not None:
                algorithms[entry['algorithm']] = algorithms.get(entry['algorithm'], 0) + 1

        summary = {'count': len(entries), 'algorithms': algorithms}
        tempos = [e['parameters']['tempo'] for e in entries
                  if e.get('parameters', {}).get('tempo') is not None]
        if tempos:
            summary['tempo'] = {'mean': float(np.mean(tempos)),
                                'start': float(tempos[0]),
                                'end': float(tempos[-1])}
        return summary

    @staticmethod
    def _summarize_learning(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not entries:
            return {'count': 0}
        rewards = [e['reward'] for e in entries]
        return {
            'count': len(entries),
            'reward': _stats(rewards, 'mean', 'std', 'total'),
            'positive_fraction': float(np.mean([r > 0 for r in rewards])),
        }

    @staticmethod
    def _summarize_performance(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not entries:
            return {'count': 0}
        by_operation: Dict[str, List[float]] = {}
        for entry in entries:
            by_operation.setdefault(f"{entry['component']}.{entry['operation']}",
                                    []).append(entry['duration_ms'])
        operations = {}
        for name, durations in by_operation.items():
            operations[name] = {'count': len(durations),
                                **{f"{k}_ms": v for k, v in
                                   _stats(durations, 'mean', 'max', 'total').items()}}
        return {
            'count': len(entries),
            'operations': operations,
            'total_processing_time_ms': _stats((e['duration_ms'] for e in entries), 'total')['total'],
        }

    # ------------------------------------------------------------------
    # Plain logging
    # ------------------------------------------------------------------

    def debug(self, message, *args, **kwargs):
        return self.logger.debug(message, *args, **kwargs)

    def info(self, message, *args, **kwargs):
        return self.logger.info(message, *args, **kwargs)

    def warning(self, message, *args, **kwargs):
        return self.logger.warning(message, *args, **kwargs)

    def error(self, message, *args, **kwargs):
        return self.logger.error(message, *args, **kwargs)

    def exception(self, message, *args, **kwargs):
        return self.logger.exception(message, *args, **kwargs)

    def critical(self, message, *args, **kwargs):
        return self.logger.critical(message, *args, **kwargs)


_instance: Optional[BioTuneLogger] = None


def _default_log_dir() -> str:
    return os.environ.get("BIOTUNE_LOG_DIR", DEFAULT_LOG_DIR)


def get_logger() -> BioTuneLogger:
    """The shared BioTuneLogger. Modules call this instead of using logging directly."""
    global _instance
    if _instance is None:
        _instance = BioTuneLogger(log_dir=_default_log_dir())
    return _instance


def init_logger(log_dir: Optional[str] = None, log_level: int = logging.INFO,
                enable_structured_logging: bool = True) -> BioTuneLogger:
    """Reconfigure the shared logger in place, e.g. to move logs for a CLI run.

    Modules keep the instance they bound at import time, so it is updated
    rather than replaced.
    """
    global _instance
    if _instance is None:
        _instance = BioTuneLogger(log_dir=log_dir or _default_log_dir(), log_level=log_level,
                                  enable_structured_logging=enable_structured_logging)
        return _instance

    _instance.set_log_dir(log_dir or _default_log_dir())
    _instance.enable_structured_logging = enable_structured_logging
    _instance.configure_handlers(log_level)
    _instance.info(f"BioTune logging moved to {_instance.log_dir}")
    return _instance


def setup_logging(log_dir: Optional[str] = None, log_level: int = logging.INFO) -> BioTuneLogger:
    global _instance
    if _instance is None:
        _instance = BioTuneLogger(log_dir=log_dir or _default_log_dir(), log_level=log_level)
    return _instance