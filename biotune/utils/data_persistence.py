"""
Snapshot persistence interface for BioTune
The core only defines the snapshot shape; where snapshots are stored is up to
the SnapshotRepository implementation supplied by the caller.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass
class SystemSnapshot:
    """Plain, JSON-serializable copy of all long-lived learned state"""
    created_at: float = field(default_factory=time.time)
    profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    q_table: Dict[str, Dict[str, float]] = field(default_factory=dict)
    track_preferences: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemSnapshot":
        return cls(
            created_at=float(data.get('created_at', time.time())),
            profiles=dict(data.get('profiles', {})),
            q_table=dict(data.get('q_table', {})),
            track_preferences=dict(data.get('track_preferences', {})),
            metadata=dict(data.get('metadata', {})),
        )


class SnapshotRepository(ABC):
    """Storage collaborator for system snapshots"""

    @abstractmethod
    def save(self, snapshot: SystemSnapshot):
        ...

    @abstractmethod
    def load_latest(self) -> Optional[SystemSnapshot]:
        ...


class InMemorySnapshotRepository(SnapshotRepository):
    """Keeps serialized snapshots in memory; used by tests and the demo CLI"""

    def __init__(self, max_snapshots: int = 10):
        self.max_snapshots = max_snapshots
        self._snapshots: List[str] = []
        self._lock = threading.Lock()

    def save(self, snapshot: SystemSnapshot):
        payload = json.dumps(snapshot.to_dict())
        with self._lock:
            self._snapshots.append(payload)
            if len(self._snapshots) > self.max_snapshots:
                self._snapshots.pop(0)

    def load_latest(self) -> Optional[SystemSnapshot]:
        with self._lock:
            if not self._snapshots:
                return None
            payload = self._snapshots[-1]
        return SystemSnapshot.from_dict(json.loads(payload))

    def __len__(self) -> int:
        return len(self._snapshots)
