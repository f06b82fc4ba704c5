from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet


@dataclass(frozen=True)
class MusicTrack:
    """A recommendable track; tempo in BPM, valence and energy on 0-100"""
    id: str
    title: str
    artist: str
    tempo: float
    valence: float
    energy: float
    genre: str
    duration: float
    therapeutic_tags: FrozenSet[str] = field(default_factory=frozenset)

    def serves(self, goal_name: str) -> bool:
        return goal_name in self.therapeutic_tags

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'tempo': self.tempo,
            'valence': self.valence,
            'energy': self.energy,
            'genre': self.genre,
            'duration': self.duration,
            'therapeutic_tags': sorted(self.therapeutic_tags),
        }
