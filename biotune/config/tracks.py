# config/tracks.py

from typing import List

from biotune.core.recommendation.track import MusicTrack


def _track(id, title, artist, tempo, valence, energy, genre, duration, *tags) -> MusicTrack:
    return MusicTrack(id=id, title=title, artist=artist, tempo=tempo, valence=valence,
                      energy=energy, genre=genre, duration=duration,
                      therapeutic_tags=frozenset(tags))


MUSIC_LIBRARY: List[MusicTrack] = [
    _track("1", "Calm Waters", "Ambient Collective", 60, 75, 20, "Ambient", 240,
           "relaxation", "sleep"),
    _track("2", "Peaceful Mind", "Meditation Masters", 55, 80, 15, "Meditation", 300,
           "relaxation", "meditation"),
    _track("3", "Deep Work", "Focus Flow", 72, 60, 45, "Electronic", 180,
           "focus", "productivity"),
    _track("4", "Concentration", "Study Sounds", 70, 55, 40, "Instrumental", 210,
           "focus"),
    _track("5", "Morning Motivation", "Energy Boost", 120, 85, 80, "Pop", 200,
           "energize", "mood_elevation"),
    _track("6", "Power Up", "Upbeat Collective", 128, 90, 85, "Electronic", 195,
           "energize"),
    _track("7", "Sunshine", "Happy Vibes", 95, 88, 65, "Indie Pop", 185,
           "mood_elevation"),
    _track("8", "Joyful Journey", "Positive Energy", 100, 92, 70, "World", 220,
           "mood_elevation"),
    _track("9", "Release Tension", "Calm Down", 90, 50, 60, "Ambient", 240,
           "relaxation", "stress_relief"),
    _track("10", "Let Go", "Stress Relief", 85, 55, 55, "New Age", 270,
           "relaxation", "stress_relief"),
]
