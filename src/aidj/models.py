"""
Core data types for the AI DJ engine.

Feature vectors are supplied by the catalog collaborator and never change.
Tracks carry the counters the engine updates as a set is played.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Settings


class Phase(str, Enum):
    """Where in the set's energy arc the engine believes it is."""

    WARMUP = "warmup"
    PEAK = "peak"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class FeatureVector:
    """Immutable per-track audio descriptors."""

    tempo: float
    energy: float
    danceability: float
    valence: float
    acousticness: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    speechiness: float = 0.0
    loudness: float = -10.0
    key: int = -1  # pitch class 0-11, -1 when not detected
    mode: int = 1  # 0 = minor, 1 = major
    time_signature: int = 4
    duration_ms: int = 0


@dataclass
class Track:
    """A pool entry: identity, features and engine-tracked counters."""

    id: str
    features: FeatureVector
    play_count: int = 0
    skip_count: int = 0
    user_rating: Optional[int] = None  # 1-5 stars
    last_played: Optional[datetime] = None
    name: Optional[str] = None
    artists: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompatibilityScore:
    """Result of scoring one (current, candidate) pair."""

    overall: float
    tempo: float
    energy: float
    harmonic: float
    genre: float
    mood: float
    details: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedCandidate:
    track_id: str
    score: CompatibilityScore
    features: FeatureVector


@dataclass
class Session:
    """
    One DJ set.

    History is append-only; ``phases[i]`` is the party phase that was in
    effect when ``history[i]`` was chosen.
    """

    id: str
    start_time: datetime
    settings: "Settings"
    end_time: Optional[datetime] = None
    history: List[Track] = field(default_factory=list)
    phases: List[Phase] = field(default_factory=list)
    played_ids: Set[str] = field(default_factory=set)
    current_index: int = 0
    party_phase: Phase = Phase.WARMUP
    energy_target: float = 0.4

    @property
    def closed(self) -> bool:
        return self.end_time is not None

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self.current_index < len(self.history):
            return self.history[self.current_index]
        return None
