"""
Compatibility Model: score a candidate as the next track after the current one.

Five independent sub-scores, each in [0.0, 1.0]:
- Tempo: within ±5% BPM is a perfect match, linear decay to 0 at 15%
- Energy: party-phase dependent (warmup builds, peak stays high, cooldown eases)
- Harmonic: Camelot wheel relationship
- Genre: weighted feature-vector similarity (proxy, no explicit genre data)
- Mood: valence distance

The overall score is a weighted sum of the sub-scores. Scoring is pure:
no state, no I/O.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..analyze.key import camelot_distance, camelot_key, key_label, parse_camelot
from ..config import ConfigError
from ..models import CompatibilityScore, FeatureVector, Phase, RankedCandidate, Track
from .energy import energy_progression

logger = logging.getLogger(__name__)

# Importance of each factor in track selection
MIXING_WEIGHTS: Dict[str, float] = {
    "tempo": 0.30,
    "energy": 0.25,
    "harmonic": 0.20,
    "genre": 0.15,
    "mood": 0.10,
}

GENRE_FEATURE_WEIGHTS: Dict[str, float] = {
    "acousticness": 0.2,
    "danceability": 0.25,
    "energy": 0.15,
    "instrumentalness": 0.15,
    "loudness": 0.1,
    "speechiness": 0.15,
}

DEFAULT_TEMPO_TOLERANCE = 0.05
MAX_TEMPO_DIFFERENCE = 0.15
LOUDNESS_RANGE_DB = 20.0
MOOD_TOLERANCE = 0.3
NEUTRAL_SCORE = 0.5

WEIGHT_SUM_TOLERANCE = 1e-6

Candidate = Union[Track, Tuple[str, FeatureVector]]


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def tempo_compatibility(
    current: FeatureVector,
    candidate: FeatureVector,
    tolerance: float = DEFAULT_TEMPO_TOLERANCE,
) -> float:
    """
    Tempo score using a percentage BPM tolerance.

    Args:
        current: Features of the playing track
        candidate: Features of the candidate
        tolerance: Fraction of the higher BPM treated as a perfect match

    Returns:
        1.0 within tolerance, decaying linearly to 0.0 at 15% difference
    """
    reference = max(current.tempo, candidate.tempo)
    bpm_diff = abs(current.tempo - candidate.tempo)
    allowed = reference * tolerance

    if bpm_diff <= allowed:
        return 1.0

    span = reference * MAX_TEMPO_DIFFERENCE - allowed
    if span <= 0:
        return 0.0
    return _clamp(1.0 - (bpm_diff - allowed) / span)


def energy_compatibility(
    current: FeatureVector,
    candidate: FeatureVector,
    phase: Optional[Phase] = Phase.PEAK,
) -> float:
    """
    Energy progression score for the given party phase.

    Warmup penalizes drops, cooldown penalizes rises, and peak time
    heavily penalizes any candidate below 0.6 energy. With ``phase=None``
    (energy management disabled) only the size of the jump matters.
    """
    next_energy = candidate.energy
    energy_diff = next_energy - current.energy

    if phase == Phase.WARMUP:
        score = 1.0 if energy_diff >= 0 else max(0.3, 1 + energy_diff * 2)
    elif phase == Phase.PEAK:
        if next_energy >= 0.6:
            score = max(0.7, 1 - abs(energy_diff) * 0.5)
        else:
            score = 0.2
    elif phase == Phase.COOLDOWN:
        score = 1.0 if energy_diff <= 0 else max(0.3, 1 - energy_diff * 2)
    else:
        score = max(0.5, 1 - abs(energy_diff) * 0.5)

    return _clamp(score)


def harmonic_compatibility(current: FeatureVector, candidate: FeatureVector) -> float:
    """
    Harmonic score from the Camelot wheel.

    Same key 1.0, relative major/minor 0.9, adjacent 0.8, two steps 0.6,
    within three steps 0.4, otherwise 0.1. Neutral 0.5 when either key
    is undetected.
    """
    current_camelot = camelot_key(current.key, current.mode)
    next_camelot = camelot_key(candidate.key, candidate.mode)

    if current_camelot is None or next_camelot is None:
        return NEUTRAL_SCORE

    if current_camelot == next_camelot:
        return 1.0

    current_num, current_letter = parse_camelot(current_camelot)
    next_num, next_letter = parse_camelot(next_camelot)
    same_mode = current_letter == next_letter
    distance = camelot_distance(current_num, next_num)

    if distance == 0:
        return 0.9
    if distance == 1 and same_mode:
        return 0.8
    if distance == 2 and same_mode:
        return 0.6
    if distance <= 3:
        return 0.4
    return 0.1


def genre_compatibility(current: FeatureVector, candidate: FeatureVector) -> float:
    """Style similarity as a weighted mean of per-feature similarities."""
    similarity = 0.0
    total_weight = 0.0

    for feature, weight in GENRE_FEATURE_WEIGHTS.items():
        a = getattr(current, feature)
        b = getattr(candidate, feature)
        if feature == "loudness":
            similarity += weight * max(0.0, 1 - abs(a - b) / LOUDNESS_RANGE_DB)
        else:
            similarity += weight * (1 - abs(a - b))
        total_weight += weight

    return _clamp(similarity / total_weight)


def mood_compatibility(current: FeatureVector, candidate: FeatureVector) -> float:
    valence_diff = abs(current.valence - candidate.valence)
    if valence_diff <= MOOD_TOLERANCE:
        return 1.0
    return _clamp(max(0.2, 1 - (valence_diff - MOOD_TOLERANCE) * 1.4))


class CompatibilityModel:
    """
    Weighted combination of the five sub-scores.

    Weights must cover exactly tempo/energy/harmonic/genre/mood and sum
    to 1.0; anything else is a configuration error.
    """

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        tempo_tolerance: float = DEFAULT_TEMPO_TOLERANCE,
        harmonic_mixing: bool = True,
        energy_management: bool = True,
    ):
        """
        Args:
            weights: Factor weights (defaults to MIXING_WEIGHTS)
            tempo_tolerance: Fraction of BPM scored as a perfect tempo match
            harmonic_mixing: When False, harmonic sub-score is neutral
            energy_management: When False, energy is scored phase-agnostic

        Raises:
            ConfigError: If weights are malformed
        """
        self.weights = dict(MIXING_WEIGHTS if weights is None else weights)
        self.tempo_tolerance = tempo_tolerance
        self.harmonic_mixing = harmonic_mixing
        self.energy_management = energy_management
        self._validate_weights()

    def _validate_weights(self) -> None:
        expected = set(MIXING_WEIGHTS)
        actual = set(self.weights)
        if actual != expected:
            missing = sorted(expected - actual)
            extra = sorted(actual - expected)
            raise ConfigError(f"Mixing weights mismatch (missing={missing}, unexpected={extra})")

        if any(w < 0 for w in self.weights.values()):
            raise ConfigError(f"Mixing weights must be non-negative: {self.weights}")

        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigError(f"Mixing weights must sum to 1.0, got {total:.6f}")

    @classmethod
    def from_settings(cls, settings, weights: Optional[Dict[str, float]] = None) -> "CompatibilityModel":
        return cls(
            weights=weights,
            tempo_tolerance=settings.tempo_tolerance,
            harmonic_mixing=settings.enable_harmonic_mixing,
            energy_management=settings.enable_energy_management,
        )

    def score(
        self,
        current: FeatureVector,
        candidate: FeatureVector,
        phase: Phase = Phase.PEAK,
    ) -> CompatibilityScore:
        """
        Score one (current, candidate) pair.

        Args:
            current: Features of the playing track
            candidate: Features of the candidate track
            phase: Current party phase

        Returns:
            CompatibilityScore with sub-scores, overall and diagnostics
        """
        tempo = tempo_compatibility(current, candidate, self.tempo_tolerance)
        energy = energy_compatibility(
            current, candidate, phase if self.energy_management else None
        )
        harmonic = (
            harmonic_compatibility(current, candidate) if self.harmonic_mixing else NEUTRAL_SCORE
        )
        genre = genre_compatibility(current, candidate)
        mood = mood_compatibility(current, candidate)

        w = self.weights
        overall = _clamp(
            tempo * w["tempo"]
            + energy * w["energy"]
            + harmonic * w["harmonic"]
            + genre * w["genre"]
            + mood * w["mood"]
        )

        current_camelot = camelot_key(current.key, current.mode) or "Unknown"
        next_camelot = camelot_key(candidate.key, candidate.mode) or "Unknown"

        details = {
            "tempo": {
                "current_bpm": current.tempo,
                "next_bpm": candidate.tempo,
                "difference": abs(current.tempo - candidate.tempo),
                "within_tolerance": tempo >= 0.8,
            },
            "energy": {
                "current_energy": current.energy,
                "next_energy": candidate.energy,
                "progression": energy_progression(current.energy, candidate.energy),
                "appropriate": energy >= 0.7,
            },
            "harmonic": {
                "current_key": key_label(current.key, current.mode),
                "next_key": key_label(candidate.key, candidate.mode),
                "relationship": f"{current_camelot} → {next_camelot}",
                "camelot_distance": harmonic,
            },
        }

        return CompatibilityScore(
            overall=overall,
            tempo=tempo,
            energy=energy,
            harmonic=harmonic,
            genre=genre,
            mood=mood,
            details=details,
        )

    def find_best(
        self,
        current: FeatureVector,
        candidates: Iterable[Candidate],
        phase: Phase = Phase.PEAK,
        limit: int = 5,
    ) -> List[RankedCandidate]:
        """
        Rank candidates by overall compatibility (best first).

        Args:
            current: Features of the playing track
            candidates: Tracks or (track_id, features) pairs
            phase: Current party phase
            limit: Maximum number of results

        Returns:
            At most ``limit`` RankedCandidates, sorted descending by overall;
            ties keep input order
        """
        if limit <= 0:
            return []

        ranked = []
        for candidate in candidates:
            if isinstance(candidate, Track):
                track_id, features = candidate.id, candidate.features
            else:
                track_id, features = candidate
            result = self.score(current, features, phase)
            ranked.append(RankedCandidate(track_id=track_id, score=result, features=features))
            logger.debug(
                f"Candidate {track_id}: overall={result.overall:.3f} "
                f"(tempo={result.tempo:.2f}, energy={result.energy:.2f}, "
                f"harmonic={result.harmonic:.2f}, genre={result.genre:.2f}, mood={result.mood:.2f})"
            )

        ranked.sort(key=lambda r: r.score.overall, reverse=True)
        return ranked[:limit]


_DEFAULT_MODEL = CompatibilityModel()


def score(
    current: FeatureVector,
    candidate: FeatureVector,
    phase: Phase = Phase.PEAK,
) -> CompatibilityScore:
    """Score a pair with the default weights."""
    return _DEFAULT_MODEL.score(current, candidate, phase)


def find_best(
    current: FeatureVector,
    candidates: Iterable[Candidate],
    phase: Phase = Phase.PEAK,
    limit: int = 5,
) -> List[RankedCandidate]:
    """Rank candidates with the default weights."""
    return _DEFAULT_MODEL.find_best(current, candidates, phase, limit)
