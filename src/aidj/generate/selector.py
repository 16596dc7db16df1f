"""
Track Selector: pick the opening track and the next track of a live set.

Selection of the next track:
- Eligibility: not played this session, not inside the repeat cooldown
- Compatibility ranking (top 10) against the current track
- Re-ranking with listener signals (rating, plays, skips, genre, energy target, mood)
- Weighted random pick among the top 3 re-ranked candidates

All functions receive the session state and settings explicitly.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import Settings
from ..models import FeatureVector, RankedCandidate, Session, Track
from .compatibility import CompatibilityModel
from .energy import energy_alignment

logger = logging.getLogger(__name__)

COMPATIBILITY_SHORTLIST = 10

# Bias toward the highest scored; tunable, not derived from any musical rule
SELECTION_WEIGHTS = (0.5, 0.3, 0.2)

# Opening track targets
OPENING_ENERGY_RANGE = (0.3, 0.6)
OPENING_MIN_DANCEABILITY = 0.6
OPENING_MIN_VALENCE = 0.4
OPENING_MAX_SPEECHINESS = 0.5
OPENING_IDEAL_ENERGY = 0.45
OPENING_IDEAL_TEMPO = 125.0


@dataclass(frozen=True)
class EnhancedCandidate:
    """A shortlisted candidate with its engine-adjusted score."""

    track: Track
    ranked: RankedCandidate
    enhanced_score: float


def _matches_electronic(f: FeatureVector) -> bool:
    return f.acousticness < 0.3 and f.energy > 0.6


def _matches_pop(f: FeatureVector) -> bool:
    return f.danceability > 0.6 and f.valence > 0.5


def _matches_rock(f: FeatureVector) -> bool:
    return f.energy > 0.7 and f.loudness > -8


# Feature-threshold proxies; no explicit genre data reaches the engine
GENRE_HEURISTICS = {
    "electronic": _matches_electronic,
    "pop": _matches_pop,
    "rock": _matches_rock,
}


def matches_preferred_genre(features: FeatureVector, favorite_genres: Iterable[str]) -> bool:
    """True if any configured favourite genre's heuristic matches."""
    for genre in favorite_genres:
        heuristic = GENRE_HEURISTICS.get(genre)
        if heuristic is not None and heuristic(features):
            return True
    return False


def opening_score(features: FeatureVector) -> float:
    """
    Opening-track suitability (0.0-1.0).

    Moderate energy, high danceability, positive mood, a tempo around
    125 BPM and little speech make a good opener.
    """
    score = 0.0
    score += 0.3 * (1 - abs(features.energy - OPENING_IDEAL_ENERGY) * 2)
    score += 0.25 * features.danceability
    score += 0.2 * features.valence
    score += 0.15 * (1 - abs(features.tempo - OPENING_IDEAL_TEMPO) / 40)
    score += 0.1 * (1 - features.speechiness)
    return max(0.0, min(1.0, score))


def _is_opening_candidate(features: FeatureVector) -> bool:
    low, high = OPENING_ENERGY_RANGE
    return (
        low <= features.energy <= high
        and features.danceability >= OPENING_MIN_DANCEABILITY
        and features.valence >= OPENING_MIN_VALENCE
        and features.speechiness <= OPENING_MAX_SPEECHINESS
    )


def select_opening_track(pool: Sequence[Track]) -> Optional[Track]:
    """
    Choose the first track of a set.

    Args:
        pool: Candidate tracks

    Returns:
        Best opener; the first pool track when none fits the opener profile;
        None only for an empty pool
    """
    if not pool:
        return None

    candidates = [t for t in pool if _is_opening_candidate(t.features)]
    if not candidates:
        logger.debug("No track fits the opener profile; using first pool track")
        return pool[0]

    # max() keeps the first of equal scores
    return max(candidates, key=lambda t: opening_score(t.features))


def _as_aware(moment: datetime) -> datetime:
    # Naive timestamps are taken as local time
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def is_in_cooldown(track: Track, now: datetime, avoid_repeats_minutes: float) -> bool:
    if track.last_played is None:
        return False
    elapsed = _as_aware(now) - _as_aware(track.last_played)
    return elapsed < timedelta(minutes=avoid_repeats_minutes)


def eligible_tracks(
    pool: Iterable[Track],
    session: Session,
    settings: Settings,
    now: datetime,
) -> List[Track]:
    """
    Filter the pool to tracks selectable as next.

    Args:
        pool: All tracks known to the engine
        session: Active session (for played_ids)
        settings: Active settings (for the repeat cooldown)
        now: Current time

    Returns:
        Tracks not yet played this session and outside the cooldown window
    """
    available = []
    for track in pool:
        if track.id in session.played_ids:
            continue
        if is_in_cooldown(track, now, settings.avoid_repeats):
            logger.debug(f"Track {track.id} played recently; skipping")
            continue
        available.append(track)
    return available


def enhance_score(
    track: Track,
    ranked: RankedCandidate,
    settings: Settings,
    energy_target: float,
) -> float:
    """
    Layer listener and session signals on top of compatibility.

    Args:
        track: Pool track (for rating, play and skip counts)
        ranked: Compatibility result for the track
        settings: Active settings
        energy_target: Current session energy target

    Returns:
        Adjusted score clamped to [0.0, 1.0]
    """
    score = ranked.score.overall
    features = ranked.features

    if track.user_rating:
        score += (track.user_rating - 3) * 0.1  # ±0.2

    score -= min(0.1, track.play_count * 0.01)
    score -= min(0.2, track.skip_count * 0.05)

    if settings.favorite_genres and matches_preferred_genre(features, settings.favorite_genres):
        score += 0.1

    if settings.enable_energy_management:
        score += energy_alignment(features.energy, energy_target) * 0.1

    score += features.valence * settings.mood_preference * 0.05

    return max(0.0, min(1.0, score))


def rerank(
    shortlist: Sequence[RankedCandidate],
    tracks_by_id: Dict[str, Track],
    settings: Settings,
    energy_target: float,
) -> List[EnhancedCandidate]:
    """Re-rank a compatibility shortlist by enhanced score (stable, best first)."""
    enhanced = []
    for ranked in shortlist:
        track = tracks_by_id.get(ranked.track_id)
        if track is None:
            continue
        enhanced.append(
            EnhancedCandidate(
                track=track,
                ranked=ranked,
                enhanced_score=enhance_score(track, ranked, settings, energy_target),
            )
        )
    enhanced.sort(key=lambda c: c.enhanced_score, reverse=True)
    return enhanced


def weighted_pick(candidates: Sequence[EnhancedCandidate], rng) -> Optional[EnhancedCandidate]:
    """
    Pick among the top candidates with SELECTION_WEIGHTS.

    Args:
        candidates: Re-ranked candidates, best first
        rng: Object with a ``random()`` method returning a float in [0, 1)

    Returns:
        Chosen candidate; the top one if the draw matches none
    """
    if not candidates:
        return None

    top = candidates[: len(SELECTION_WEIGHTS)]
    draw = rng.random()
    cumulative = 0.0
    for candidate, weight in zip(top, SELECTION_WEIGHTS):
        cumulative += weight
        if draw <= cumulative:
            return candidate

    return candidates[0]


def choose_next(
    pool: Sequence[Track],
    session: Session,
    settings: Settings,
    model: CompatibilityModel,
    rng,
    now: datetime,
) -> Optional[EnhancedCandidate]:
    """
    Choose the next track for an active session without mutating it.

    Args:
        pool: All tracks known to the engine
        session: Active session (current track, played ids, phase, target)
        settings: Active settings
        model: Compatibility model
        rng: Random source for the weighted pick
        now: Current time

    Returns:
        The chosen candidate, or None when no track is eligible
    """
    current = session.current_track
    if current is None:
        return None

    available = eligible_tracks(pool, session, settings, now)
    if not available:
        logger.debug("No eligible candidates")
        return None

    shortlist = model.find_best(
        current.features, available, session.party_phase, COMPATIBILITY_SHORTLIST
    )
    tracks_by_id = {t.id: t for t in available}
    enhanced = rerank(shortlist, tracks_by_id, settings, session.energy_target)

    chosen = weighted_pick(enhanced, rng)
    if chosen is not None:
        logger.debug(
            f"Chose {chosen.track.id}: enhanced={chosen.enhanced_score:.3f}, "
            f"overall={chosen.ranked.score.overall:.3f}, "
            f"phase={session.party_phase.value}, target={session.energy_target:.2f}, "
            f"eligible={len(available)}"
        )
    return chosen
