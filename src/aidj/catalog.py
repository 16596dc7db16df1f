"""
Catalog boundary: turn raw audio-feature payloads into engine tracks.

Payloads follow the Spotify audio-features shape (``tempo``, ``energy``,
``key``, ``mode`` ...). They are validated here so the engine only ever
sees well-formed FeatureVector and Track objects.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import FeatureVector, Track

logger = logging.getLogger(__name__)

UNIT_FEATURES = (
    "energy",
    "danceability",
    "valence",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
)
REQUIRED_FEATURES = ("tempo", "energy", "danceability", "valence")


class PayloadError(ValueError):
    """Raised when a catalog payload cannot be converted."""
    pass


def _number(payload: Dict[str, Any], name: str, default: Optional[float] = None) -> float:
    value = payload.get(name)
    if value is None:
        if default is None:
            raise PayloadError(f"Missing audio feature: {name}")
        return default
    if isinstance(value, bool):
        raise PayloadError(f"Audio feature {name} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise PayloadError(f"Audio feature {name} must be numeric, got {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise PayloadError(f"Audio feature {name} is not finite: {value!r}")
    return number


def features_from_payload(payload: Dict[str, Any]) -> FeatureVector:
    """
    Build a FeatureVector from an audio-features payload.

    Args:
        payload: Mapping with at least tempo, energy, danceability and valence

    Returns:
        Validated FeatureVector

    Raises:
        PayloadError: On missing, non-numeric or out-of-range values
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"Audio features must be a mapping, got {type(payload).__name__}")

    tempo = _number(payload, "tempo")
    if tempo <= 0:
        raise PayloadError(f"Tempo must be positive, got {tempo}")

    unit_values = {}
    for name in UNIT_FEATURES:
        value = _number(payload, name, None if name in REQUIRED_FEATURES else 0.0)
        if not (0.0 <= value <= 1.0):
            raise PayloadError(f"Audio feature {name}={value} out of range [0, 1]")
        unit_values[name] = value

    # Undetected keys are kept as -1; scoring treats them as neutral
    key = int(_number(payload, "key", -1))
    if not (0 <= key <= 11):
        key = -1
    mode = int(_number(payload, "mode", 1))
    if mode not in (0, 1):
        raise PayloadError(f"Mode must be 0 or 1, got {mode}")

    return FeatureVector(
        tempo=tempo,
        loudness=_number(payload, "loudness", -10.0),
        key=key,
        mode=mode,
        time_signature=int(_number(payload, "time_signature", 4)),
        duration_ms=int(_number(payload, "duration_ms", 0)),
        **unit_values,
    )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            raise PayloadError(f"Invalid last_played timestamp: {value!r}")
    # Naive timestamps are taken as local time
    return parsed.astimezone()


def track_from_payload(
    payload: Dict[str, Any],
    features: Optional[Dict[str, Any]] = None,
) -> Track:
    """
    Build a Track from a catalog entry.

    Args:
        payload: Track mapping with ``id`` and optional ``name``, ``artists``,
            ``audio_features`` and history hints (``user_rating``,
            ``play_count``, ``skip_count``, ``last_played``)
        features: Audio features, when supplied separately from the track

    Returns:
        Track ready for the engine pool

    Raises:
        PayloadError: If the entry is malformed
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"Track payload must be a mapping, got {type(payload).__name__}")

    track_id = payload.get("id")
    if not track_id:
        raise PayloadError("Track payload has no id")

    features = features if features is not None else payload.get("audio_features")
    if not features:
        raise PayloadError(f"Track {track_id} has no audio features")

    rating = payload.get("user_rating")
    if rating is not None:
        rating = int(_number(payload, "user_rating"))
        if not (1 <= rating <= 5):
            raise PayloadError(f"Track {track_id} user_rating must be 1-5, got {rating}")

    artists = [
        a.get("name", "") if isinstance(a, dict) else str(a)
        for a in payload.get("artists", [])
    ]

    return Track(
        id=str(track_id),
        features=features_from_payload(features),
        play_count=int(_number(payload, "play_count", 0)),
        skip_count=int(_number(payload, "skip_count", 0)),
        user_rating=rating,
        last_played=_parse_timestamp(payload.get("last_played")),
        name=payload.get("name"),
        artists=artists,
    )


def tracks_from_payloads(items: Iterable[Dict[str, Any]]) -> List[Track]:
    """
    Convert catalog entries, skipping malformed ones.

    Args:
        items: Track payloads (see track_from_payload)

    Returns:
        Converted tracks in input order
    """
    tracks = []
    skipped = 0
    for item in items:
        try:
            tracks.append(track_from_payload(item))
        except PayloadError as e:
            skipped += 1
            logger.warning(f"Skipping track payload: {e}")

    if skipped:
        logger.info(f"Converted {len(tracks)} tracks ({skipped} skipped)")
    return tracks
