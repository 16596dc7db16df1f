"""
Transition plans and session records.

The engine never touches audio. For every chosen track it hands the playback
collaborator a TransitionPlan: the track, its echoed features, and a
suggested crossfade. A closed session can be written out as a JSON record.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence

from ..analyze.key import camelot_key
from ..config import Settings
from ..models import Session, Track
from .compatibility import harmonic_compatibility

logger = logging.getLogger(__name__)

# Harmonic score below which keys are treated as clashing
HARMONIC_CLASH_THRESHOLD = 0.5


class TransitionPlan:
    """Represents a single transition between two tracks."""

    def __init__(
        self,
        track_index: int,
        track: Track,
        next_track: Optional[Track] = None,
        mix_out_seconds: float = 8.0,
        effect: str = "crossfade",
    ):
        """
        Args:
            track_index: Position in the set (0-based)
            track: Track being played
            next_track: Following track, or None for the last one
            mix_out_seconds: Suggested crossfade duration
            effect: Transition hint ("crossfade", "filter_swap", "cut")
        """
        self.track_index = track_index
        self.track = track
        self.next_track = next_track
        self.mix_out_seconds = mix_out_seconds
        self.effect = effect

    @property
    def track_id(self) -> str:
        return self.track.id

    @property
    def next_track_id(self) -> Optional[str]:
        return self.next_track.id if self.next_track else None

    @property
    def target_bpm(self) -> float:
        return self.track.features.tempo

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "track_index": self.track_index,
            "track_id": self.track_id,
            "features": asdict(self.track.features),
            "target_bpm": self.target_bpm,
            "camelot_key": camelot_key(self.track.features.key, self.track.features.mode),
            "mix_out_seconds": self.mix_out_seconds,
            "effect": self.effect,
            "next_track_id": self.next_track_id,
        }


def select_transition_effect(track: Track, next_track: Optional[Track]) -> str:
    """
    Suggest a transition effect from the harmonic relationship.

    Args:
        track: Outgoing track
        next_track: Incoming track (or None if final)

    Returns:
        "crossfade" for compatible keys, "filter_swap" for clashing keys,
        "cut" at the end of the set
    """
    if next_track is None:
        return "cut"

    harmonic = harmonic_compatibility(track.features, next_track.features)
    if harmonic < HARMONIC_CLASH_THRESHOLD:
        # Filtering hides a key clash during the overlap
        return "filter_swap"
    return "crossfade"


def plan_transitions(history: Sequence[Track], settings: Settings) -> List[TransitionPlan]:
    """
    Plan transitions between consecutive tracks.

    Args:
        history: Ordered tracks of the set
        settings: Settings providing the crossfade hint

    Returns:
        List of TransitionPlan objects, one per track
    """
    transitions = []
    for idx, track in enumerate(history):
        next_track = history[idx + 1] if idx + 1 < len(history) else None
        transitions.append(
            TransitionPlan(
                track_index=idx,
                track=track,
                next_track=next_track,
                mix_out_seconds=float(settings.crossfade_duration),
                effect=select_transition_effect(track, next_track),
            )
        )
    logger.debug(f"Planned {len(transitions)} transitions")
    return transitions


def session_to_dict(session: Session) -> Dict[str, Any]:
    """Convert a session record to a JSON-serializable dict."""
    return {
        "session_id": session.id,
        "start_time": session.start_time.isoformat(),
        "end_time": session.end_time.isoformat() if session.end_time else None,
        "party_phase": session.party_phase.value,
        "energy_target": session.energy_target,
        "settings": session.settings.to_dict(),
        "tracks": [
            {
                "track_id": track.id,
                "name": track.name,
                "artists": list(track.artists),
                "phase": phase.value,
            }
            for track, phase in zip(session.history, session.phases)
        ],
        "transitions": [t.to_dict() for t in plan_transitions(session.history, session.settings)],
    }


def write_session_record(session: Session, output_path: Path) -> bool:
    """
    Write a session record as JSON.

    Args:
        session: Session to serialize (usually closed)
        output_path: Output JSON file path

    Returns:
        True if successful, False otherwise
    """
    output_path = Path(output_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(session_to_dict(session), f, indent=2, ensure_ascii=False)
        logger.info(f"Wrote session record: {output_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write session record: {e}")
        return False
