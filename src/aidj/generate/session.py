"""
DJ Session Engine: drive one live set from start to finish.

State machine over no_session → active_session → (end) → no_session.
The engine owns the track pool and the active Session record; scoring is
delegated to the Compatibility Model and selection to the selector.

Randomness and time are injected so a set can be replayed exactly.
One engine serves one party; it is not safe to share across threads.
"""

import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import Settings
from ..models import Phase, Session, Track
from .compatibility import CompatibilityModel
from .energy import INITIAL_ENERGY_TARGET, compute_party_phase
from .selector import choose_next, select_opening_track

logger = logging.getLogger(__name__)

NO_SESSION = "no_session"
ACTIVE_SESSION = "active_session"


class SessionError(Exception):
    """Raised when the engine is used out of order or without tracks."""
    pass


def _local_now() -> datetime:
    return datetime.now().astimezone()


class DJEngine:
    """
    Automatic DJ: chooses what plays next.

    The host calls ``start_session`` once tracks are available, then
    ``get_next_track`` on every track end (or ``skip_current`` on a manual
    skip), and queues whatever comes back.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        weights: Optional[Dict[str, float]] = None,
    ):
        """
        Args:
            settings: Session settings (defaults to Settings())
            rng: Random source with a ``random()`` method (seed it for replays)
            clock: Zero-arg callable returning the current datetime
            weights: Compatibility weights (defaults to MIXING_WEIGHTS)

        Raises:
            ConfigError: If weights are invalid
        """
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.clock = clock or _local_now
        self._weights = weights
        self.model = CompatibilityModel.from_settings(self.settings, weights)
        self.pool: List[Track] = []
        self.session: Optional[Session] = None
        logger.info("DJEngine initialized")

    @property
    def state(self) -> str:
        return ACTIVE_SESSION if self.session is not None else NO_SESSION

    @property
    def current_track(self) -> Optional[Track]:
        if self.session is None:
            return None
        return self.session.current_track

    def start_session(self, tracks: Iterable[Track], session_id: Optional[str] = None) -> Session:
        """
        Start a new set and pick its opening track.

        Args:
            tracks: Initial track pool (must be non-empty)
            session_id: Identifier for the session (generated if None)

        Returns:
            The active Session, with the opening track as its only history entry

        Raises:
            SessionError: If the pool is empty or a session is already active
        """
        if self.session is not None:
            raise SessionError(f"Session {self.session.id} is already active; end it first")

        pool = list(tracks)
        if not pool:
            raise SessionError("Cannot start a session with an empty track pool")

        now = self.clock()
        if session_id is None:
            session_id = f"session-{now.strftime('%Y%m%d-%H%M%S')}"

        self.pool = pool
        session = Session(
            id=session_id,
            start_time=now,
            settings=self.settings,
            party_phase=Phase.WARMUP,
            energy_target=INITIAL_ENERGY_TARGET,
        )

        opening = select_opening_track(self.pool)
        self._record_play(session, opening, now)
        self.session = session

        logger.info(
            f"✅ Session {session_id} started with {len(pool)} tracks; "
            f"opening with {opening.id} "
            f"({opening.features.tempo:.1f} BPM, energy {opening.features.energy:.2f})"
        )
        return session

    def _record_play(self, session: Session, track: Track, now: datetime) -> None:
        session.history.append(track)
        session.phases.append(session.party_phase)
        session.played_ids.add(track.id)
        session.current_index = len(session.history) - 1
        track.play_count += 1
        track.last_played = now

    def _update_party_phase(self, now: datetime) -> None:
        session = self.session
        elapsed_minutes = (now - session.start_time).total_seconds() / 60.0
        progress = elapsed_minutes / self.settings.session_duration
        phase, target = compute_party_phase(progress, now.hour, self.settings.peak_hour)

        if phase != session.party_phase:
            logger.info(
                f"Party phase {session.party_phase.value} → {phase.value} "
                f"(progress {progress:.0%}, energy target {target:.2f})"
            )
        session.party_phase = phase
        session.energy_target = target

    def get_next_track(self) -> Optional[Track]:
        """
        Choose, record and return the next track.

        Returns:
            The chosen Track, or None without an active session or when no
            eligible track remains
        """
        if self.session is None or self.session.current_track is None:
            logger.warning("get_next_track called without an active session")
            return None

        now = self.clock()
        self._update_party_phase(now)

        chosen = choose_next(self.pool, self.session, self.settings, self.model, self.rng, now)
        if chosen is None:
            logger.warning(
                f"No eligible tracks left in session {self.session.id} "
                f"({len(self.session.played_ids)} played, {len(self.pool)} in pool)"
            )
            return None

        track = chosen.track
        self._record_play(self.session, track, now)

        logger.info(
            f"Next track {track.id} "
            f"(score {chosen.enhanced_score:.2f}, {track.features.tempo:.1f} BPM, "
            f"{chosen.ranked.score.details['harmonic']['relationship']})"
        )
        return track

    def skip_current(self) -> Optional[Track]:
        """Count a manual skip against the current track and move on."""
        current = self.current_track
        if current is not None:
            current.skip_count += 1
            logger.debug(f"Track {current.id} skipped ({current.skip_count} skips)")
        return self.get_next_track()

    def end_session(self) -> Optional[Session]:
        """
        Close the active session.

        Returns:
            The closed Session record, or None if no session was active.
            Its history holds snapshots of the played tracks, so reusing
            the pool in a later session leaves the record unchanged.
        """
        session = self.session
        if session is None:
            return None

        session.end_time = self.clock()
        # Detach the record from pool tracks that later sessions keep updating
        session.history = [replace(t, artists=list(t.artists)) for t in session.history]
        self.session = None
        logger.info(f"✅ Session {session.id} ended after {len(session.history)} tracks")
        return session

    def session_stats(self) -> Optional[Dict[str, Any]]:
        """
        Summarize the active session.

        Returns:
            Dict with tracks_played, session_minutes, average_energy,
            key_transitions and phase_breakdown; None without a session
        """
        session = self.session
        if session is None:
            return None

        history = session.history
        elapsed = (self.clock() - session.start_time).total_seconds() / 60.0
        average_energy = (
            sum(t.features.energy for t in history) / len(history) if history else 0.0
        )

        key_transitions = 0
        for prev, curr in zip(history, history[1:]):
            if prev.features.key != curr.features.key or prev.features.mode != curr.features.mode:
                key_transitions += 1

        phase_breakdown = {phase.value: 0 for phase in Phase}
        for phase in session.phases:
            phase_breakdown[phase.value] += 1

        return {
            "tracks_played": len(history),
            "session_minutes": round(elapsed),
            "average_energy": round(average_energy, 2),
            "key_transitions": key_transitions,
            "phase_breakdown": phase_breakdown,
        }

    def update_settings(self, partial: Dict[str, Any]) -> Settings:
        """
        Merge new settings; they apply from the next selection on.

        Args:
            partial: Setting names (snake_case or camelCase) to new values

        Returns:
            The merged Settings

        Raises:
            ConfigError: On unknown keys or out-of-bounds values
        """
        self.settings = self.settings.merge(partial)
        self.model = CompatibilityModel.from_settings(self.settings, self._weights)
        if self.session is not None:
            self.session.settings = self.settings
        logger.debug(f"Settings updated: {sorted(partial)}")
        return self.settings

    def add_tracks(self, tracks: Iterable[Track]) -> None:
        """Add tracks to the pool; they are eligible immediately."""
        added = list(tracks)
        self.pool.extend(added)
        logger.debug(f"Added {len(added)} tracks to pool ({len(self.pool)} total)")
