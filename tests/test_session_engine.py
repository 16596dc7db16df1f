"""
Integration tests for the DJEngine session state machine.

A fake clock and a fixed random source make every set reproducible.
"""

import random
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from aidj.config import ConfigError, Settings
from aidj.generate.selector import enhance_score
from aidj.generate.session import ACTIVE_SESSION, NO_SESSION, DJEngine, SessionError
from aidj.models import FeatureVector, Phase, Track


class FakeClock:
    """Controllable clock for the engine."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


class StubRng:
    def __init__(self, value: float = 0.0):
        self.value = value

    def random(self) -> float:
        return self.value


def _features(**overrides) -> FeatureVector:
    base = FeatureVector(
        tempo=124.0,
        energy=0.5,
        danceability=0.7,
        valence=0.6,
        acousticness=0.4,
        instrumentalness=0.2,
        speechiness=0.05,
        loudness=-8.0,
        key=0,
        mode=1,
    )
    return replace(base, **overrides)


def _track(track_id: str, **overrides) -> Track:
    return Track(id=track_id, features=_features(**overrides))


def _pool():
    return [
        _track("opener", energy=0.45, tempo=125.0, danceability=0.8),
        _track("b", energy=0.55, tempo=126.0, key=7),
        _track("c", energy=0.6, tempo=122.0, key=9, mode=0),
        _track("d", energy=0.7, tempo=128.0, key=2),
        _track("e", energy=0.8, tempo=140.0, key=5),
    ]


@pytest.fixture
def clock():
    # 20:00 with a 22:00 peak keeps the set in warmup unless a test moves the clock
    return FakeClock(datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine(clock):
    return DJEngine(settings=Settings(), rng=StubRng(0.0), clock=clock)


class TestStartSession:
    """Test session start and opening track."""

    def test_initial_state(self, engine):
        assert engine.state == NO_SESSION
        assert engine.current_track is None

    def test_start_session(self, engine, clock):
        session = engine.start_session(_pool(), session_id="party-1")

        assert engine.state == ACTIVE_SESSION
        assert session.id == "party-1"
        assert session.start_time == clock.now
        assert session.party_phase == Phase.WARMUP
        assert session.energy_target == pytest.approx(0.4)
        assert [t.id for t in session.history] == ["opener"]
        assert session.played_ids == {"opener"}
        assert engine.current_track.id == "opener"

    def test_opening_track_stamped(self, engine, clock):
        session = engine.start_session(_pool())
        opener = session.history[0]
        assert opener.play_count == 1
        assert opener.last_played == clock.now

    def test_generated_session_id(self, engine):
        session = engine.start_session(_pool())
        assert session.id == "session-20261018-200000"

    def test_empty_pool_fails(self, engine):
        with pytest.raises(SessionError):
            engine.start_session([])
        assert engine.state == NO_SESSION

    def test_double_start_fails(self, engine):
        engine.start_session(_pool())
        with pytest.raises(SessionError):
            engine.start_session(_pool())

    def test_single_track_pool(self, engine):
        only = _track("only", energy=0.95)
        session = engine.start_session([only])

        assert [t.id for t in session.history] == ["only"]
        assert engine.get_next_track() is None
        assert len(session.history) == 1


class TestGetNextTrack:
    """Test next-track selection and history updates."""

    def test_without_session(self, engine):
        assert engine.get_next_track() is None

    def test_records_choice(self, engine, clock):
        session = engine.start_session(_pool())
        clock.advance(4)

        track = engine.get_next_track()

        assert track is not None
        assert session.history[-1] is track
        assert track.id in session.played_ids
        assert session.current_index == 1
        assert engine.current_track is track
        assert track.play_count == 1
        assert track.last_played == clock.now
        assert session.phases == [Phase.WARMUP, Phase.WARMUP]

    def test_never_repeats_until_exhausted(self, engine, clock):
        session = engine.start_session(_pool())
        picked = []
        while True:
            clock.advance(4)
            track = engine.get_next_track()
            if track is None:
                break
            picked.append(track.id)

        assert sorted(picked) == ["b", "c", "d", "e"]
        assert len(session.history) == 5
        assert engine.get_next_track() is None

    def test_cooldown_track_never_selected(self, engine, clock):
        pool = _pool()
        pool[1].last_played = clock.now - timedelta(minutes=30)
        engine.start_session(pool)

        picked = []
        for _ in range(10):
            clock.advance(1)
            track = engine.get_next_track()
            if track is not None:
                picked.append(track.id)

        assert "b" not in picked
        assert sorted(picked) == ["c", "d", "e"]

    def test_cooldown_expires(self, engine, clock):
        pool = _pool()[:2]
        pool[1].last_played = clock.now - timedelta(minutes=30)
        engine.start_session(pool)

        assert engine.get_next_track() is None
        clock.advance(31)
        assert engine.get_next_track().id == "b"

    def test_naive_history_with_default_clock(self):
        """Host-supplied naive last_played values work with the local clock."""
        pool = _pool()
        pool[1].last_played = datetime.now() - timedelta(hours=5)
        pool[2].last_played = datetime.now() - timedelta(minutes=10)
        engine = DJEngine(settings=Settings(), rng=StubRng(0.0))
        engine.start_session(pool)

        picked = []
        track = engine.get_next_track()
        while track is not None:
            picked.append(track.id)
            track = engine.get_next_track()

        assert sorted(picked) == ["b", "d", "e"]

    def test_prefers_compatible_track(self, engine):
        pool = [
            _track("opener"),
            _track("clash", tempo=170.0, key=6),
            _track("match", tempo=124.0),
        ]
        engine.start_session(pool)
        assert engine.get_next_track().id == "match"

    def test_seeded_sets_are_reproducible(self, clock):
        def run(seed):
            engine = DJEngine(rng=random.Random(seed), clock=FakeClock(clock.now))
            engine.start_session(_pool())
            return [engine.get_next_track().id for _ in range(3)]

        assert run(42) == run(42)


class TestPartyPhaseUpdates:
    """Phase and energy target follow time, not selections."""

    @pytest.fixture
    def peak_engine(self):
        clock = FakeClock(datetime(2026, 10, 18, 21, 0, tzinfo=timezone.utc))
        settings = Settings(peak_hour=22, session_duration=100)
        return DJEngine(settings=settings, rng=StubRng(0.0), clock=clock), clock

    def test_enters_peak(self, peak_engine):
        engine, clock = peak_engine
        session = engine.start_session(_pool())
        clock.advance(30)

        engine.get_next_track()

        assert session.party_phase == Phase.PEAK
        assert 0.7 <= session.energy_target <= 0.9
        assert session.phases[-1] == Phase.PEAK

    def test_enters_cooldown(self, peak_engine):
        engine, clock = peak_engine
        session = engine.start_session(_pool())
        clock.advance(80)

        engine.get_next_track()

        assert session.party_phase == Phase.COOLDOWN
        assert session.energy_target == pytest.approx(0.64)

    def test_selection_does_not_change_target(self, peak_engine):
        engine, clock = peak_engine
        session = engine.start_session(_pool())
        clock.advance(40)

        engine.get_next_track()
        first = (session.party_phase, session.energy_target)
        engine.get_next_track()
        assert (session.party_phase, session.energy_target) == first


class TestSkipCurrent:
    def test_skip_counts_and_advances(self, engine):
        session = engine.start_session(_pool())
        opener = session.history[0]

        track = engine.skip_current()

        assert opener.skip_count == 1
        assert track is not None
        assert engine.current_track is track

    def test_skip_without_session(self, engine):
        assert engine.skip_current() is None


class TestSessionStats:
    def test_stats(self, engine, clock):
        pool = [
            _track("opener", energy=0.4),
            _track("same-key", energy=0.6, tempo=124.0),
            _track("new-key", energy=0.8, tempo=150.0, key=7),
        ]
        engine.start_session(pool)
        clock.advance(4)
        engine.get_next_track()
        clock.advance(4)
        engine.get_next_track()
        clock.advance(2)

        stats = engine.session_stats()

        assert stats["tracks_played"] == 3
        assert stats["session_minutes"] == 10
        assert stats["average_energy"] == pytest.approx(0.6)
        assert stats["key_transitions"] == 1
        assert stats["phase_breakdown"] == {"warmup": 3, "peak": 0, "cooldown": 0}

    def test_stats_without_session(self, engine):
        assert engine.session_stats() is None


class TestEndSession:
    def test_end_session(self, engine, clock):
        engine.start_session(_pool())
        engine.get_next_track()
        clock.advance(60)

        record = engine.end_session()

        assert record.end_time == clock.now
        assert record.closed
        assert len(record.history) == 2
        assert engine.state == NO_SESSION
        assert engine.session_stats() is None
        assert engine.get_next_track() is None

    def test_record_unaffected_by_later_sessions(self, engine, clock):
        pool = _pool()
        engine.start_session(pool)
        engine.get_next_track()
        record = engine.end_session()
        played_at = record.history[0].last_played

        clock.advance(120)
        engine.start_session(pool)

        assert record.history[0].play_count == 1
        assert record.history[0].last_played == played_at
        assert pool[0].play_count == 2

    def test_end_without_session(self, engine):
        assert engine.end_session() is None

    def test_restart_after_end(self, engine, clock):
        engine.start_session(_pool())
        engine.end_session()
        clock.advance(5)
        session = engine.start_session([_track("fresh")])
        assert [t.id for t in session.history] == ["fresh"]


class TestUpdateSettings:
    """Settings can change mid-session without touching history."""

    def test_merges_settings(self, engine):
        session = engine.start_session(_pool())
        updated = engine.update_settings({"crossfadeDuration": 12, "peak_hour": 23})

        assert updated.crossfade_duration == 12
        assert updated.peak_hour == 23
        assert engine.settings is updated
        assert session.settings is updated

    def test_history_untouched(self, engine):
        session = engine.start_session(_pool())
        engine.get_next_track()
        before = [t.id for t in session.history]

        engine.update_settings({"favoriteGenres": ["electronic"]})

        assert [t.id for t in session.history] == before
        assert engine.settings.favorite_genres == ("electronic",)

    def test_favorite_genre_bonus_applies(self, engine):
        engine.start_session(_pool())
        current = engine.current_track
        candidate = _track("edm", acousticness=0.1, energy=0.7, tempo=170.0)
        ranked = engine.model.find_best(current.features, [candidate], engine.session.party_phase)[0]
        target = engine.session.energy_target

        before = enhance_score(candidate, ranked, engine.settings, target)
        engine.update_settings({"favoriteGenres": ["electronic"]})
        after = enhance_score(candidate, ranked, engine.settings, target)

        assert after - before == pytest.approx(0.1)

    def test_changes_subsequent_ranking(self, engine):
        pool = [
            _track("opener"),
            _track("acoustic", acousticness=0.4, energy=0.65, tempo=140.0),
            _track("edm", acousticness=0.1, energy=0.65, tempo=140.0),
        ]
        engine.start_session(pool)
        engine.update_settings({"favoriteGenres": ["electronic"]})
        assert engine.get_next_track().id == "edm"

    def test_rebuilds_model(self, engine):
        engine.update_settings({"enable_harmonic_mixing": False, "tempo_tolerance": 0.08})
        assert engine.model.harmonic_mixing is False
        assert engine.model.tempo_tolerance == 0.08

    def test_invalid_update(self, engine):
        with pytest.raises(ConfigError):
            engine.update_settings({"bogus": 1})
        with pytest.raises(ConfigError):
            engine.update_settings({"peakHour": 30})
        assert engine.settings.peak_hour == 22


class TestAddTracks:
    def test_added_tracks_available_immediately(self, engine):
        engine.start_session([_track("only")])
        assert engine.get_next_track() is None

        engine.add_tracks([_track("late")])

        assert engine.get_next_track().id == "late"
