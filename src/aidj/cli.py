"""
Simulate a DJ set from a JSON track file.

Entrypoint: aidj-simulate TRACKS.json

The track file holds a list of catalog entries (or {"tracks": [...]}),
each with an ``id`` and ``audio_features``. The engine opens the set and
picks tracks until the requested count is reached or the pool runs dry.
"""

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import List, Optional

from .catalog import tracks_from_payloads
from .config import Config, ConfigError
from .generate.playlist import write_session_record
from .generate.session import DJEngine, SessionError

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate an AI DJ set")
    parser.add_argument("tracks_file", help="JSON file with track payloads")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to aidj.toml (defaults to AIDJ_CONFIG_PATH or configs/aidj.toml)",
    )
    parser.add_argument(
        "--tracks",
        type=int,
        default=20,
        help="Maximum number of tracks in the set, including the opener (default: 20)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for replayable sets")
    parser.add_argument("--output", default=None, help="Write the session record JSON here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def load_track_file(path: Path) -> list:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("tracks", [])
    return tracks_from_payloads(data)


def main(argv: Optional[List[str]] = None) -> int:
    """Main simulation entrypoint."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    )

    try:
        logger.info("🎵 Starting simulated set...")

        config = Config.load(args.config)
        logger.info(f"Config loaded: {config}")

        tracks = load_track_file(Path(args.tracks_file))
        logger.info(f"Loaded {len(tracks)} tracks from {args.tracks_file}")

        engine = DJEngine(
            settings=config.settings,
            rng=random.Random(args.seed),
            weights=config.weights,
        )
        engine.start_session(tracks)

        while len(engine.session.history) < args.tracks:
            if engine.get_next_track() is None:
                break

        stats = engine.session_stats()
        session = engine.end_session()

        for idx, track in enumerate(session.history, 1):
            f = track.features
            label = track.name or track.id
            logger.info(
                f"{idx:2d}. {label:<40} | {f.tempo:6.1f} BPM | energy {f.energy:.2f} "
                f"| {session.phases[idx - 1].value}"
            )
        logger.info(
            f"✅ Set complete: {stats['tracks_played']} tracks, "
            f"average energy {stats['average_energy']:.2f}, "
            f"{stats['key_transitions']} key changes"
        )

        if args.output and not write_session_record(session, Path(args.output)):
            return 1
        return 0

    except KeyboardInterrupt:
        logger.warning("Simulation interrupted by user")
        return 130
    except (ConfigError, SessionError, OSError, json.JSONDecodeError) as e:
        logger.error(f"Simulation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
