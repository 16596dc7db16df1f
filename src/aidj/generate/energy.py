"""
Energy Management: party-phase schedule and energy helpers.

The set follows a warmup → peak → cooldown arc:
- Warmup: early in the session, or well before the configured peak hour
- Peak: mid-session, around the peak hour, energy target oscillates 0.7-0.9
- Cooldown: late in the session or past the peak window, target eases to 0.3

The phase and target depend only on session progress and the hour of day;
track selection never changes them.
"""

import logging
import math
from typing import Tuple

from ..models import Phase

logger = logging.getLogger(__name__)

WARMUP_END = 0.25
PEAK_END = 0.75
PEAK_WINDOW = (-1, 2)  # hours relative to the peak hour

INITIAL_ENERGY_TARGET = 0.4
MIN_ENERGY_TARGET = 0.3


def hour_offset(hour: int, peak_hour: int) -> int:
    """
    Signed hours from the peak hour, wrapped into [-12, 12).

    Wrapping lets the peak window span midnight: 00:00 is one hour after
    a 23:00 peak rather than 23 hours before it.
    """
    return (hour - peak_hour + 12) % 24 - 12


def compute_party_phase(progress: float, hour: int, peak_hour: int) -> Tuple[Phase, float]:
    """
    Determine party phase and energy target.

    Args:
        progress: Elapsed fraction of the expected session length (may exceed 1.0)
        hour: Current hour of day (0-23)
        peak_hour: Hour of day (0-23) when peak energy should occur

    Returns:
        Tuple (phase, energy_target), target in [0.0, 1.0]
    """
    progress = max(0.0, progress)
    offset = hour_offset(hour, peak_hour)
    in_peak_window = PEAK_WINDOW[0] <= offset <= PEAK_WINDOW[1]
    before_peak = not in_peak_window and hour < peak_hour + PEAK_WINDOW[0]

    if progress < WARMUP_END or before_peak:
        # 0.4 → 0.7 as the session builds
        target = min(0.7, INITIAL_ENERGY_TARGET + progress * 0.3)
        return Phase.WARMUP, target

    if progress < PEAK_END and in_peak_window:
        target = 0.7 + math.sin(progress * math.pi) * 0.2
        return Phase.PEAK, target

    target = max(MIN_ENERGY_TARGET, 0.7 - (progress - PEAK_END) * 1.2)
    return Phase.COOLDOWN, min(0.7, target)


def energy_progression(current_energy: float, next_energy: float) -> str:
    """Label the direction of an energy change."""
    if next_energy > current_energy:
        return "building"
    if next_energy < current_energy:
        return "dropping"
    return "maintaining"


def compute_energy_distance(energy1: float, energy2: float) -> float:
    """
    Compute energy distance between two levels (0.0-1.0).

    Args:
        energy1: First energy level (0.0-1.0)
        energy2: Second energy level (0.0-1.0)

    Returns:
        Distance (0.0=same, 1.0=opposite)
    """
    return abs(energy1 - energy2)


def energy_alignment(energy: float, target: float) -> float:
    """Closeness of a track's energy to the target (1.0 = exact)."""
    return max(0.0, min(1.0, 1.0 - compute_energy_distance(energy, target)))
