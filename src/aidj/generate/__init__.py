"""
Set Generation Module: Score candidates and sequence a live DJ set.

- compatibility : Pure pairwise scoring of (current, candidate) tracks
- energy        : Party-phase and energy-target schedule
- selector      : Opening pick, eligibility, re-ranking, weighted choice
- session       : DJEngine session state machine
- playlist      : Transition plans and session record export
"""

__all__ = ["compatibility", "energy", "selector", "session", "playlist"]
