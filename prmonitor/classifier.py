"""
Map a pull request's GitHub status to the action the monitor should take.
"""

from __future__ import annotations

from enum import Enum

from .github import PullStatus


class PrOutcome(str, Enum):
    MERGED = "merged"
    BEHIND = "behind"
    UP_TO_DATE = "up_to_date"
    CONFLICTS = "conflicts"
    BLOCKED = "blocked"
    UNKNOWN = "unknown"


MERGEABLE_STATE_OUTCOMES: dict[str, PrOutcome] = {
    "behind": PrOutcome.BEHIND,
    "clean": PrOutcome.UP_TO_DATE,
    "dirty": PrOutcome.CONFLICTS,
    "blocked": PrOutcome.BLOCKED,
    "unknown": PrOutcome.UNKNOWN,
    "unstable": PrOutcome.UNKNOWN,
}


def classify(status: PullStatus) -> PrOutcome:
    """
    Classify a PR status. Merged wins over any mergeability value; a missing
    or unrecognised mergeable_state (``has_hooks``, ``draft``, future values)
    is UNKNOWN.
    """
    if status.merged or status.merged_at:
        return PrOutcome.MERGED

    if not status.mergeable_state:
        return PrOutcome.UNKNOWN

    return MERGEABLE_STATE_OUTCOMES.get(status.mergeable_state.lower(), PrOutcome.UNKNOWN)
