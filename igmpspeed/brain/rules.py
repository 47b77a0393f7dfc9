# igmpspeed/brain/rules.py
from typing import Iterable

from igmpspeed.config import QUIESCENCE_THRESHOLD_US
from igmpspeed.schemas import NO_DATA


def is_quiescent(tracker, now: int, threshold_us: int = QUIESCENCE_THRESHOLD_US) -> bool:
    """
    A group counts as stopped once nothing destined to it has been seen for
    threshold_us. This is a proxy for "delivery stopped", not an edge event.
    """
    if tracker.started_at is None:
        return False
    return tracker.silent_for_us(now) >= threshold_us


def all_quiescent(trackers, now: int, threshold_us: int = QUIESCENCE_THRESHOLD_US) -> bool:
    return all(is_quiescent(t, now, threshold_us) for t in trackers)


def summarize(values: Iterable[int]) -> tuple[float, float, float]:
    """(fastest, average, slowest) over values, or the no-data sentinel for all three."""
    vals = list(values)
    if not vals:
        return NO_DATA, NO_DATA, NO_DATA
    return float(min(vals)), sum(vals) / len(vals), float(max(vals))


def capture_filter(groups: Iterable[str]) -> str:
    return " or ".join(f"dst host {g}" for g in groups)
