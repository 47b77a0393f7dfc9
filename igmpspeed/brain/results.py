# igmpspeed/brain/results.py
from typing import Optional

from igmpspeed.brain.rules import summarize
from igmpspeed.brain.state import GroupTimerRegistry, LeaveTrackerTable
from igmpspeed.schemas import ResultsSnapshot


class ResultsAggregator:
    """Pure reducer from final timer/tracker tables to a ResultsSnapshot."""

    def reduce(self, registry: GroupTimerRegistry,
               trackers: Optional[LeaveTrackerTable] = None,
               include_leave: bool = False) -> ResultsSnapshot:
        join_time = {t.address: t.elapsed_us for t in registry if t.completed}
        fastest_join, average_join, slowest_join = summarize(join_time.values())

        leave_time: dict[str, int] = {}
        if trackers is not None:
            leave_time = {t.address: t.last_seen_us for t in trackers}
        seen = [v for v in leave_time.values() if v != 0]
        fastest_leave, average_leave, slowest_leave = summarize(seen)

        all_joined = len(join_time) == len(registry)
        if include_leave:
            all_left = trackers is not None and len(seen) == len(trackers)
        else:
            all_left = True

        return ResultsSnapshot(
            join_time=join_time,
            leave_time=leave_time,
            has_results=bool(join_time),
            is_complete=all_joined and all_left,
            fastest_join=fastest_join,
            average_join=average_join,
            slowest_join=slowest_join,
            fastest_leave=fastest_leave,
            average_leave=average_leave,
            slowest_leave=slowest_leave,
        )
