# igmpspeed/brain/controller.py

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from igmpspeed.brain.join import JoinPhaseController
from igmpspeed.brain.leave import LeavePhaseController
from igmpspeed.brain.results import ResultsAggregator
from igmpspeed.brain.state import RunState
from igmpspeed.clock import Clock, MonotonicClock, seconds_to_ticks
from igmpspeed.config import Settings
from igmpspeed.schemas import ResultsSnapshot

log = logging.getLogger(__name__)


class Mode(Enum):
    JOIN_ONLY = "join"
    JOIN_AND_LEAVE = "join+leave"


def _default_source(s: Settings):
    from igmpspeed.source.socket_source import UdpMulticastSource
    return UdpMulticastSource(s.local_ip, port=s.port)


def _default_capture(s: Settings):
    # scapy is slow to import; only pay for it when LEAVE is measured
    from igmpspeed.source.pcap import ScapyCapture
    return ScapyCapture(s.local_ip)


class MeasurementEngine:
    def __init__(self, settings: Settings,
                 source_factory: Optional[Callable] = None,
                 capture_factory: Optional[Callable] = None,
                 clock: Optional[Clock] = None):
        self.s = settings
        self.source_factory = source_factory or _default_source
        self.capture_factory = capture_factory or _default_capture
        self.clock = clock or MonotonicClock()
        self._abort = threading.Event()
        self.last_run: Optional[RunState] = None

    def abort(self) -> None:
        """Stop the active phase at its next poll slice. Completed groups are kept."""
        self._abort.set()

    def run(self, before_close: Optional[Callable[[ResultsSnapshot], None]] = None) -> ResultsSnapshot:
        s = self.s.validate()
        groups = s.groups()
        self._abort.clear()

        start = self.clock.now()
        run = RunState(deadline=start + seconds_to_ticks(s.timeout_s))
        self.last_run = run
        log.info("receiving %d stream(s): %s%s", len(groups), groups[0],
                 f" - {groups[-1]}" if len(groups) > 1 else "")

        with self.source_factory(s) as source:
            # -------------------------------
            # 1) JOIN phase
            # -------------------------------
            join = JoinPhaseController(source, self.clock, s.poll_slice_s, abort=self._abort)
            run.registry = join.run(groups, run.deadline)
            run.join_stop_reason = join.stop_reason

            # -------------------------------
            # 2) LEAVE phase (optional)
            # -------------------------------
            if s.include_leave and join.stop_reason != "aborted":
                leave = LeavePhaseController(
                    source, self.capture_factory(s), self.clock,
                    poll_slice_s=s.poll_slice_s, abort=self._abort,
                    threshold_us=s.quiescence_us, queue_max=s.capture_queue_max,
                )
                run.trackers = leave.run(groups, run.deadline)
                run.leave_stop_reason = leave.stop_reason
                run.dropped_packets = leave.dropped

            # -------------------------------
            # 3) Build summary result
            # -------------------------------
            snapshot = ResultsAggregator().reduce(run.registry, run.trackers, s.include_leave)
            log.info("run finished: join=%s leave=%s dropped=%d complete=%s",
                     run.join_stop_reason, run.leave_stop_reason or "-",
                     run.dropped_packets, snapshot.is_complete)

            if before_close is not None:
                before_close(snapshot)

        return snapshot


def run_measurement(group_range: str, count: int, mode: Mode, deadline_s: int,
                    local_interface: str, **kwargs) -> ResultsSnapshot:
    """
    One receiver run. group_range is the first group ("230.8.97.1"); the
    tracked set is the count addresses that follow it inside its /24.
    kwargs go to MeasurementEngine (source_factory, capture_factory, clock).
    """
    settings = Settings(
        local_ip=local_interface,
        first_group=group_range,
        count=count,
        timeout_s=deadline_s,
        include_leave=(mode is Mode.JOIN_AND_LEAVE),
    )
    return MeasurementEngine(settings, **kwargs).run()
