# igmpspeed/brain/leave.py
import logging
import queue
import threading
from typing import Optional

from igmpspeed.brain.rules import all_quiescent, capture_filter
from igmpspeed.brain.state import LeaveTrackerTable
from igmpspeed.clock import Clock
from igmpspeed.config import QUIESCENCE_THRESHOLD_US
from igmpspeed.schemas import CapturedPacket
from igmpspeed.source.base import DatagramSource, PromiscuousCapture

log = logging.getLogger(__name__)


class LeavePhaseController:
    """
    Times how long each group keeps arriving after LEAVE.

    The socket cannot be trusted for this (the OS may keep or stop delivering
    to it independently of the wire), so packets are watched with a
    promiscuous capture instead. The capture thread only posts
    (address, tick) onto a bounded channel; this loop is the only writer of
    tracker state. A group is done once it has been silent for the
    quiescence threshold, and its LEAVE time is the last packet seen.
    """

    def __init__(self, source: DatagramSource, capture: PromiscuousCapture, clock: Clock,
                 poll_slice_s: float = 0.1, abort: Optional[threading.Event] = None,
                 threshold_us: int = QUIESCENCE_THRESHOLD_US, queue_max: int = 65536):
        self.source = source
        self.capture = capture
        self.clock = clock
        self.poll_slice_s = poll_slice_s
        self.abort = abort or threading.Event()
        self.threshold_us = threshold_us
        self.channel: queue.Queue = queue.Queue(maxsize=queue_max)
        self.dropped = 0
        self.stop_reason: Optional[str] = None

    def _on_packet(self, dest: str) -> None:
        # capture thread
        try:
            pkt: CapturedPacket = {"dest": dest, "tick": self.clock.now()}
            self.channel.put_nowait(pkt)
        except queue.Full:
            self.dropped += 1

    def _apply(self, trackers: LeaveTrackerTable, pkt: CapturedPacket) -> None:
        tracker = trackers.get(pkt["dest"])
        if tracker is not None:
            tracker.observe(pkt["tick"])

    def _drain_pending(self, trackers: LeaveTrackerTable) -> None:
        while True:
            try:
                self._apply(trackers, self.channel.get_nowait())
            except queue.Empty:
                return

    def _wait(self, trackers: LeaveTrackerTable) -> None:
        pkt = self.clock.wait_for(self.channel, self.poll_slice_s)
        if pkt is not None:
            self._apply(trackers, pkt)
            self._drain_pending(trackers)

    def run(self, groups: list[str], deadline: int) -> LeaveTrackerTable:
        trackers = LeaveTrackerTable(groups)

        self.capture.open(promiscuous=True)
        try:
            self.capture.set_filter(capture_filter(groups))

            for tracker in trackers:
                self.source.leave_group(tracker.address)
                tracker.start(self.clock.now())
            log.info("LEAVE issued for %d group(s)", len(trackers))

            self.capture.start(self._on_packet)
            try:
                while True:
                    # a packet posted since the last wait must count before judging silence
                    self._drain_pending(trackers)
                    if all_quiescent(trackers, self.clock.now(), self.threshold_us):
                        self.stop_reason = "quiescent"
                        break
                    if self.abort.is_set():
                        self.stop_reason = "aborted"
                        break
                    if self.clock.now() >= deadline:
                        self.stop_reason = "deadline"
                        break
                    self._wait(trackers)
            finally:
                self.capture.stop()
            # anything captured before stop() still counts
            self._drain_pending(trackers)
        finally:
            self.capture.close()

        if self.dropped:
            log.warning("capture channel overflowed; %d packet(s) dropped", self.dropped)
        log.info("LEAVE phase ended (%s)", self.stop_reason)
        return trackers
