# igmpspeed/brain/join.py
import logging
import threading
from typing import Optional

from igmpspeed.brain.state import GroupTimerRegistry
from igmpspeed.clock import Clock, ticks_to_us
from igmpspeed.source.base import DatagramSource

log = logging.getLogger(__name__)


class JoinPhaseController:
    def __init__(self, source: DatagramSource, clock: Clock, poll_slice_s: float = 0.1,
                 abort: Optional[threading.Event] = None):
        self.source = source
        self.clock = clock
        self.poll_slice_s = poll_slice_s
        self.abort = abort or threading.Event()
        self.stop_reason: Optional[str] = None

    def run(self, groups: list[str], deadline: int) -> GroupTimerRegistry:
        registry = GroupTimerRegistry(groups)

        # -------------------------------
        # 1) Issue JOINs, start timers
        # -------------------------------
        # The timer starts at issuance, so the figure includes OS processing
        # on top of network propagation.
        for timer in registry:
            self.source.join_group(timer.address)
            timer.start(self.clock.now())
        log.info("JOIN issued for %d group(s)", len(registry))

        # -------------------------------
        # 2) Poll until done / deadline
        # -------------------------------
        while True:
            if registry.all_completed:
                self.stop_reason = "complete"
                break
            if self.abort.is_set():
                self.stop_reason = "aborted"
                break
            if self.clock.now() >= deadline:
                self.stop_reason = "deadline"
                break

            dgram = self.source.receive_next(self.poll_slice_s)
            if dgram is None:
                continue
            if not dgram.get("is_multicast"):
                continue

            timer = registry.get(dgram["dest"])
            if timer is None:
                continue
            if timer.complete(self.clock.now()):
                log.debug("first packet for %s after %d us", timer.address, ticks_to_us(timer.elapsed))

        log.info("JOIN phase ended (%s): %d/%d groups delivered",
                 self.stop_reason, registry.completed_count, len(registry))
        return registry
