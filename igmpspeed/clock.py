# igmpspeed/clock.py
import heapq
import itertools
import queue
import time
from abc import ABC, abstractmethod
from typing import Callable

TICKS_PER_US = 1000          # ticks are nanoseconds
TICKS_PER_S = 1_000_000_000


def ticks_to_us(ticks: int) -> int:
    """The one tick->microsecond conversion; JOIN and LEAVE both go through it."""
    return ticks // TICKS_PER_US


def us_to_ticks(us: int) -> int:
    return int(us) * TICKS_PER_US


def seconds_to_ticks(seconds: float) -> int:
    return int(round(seconds * TICKS_PER_S))


class Clock(ABC):
    @abstractmethod
    def now(self) -> int:
        """Current instant in ticks. Only differences are meaningful."""
        raise NotImplementedError

    @abstractmethod
    def wait_for(self, channel: queue.Queue, timeout_s: float):
        """Block on channel for at most timeout_s. Returns an item or None."""
        raise NotImplementedError

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class MonotonicClock(Clock):
    def now(self) -> int:
        return time.perf_counter_ns()

    def wait_for(self, channel: queue.Queue, timeout_s: float):
        try:
            return channel.get(timeout=timeout_s)
        except queue.Empty:
            return None

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    @staticmethod
    def resolution_ns() -> float:
        return time.get_clock_info("perf_counter").resolution * 1e9


class FakeClock(Clock):
    """
    Simulated clock for tests. Time only moves when something waits on it.
    Callbacks registered with call_at() fire, in order, as time passes them,
    which is how fake collaborators inject packets.
    """

    def __init__(self, start: int = 0):
        self._now = start
        self._timers: list = []
        self._seq = itertools.count()

    def now(self) -> int:
        return self._now

    def call_at(self, at: int, fn: Callable[[], None]) -> None:
        heapq.heappush(self._timers, (at, next(self._seq), fn))

    def _fire_next(self) -> None:
        at, _, fn = heapq.heappop(self._timers)
        self._now = max(self._now, at)
        fn()

    def advance_to(self, target: int) -> None:
        while self._timers and self._timers[0][0] <= target:
            self._fire_next()
        self._now = max(self._now, target)

    def advance(self, ticks: int) -> None:
        self.advance_to(self._now + ticks)

    def sleep(self, seconds: float) -> None:
        self.advance(seconds_to_ticks(seconds))

    def wait_for(self, channel: queue.Queue, timeout_s: float):
        try:
            return channel.get_nowait()
        except queue.Empty:
            pass

        deadline = self._now + seconds_to_ticks(timeout_s)
        while self._timers and self._timers[0][0] <= deadline:
            self._fire_next()
            try:
                return channel.get_nowait()
            except queue.Empty:
                continue
        self._now = max(self._now, deadline)
        return None
