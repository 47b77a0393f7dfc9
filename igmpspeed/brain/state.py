# igmpspeed/brain/state.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from igmpspeed.clock import ticks_to_us


class TimerStateError(RuntimeError):
    pass


class TimerState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass
class GroupTimer:
    address: str
    state: TimerState = TimerState.PENDING
    started_at: int = 0
    _elapsed: int = 0

    def start(self, now: int) -> None:
        if self.state is not TimerState.PENDING:
            raise TimerStateError(f"{self.address}: start() while {self.state.value}")
        self.started_at = now
        self.state = TimerState.RUNNING

    def complete(self, now: int) -> bool:
        """Stop on the first qualifying packet. Later calls are no-ops and return False."""
        if self.state is TimerState.COMPLETED:
            return False
        if self.state is TimerState.PENDING:
            raise TimerStateError(f"{self.address}: packet before JOIN was issued")
        self._elapsed = now - self.started_at
        self.state = TimerState.COMPLETED
        return True

    @property
    def completed(self) -> bool:
        return self.state is TimerState.COMPLETED

    @property
    def elapsed(self) -> Optional[int]:
        return self._elapsed if self.completed else None

    @property
    def elapsed_us(self) -> Optional[int]:
        return ticks_to_us(self._elapsed) if self.completed else None


class _GroupTable:
    """Fixed-size table indexed by (last octet - first octet)."""

    def __init__(self, groups: list[str]):
        if not groups:
            raise ValueError("at least one group is required")
        self.groups = list(groups)
        self.prefix = groups[0].rsplit(".", 1)[0]
        self.first = int(groups[0].rsplit(".", 1)[1])

    def index_of(self, address: str) -> Optional[int]:
        prefix, _, last = address.rpartition(".")
        if prefix != self.prefix or not last.isdigit():
            return None
        idx = int(last) - self.first
        if 0 <= idx < len(self.groups):
            return idx
        return None

    def __len__(self) -> int:
        return len(self.groups)


class GroupTimerRegistry(_GroupTable):
    def __init__(self, groups: list[str]):
        super().__init__(groups)
        self.timers = [GroupTimer(a) for a in self.groups]

    def get(self, address: str) -> Optional[GroupTimer]:
        idx = self.index_of(address)
        return None if idx is None else self.timers[idx]

    def __iter__(self):
        return iter(self.timers)

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.timers if t.completed)

    @property
    def all_completed(self) -> bool:
        return self.completed_count == len(self.timers)


@dataclass
class LeaveTracker:
    address: str
    started_at: Optional[int] = None
    last_seen: int = 0          # ticks since started_at; 0 = never observed

    def start(self, now: int) -> None:
        self.started_at = now

    def observe(self, tick: int) -> None:
        if self.started_at is None:
            return
        rel = tick - self.started_at
        # never move backwards; a late-arriving older stamp is ignored
        if rel > self.last_seen:
            self.last_seen = rel

    def silent_for_us(self, now: int) -> int:
        if self.started_at is None:
            return 0
        return ticks_to_us(now - self.started_at - self.last_seen)

    @property
    def last_seen_us(self) -> int:
        return ticks_to_us(self.last_seen)


class LeaveTrackerTable(_GroupTable):
    def __init__(self, groups: list[str]):
        super().__init__(groups)
        self.trackers = [LeaveTracker(a) for a in self.groups]

    def get(self, address: str) -> Optional[LeaveTracker]:
        idx = self.index_of(address)
        return None if idx is None else self.trackers[idx]

    def __iter__(self):
        return iter(self.trackers)


@dataclass
class RunState:
    deadline: int
    join_stop_reason: Optional[str] = None
    leave_stop_reason: Optional[str] = None
    registry: Optional[GroupTimerRegistry] = None
    trackers: Optional[LeaveTrackerTable] = None
    dropped_packets: int = 0
