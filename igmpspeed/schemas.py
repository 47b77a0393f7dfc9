from dataclasses import dataclass, field
from typing import TypedDict

NO_DATA = -1.0


class Datagram(TypedDict):
    dest: str               # IP header destination (the group for multicast)
    is_multicast: bool


class CapturedPacket(TypedDict):
    dest: str
    tick: int               # clock tick at which the capture thread saw it


@dataclass(frozen=True)
class ResultsSnapshot:
    join_time: dict[str, int] = field(default_factory=dict)
    leave_time: dict[str, int] = field(default_factory=dict)
    has_results: bool = False
    is_complete: bool = False
    fastest_join: float = NO_DATA
    average_join: float = NO_DATA
    slowest_join: float = NO_DATA
    fastest_leave: float = NO_DATA
    average_leave: float = NO_DATA
    slowest_leave: float = NO_DATA

    def to_dict(self) -> dict:
        # key order follows group order, so equal inputs serialize identically
        return {
            "JoinTime": dict(self.join_time),
            "LeaveTime": dict(self.leave_time),
            "HasResults": self.has_results,
            "IsComplete": self.is_complete,
            "FastestJoin": self.fastest_join,
            "AverageJoin": self.average_join,
            "SlowestJoin": self.slowest_join,
            "FastestLeave": self.fastest_leave,
            "AverageLeave": self.average_leave,
            "SlowestLeave": self.slowest_leave,
        }
