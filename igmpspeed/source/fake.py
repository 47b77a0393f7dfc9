# igmpspeed/source/fake.py
from collections import deque
from typing import Callable, Iterable, Optional

from igmpspeed.clock import FakeClock, seconds_to_ticks, us_to_ticks
from igmpspeed.schemas import Datagram
from igmpspeed.source.base import DatagramSource, PromiscuousCapture, TransportError


class FakeDatagramSource(DatagramSource):
    """
    script: iterable of (at_us, dest[, is_multicast]) on the FakeClock's timeline.
    receive_next() hands them out in time order and advances the clock to each
    arrival; with nothing due inside the timeout it advances by the timeout
    and returns None.
    """

    def __init__(self, clock: FakeClock, script: Iterable = (), fail_on: Optional[str] = None):
        self.clock = clock
        self.script = deque(sorted(
            (us_to_ticks(item[0]), item[1], item[2] if len(item) > 2 else True)
            for item in script
        ))
        self.fail_on = fail_on
        self.joined: list[str] = []
        self.left: list[str] = []
        self.opened = False
        self.closed = False
        self.receive_calls = 0

    def open(self) -> None:
        if self.fail_on == "open":
            raise TransportError("bind failed")
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def join_group(self, address: str) -> None:
        if self.fail_on == "join":
            raise TransportError(f"JOIN {address} failed")
        self.joined.append(address)

    def leave_group(self, address: str) -> None:
        if self.fail_on == "leave":
            raise TransportError(f"LEAVE {address} failed")
        self.left.append(address)

    def receive_next(self, timeout_s: float) -> Optional[Datagram]:
        self.receive_calls += 1
        deadline = self.clock.now() + seconds_to_ticks(timeout_s)
        if self.script and self.script[0][0] <= deadline:
            at, dest, is_mc = self.script.popleft()
            self.clock.advance_to(at)
            return {"dest": dest, "is_multicast": is_mc}
        self.clock.advance_to(deadline)
        return None


class FakeCapture(PromiscuousCapture):
    """
    script: iterable of (at_us, dest). On start() every arrival is scheduled on
    the FakeClock; the callback fires when the polling loop's wait passes it.
    Destinations not matching the filter are dropped, as the BPF would.
    """

    def __init__(self, clock: FakeClock, script: Iterable = (), fail_on_open: bool = False,
                 fail_after_start: bool = False):
        self.clock = clock
        self.script = sorted((us_to_ticks(at), dest) for at, dest in script)
        self.fail_on_open = fail_on_open
        # the handle dies on the capture thread: start() returns, stop() reports it
        self.fail_after_start = fail_after_start
        self.promiscuous: Optional[bool] = None
        self.filter: Optional[str] = None
        self.running = False
        self.started = False
        self.stopped = False
        self.closed = False

    def open(self, promiscuous: bool = True) -> None:
        if self.fail_on_open:
            raise TransportError("capture open failed")
        self.promiscuous = promiscuous

    def set_filter(self, expr: str) -> None:
        self.filter = expr

    def _matches(self, dest: str) -> bool:
        if not self.filter:
            return True
        return f"dst host {dest}" in self.filter.split(" or ")

    def start(self, on_packet: Callable[[str], None]) -> None:
        self.running = True
        self.started = True
        if self.fail_after_start:
            return
        for at, dest in self.script:
            if not self._matches(dest):
                continue
            self.clock.call_at(at, lambda d=dest: self.running and on_packet(d))

    def stop(self) -> None:
        self.running = False
        self.stopped = True
        if self.fail_after_start:
            raise TransportError("capture thread failed: Operation not permitted")

    def close(self) -> None:
        self.closed = True
