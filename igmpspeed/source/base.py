# igmpspeed/source/base.py
from abc import ABC, abstractmethod
from typing import Callable, Optional

from igmpspeed.schemas import Datagram


class TransportError(RuntimeError):
    """Bind, membership or capture failure. Fatal to the run, never retried."""


class DatagramSource(ABC):
    """
    Socket side of the receiver: membership operations plus a bounded-wait
    receive. Used as a context manager so the socket is scoped to one run.
    """

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    @abstractmethod
    def join_group(self, address: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def leave_group(self, address: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def receive_next(self, timeout_s: float) -> Optional[Datagram]:
        """Return the next datagram, or None if timeout_s passed without one."""
        raise NotImplementedError

    def __enter__(self):
        try:
            self.open()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class PromiscuousCapture(ABC):
    """Link-layer capture used to see when LEAVE actually silences a group."""

    @abstractmethod
    def open(self, promiscuous: bool = True) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_filter(self, expr: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def start(self, on_packet: Callable[[str], None]) -> None:
        """Begin delivering destination addresses to on_packet, on the capture's own thread."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass
