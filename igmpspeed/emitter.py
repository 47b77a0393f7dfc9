# igmpspeed/emitter.py
import logging
import socket
from typing import Callable, Optional

from igmpspeed.clock import Clock, MonotonicClock, seconds_to_ticks, ticks_to_us
from igmpspeed.config import Settings
from igmpspeed.source.base import TransportError

log = logging.getLogger(__name__)

PAYLOAD = b"i"


def _udp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)


class Emitter:
    """
    Signal source: one tiny datagram to every group per round, until the
    timeout. The send buffer is shrunk to roughly one round so the pacing we
    observe is the pacing on the wire.
    """

    def __init__(self, settings: Settings, clock: Optional[Clock] = None,
                 socket_factory: Callable[[], socket.socket] = _udp_socket):
        self.s = settings
        self.clock = clock or MonotonicClock()
        self.socket_factory = socket_factory
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    def _open(self) -> socket.socket:
        sock = self.socket_factory()
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, max(self.s.count, 1))
            sock.bind((self.s.local_ip, self.s.port))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.s.ttl)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(self.s.local_ip))
        except OSError as e:
            sock.close()
            raise TransportError(f"could not bind {self.s.local_ip}:{self.s.port}: {e}") from e
        return sock

    def run(self) -> dict:
        s = self.s.validate()
        endpoints = [(g, s.port) for g in s.groups()]
        period = seconds_to_ticks(1.0 / s.rate_hz) if s.rate_hz > 0 else 0

        rounds = 0
        gaps_us: list[int] = []
        sock = self._open()
        try:
            start = self.clock.now()
            deadline = start + seconds_to_ticks(s.timeout_s)
            last = start
            log.info("emitting %d stream(s) to %s..%s:%d ttl=%d",
                     len(endpoints), endpoints[0][0], endpoints[-1][0], s.port, s.ttl)

            while not self._stopped and self.clock.now() < deadline:
                for ep in endpoints:
                    try:
                        sock.sendto(PAYLOAD, ep)
                    except OSError as e:
                        raise TransportError(f"send to {ep[0]} failed: {e}") from e
                rounds += 1

                now = self.clock.now()
                if rounds > 1:
                    gaps_us.append(ticks_to_us(now - last))
                last = now

                if period:
                    wait = start + rounds * period - self.clock.now()
                    if wait > 0:
                        self.clock.sleep(wait / 1e9)
        finally:
            sock.close()

        log.info("exiting after timeout period; each stream received %d packets", rounds)
        return {
            "streams": len(endpoints),
            "packets_per_stream": rounds,
            "usecs_between_rounds": (sum(gaps_us) / len(gaps_us)) if gaps_us else None,
        }
