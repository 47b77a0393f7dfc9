# igmpspeed/source/socket_source.py
import ipaddress
import logging
import socket
import struct
import sys
from typing import Optional

from igmpspeed.schemas import Datagram
from igmpspeed.source.base import DatagramSource, TransportError

log = logging.getLogger(__name__)

# Linux value; CPython does not export the constant on every platform
IP_PKTINFO = getattr(socket, "IP_PKTINFO", 8)
_PKTINFO_FMT = "I4s4s"       # ipi_ifindex, ipi_spec_dst, ipi_addr
_PKTINFO_LEN = struct.calcsize(_PKTINFO_FMT)


class UdpMulticastSource(DatagramSource):
    """
    One UDP socket for the whole run. IP_PKTINFO gives us the header destination
    of each datagram, which is how a packet is matched to its group.
    """

    def __init__(self, local_ip: str, port: int = 1234, recv_size: int = 100):
        self.local_ip = local_ip
        self.port = port
        self.recv_size = recv_size
        self._sock: Optional[socket.socket] = None

    def open(self) -> None:
        if not hasattr(socket.socket, "recvmsg"):
            raise TransportError("this platform has no recvmsg(); cannot read packet destination")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_IP, IP_PKTINFO, 1)
            # Windows delivers group traffic to a socket bound on the interface
            # address; POSIX stacks only to one bound on the wildcard.
            bind_ip = self.local_ip if sys.platform == "win32" else ""
            sock.bind((bind_ip, self.port))
        except OSError as e:
            sock.close()
            raise TransportError(f"could not bind {self.local_ip}:{self.port}: {e}") from e
        self._sock = sock
        log.debug("bound udp socket on port %d (iface %s)", self.port, self.local_ip)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _mreq(self, address: str) -> bytes:
        return struct.pack("4s4s", socket.inet_aton(address), socket.inet_aton(self.local_ip))

    def _membership(self, option: int, address: str, verb: str) -> None:
        if self._sock is None:
            raise TransportError("socket not open")
        try:
            self._sock.setsockopt(socket.IPPROTO_IP, option, self._mreq(address))
        except OSError as e:
            raise TransportError(f"{verb} {address} on {self.local_ip} failed: {e}") from e

    def join_group(self, address: str) -> None:
        self._membership(socket.IP_ADD_MEMBERSHIP, address, "JOIN")

    def leave_group(self, address: str) -> None:
        self._membership(socket.IP_DROP_MEMBERSHIP, address, "LEAVE")

    def receive_next(self, timeout_s: float) -> Optional[Datagram]:
        if self._sock is None:
            raise TransportError("socket not open")
        self._sock.settimeout(timeout_s)
        try:
            _data, ancdata, _flags, _addr = self._sock.recvmsg(
                self.recv_size, socket.CMSG_SPACE(_PKTINFO_LEN))
        except socket.timeout:
            return None
        except OSError as e:
            raise TransportError(f"receive failed: {e}") from e

        dest = parse_pktinfo(ancdata)
        if dest is None:
            return {"dest": "", "is_multicast": False}
        return {
            "dest": dest,
            "is_multicast": ipaddress.ip_address(dest).is_multicast,
        }


def parse_pktinfo(ancdata) -> Optional[str]:
    for level, ctype, cdata in ancdata:
        if level == socket.IPPROTO_IP and ctype == IP_PKTINFO and len(cdata) >= _PKTINFO_LEN:
            _ifindex, _spec_dst, ipi_addr = struct.unpack(_PKTINFO_FMT, cdata[:_PKTINFO_LEN])
            return socket.inet_ntoa(ipi_addr)
    return None
