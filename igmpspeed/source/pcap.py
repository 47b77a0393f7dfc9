# igmpspeed/source/pcap.py
import logging
import threading
import time
from typing import Callable, Optional

from scapy.all import AsyncSniffer, get_if_addr, get_if_list
from scapy.error import Scapy_Exception
from scapy.layers.inet import IP

from igmpspeed.source.base import PromiscuousCapture, TransportError

log = logging.getLogger(__name__)


def resolve_iface(local_ip: str) -> str:
    """Find the interface that carries local_ip."""
    for name in get_if_list():
        try:
            if get_if_addr(name) == local_ip:
                return name
        except (OSError, Scapy_Exception):
            continue
    raise TransportError(f"Cannot find local address {local_ip} on any NIC")


class ScapyCapture(PromiscuousCapture):
    """
    Promiscuous libpcap capture through scapy's AsyncSniffer. The packet
    callback runs on the sniffer thread and only hands over the IP destination.
    """

    def __init__(self, local_ip: str, iface: Optional[str] = None, start_timeout_s: float = 2.0):
        self.local_ip = local_ip
        self.start_timeout_s = start_timeout_s
        self.iface = iface
        self.promiscuous = True
        self.bpf: Optional[str] = None
        self._sniffer: Optional[AsyncSniffer] = None

    def open(self, promiscuous: bool = True) -> None:
        self.promiscuous = promiscuous
        if self.iface is None:
            self.iface = resolve_iface(self.local_ip)
        log.debug("capture iface=%s promisc=%s", self.iface, promiscuous)

    def set_filter(self, expr: str) -> None:
        self.bpf = expr

    def start(self, on_packet: Callable[[str], None]) -> None:
        def _cb(pkt) -> None:
            ip = pkt.getlayer(IP)
            if ip is None:
                return
            on_packet(str(ip.dst))

        started = threading.Event()
        sniffer = AsyncSniffer(
            iface=self.iface,
            filter=self.bpf,
            prn=_cb,
            store=False,
            promisc=self.promiscuous,
            started_callback=started.set,
        )
        try:
            sniffer.start()
        except (OSError, ValueError, Scapy_Exception) as e:
            raise TransportError(f"could not open capture on {self.iface}: {e}") from e

        # the pcap handle is opened on the sniffer thread; its errors land in
        # sniffer.exception instead of being raised here
        deadline = time.monotonic() + self.start_timeout_s
        while not started.wait(0.05):
            if getattr(sniffer, "exception", None) is not None or time.monotonic() >= deadline:
                break
        err = getattr(sniffer, "exception", None)
        if err is not None:
            raise TransportError(f"could not open capture on {self.iface}: {err}") from err
        if not started.is_set():
            if sniffer.running:
                sniffer.stop(join=False)
            raise TransportError(f"capture on {self.iface} did not start within {self.start_timeout_s}s")

        self._sniffer = sniffer
        log.info("capture starting iface=%s bpf=%s", self.iface, self.bpf)

    def stop(self) -> None:
        sniffer, self._sniffer = self._sniffer, None
        if sniffer is None:
            return
        try:
            if sniffer.running:
                sniffer.stop()
        except (OSError, Scapy_Exception) as e:
            raise TransportError(f"capture on {self.iface} failed to stop: {e}") from e
        err = getattr(sniffer, "exception", None)
        if err is not None:
            raise TransportError(f"capture on {self.iface} failed: {err}") from err
        log.info("capture stopped")
