import pytest

from igmpspeed.source import pcap
from igmpspeed.source.base import TransportError
from igmpspeed.source.pcap import ScapyCapture


class StubSniffer:
    """Stands in for AsyncSniffer; `mode` picks how the capture thread behaves."""

    def __init__(self, mode, **kwargs):
        self.mode = mode
        self.kwargs = kwargs
        self.exception = None
        self.running = False
        self.stop_calls = 0

    def start(self):
        if self.mode == "bad_iface":
            raise ValueError("Interface 'nosuchif0' not found !")
        if self.mode == "no_permission":
            # what the sniffer thread records when libpcap refuses the handle
            self.exception = PermissionError(1, "Operation not permitted")
            return
        if self.mode == "hang":
            return
        self.running = True
        self.kwargs["started_callback"]()

    def stop(self, join=True):
        self.stop_calls += 1
        self.running = False
        if self.mode == "dies_later":
            self.exception = OSError(100, "Network is down")


@pytest.fixture
def sniffers(monkeypatch):
    made = []

    def install(mode):
        def factory(**kwargs):
            s = StubSniffer(mode, **kwargs)
            made.append(s)
            return s
        monkeypatch.setattr(pcap, "AsyncSniffer", factory)
        return made
    return install


def _capture():
    cap = ScapyCapture("10.0.0.6", iface="eth0", start_timeout_s=0.2)
    cap.open(promiscuous=True)
    cap.set_filter("dst host 230.8.97.1")
    return cap


def test_start_and_stop_normally(sniffers):
    made = sniffers("ok")
    cap = _capture()
    cap.start(lambda dest: None)
    kw = made[0].kwargs
    assert kw["iface"] == "eth0"
    assert kw["filter"] == "dst host 230.8.97.1"
    assert kw["promisc"] is True
    assert kw["store"] is False
    cap.stop()
    assert made[0].stop_calls == 1


@pytest.mark.parametrize("mode", ["no_permission", "bad_iface", "hang"])
def test_start_raises_when_the_handle_never_opens(sniffers, mode):
    sniffers(mode)
    cap = _capture()
    with pytest.raises(TransportError):
        cap.start(lambda dest: None)
    cap.stop()      # nothing was started, nothing to report


def test_stop_raises_when_the_capture_thread_failed(sniffers):
    sniffers("dies_later")
    cap = _capture()
    cap.start(lambda dest: None)
    with pytest.raises(TransportError):
        cap.stop()
