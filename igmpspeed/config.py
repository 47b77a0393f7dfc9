# igmpspeed/config.py
import ipaddress
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

MAX_STREAMS = 254
QUIESCENCE_THRESHOLD_US = 2_000_000

_GROUP_RE = re.compile(r"^(\d{1,3}\.\d{1,3}\.\d{1,3})\.(\d{1,3})$")


class ConfigError(ValueError):
    """Bad run configuration. Detected before any socket or capture is opened."""


@dataclass
class Settings:
    local_ip: str = "127.0.0.1"
    first_group: str = "230.8.97.1"
    count: int = 1
    timeout_s: int = 5
    ttl: int = 32
    include_leave: bool = False
    port: int = 1234
    poll_slice_ms: int = 100
    quiet: bool = False
    start_at: Optional[datetime] = None

    # LEAVE phase: capture thread -> polling loop channel bound
    capture_queue_max: int = 65536
    # not meant to be tuned; kept here so the number lives in one place
    quiescence_us: int = QUIESCENCE_THRESHOLD_US

    # emitter only; 0 sends as fast as the socket allows
    rate_hz: float = 0.0

    def split_group(self) -> tuple[str, int]:
        m = _GROUP_RE.match(self.first_group.strip())
        if not m:
            raise ConfigError(f"Could not parse multicast IP group {self.first_group}")
        return m.group(1), int(m.group(2))

    def validate(self, now: Optional[datetime] = None, check_start: bool = False) -> "Settings":
        prefix, first = self.split_group()

        if self.count < 1 or self.count > MAX_STREAMS:
            raise ConfigError(f"Stream count must be between 1 and {MAX_STREAMS}")

        if first < 1 or first + self.count - 1 > MAX_STREAMS:
            raise ConfigError(
                "The stream count must fit within the same class C network space "
                f"as the multicast group {prefix}"
            )

        try:
            addr = ipaddress.ip_address(f"{prefix}.{first}")
        except ValueError:
            raise ConfigError(f"Could not parse multicast IP group {self.first_group}") from None
        if addr.version != 4:
            raise ConfigError("Only IPV4 addresses allowed.")

        first_octet = int(prefix.split(".")[0])
        if first_octet < 224 or first_octet > 239:
            raise ConfigError("Network must be in the multicast range of 224.0.0 through 239.255.255")

        try:
            local = ipaddress.ip_address(self.local_ip)
        except ValueError:
            raise ConfigError(f"Could not parse local IP address {self.local_ip}") from None
        if local.version != 4:
            raise ConfigError("Only IPV4 addresses allowed.")

        if self.timeout_s < 1:
            raise ConfigError("Timeout must be at least 1 second.")

        if self.poll_slice_ms < 1:
            raise ConfigError("Poll slice must be at least 1 millisecond.")

        if check_start and self.start_at is not None:
            now = now or datetime.now()
            if self.start_at <= now:
                raise ConfigError(
                    f"Specified start time {self.start_at} is earlier than current time {now}"
                )
        return self

    def groups(self) -> list[str]:
        """Ordered tracked set: prefix.first ... prefix.(first+count-1)."""
        prefix, first = self.split_group()
        return [f"{prefix}.{first + i}" for i in range(self.count)]

    @property
    def poll_slice_s(self) -> float:
        return self.poll_slice_ms / 1000.0
