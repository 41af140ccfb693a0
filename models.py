"""
Data Models for the proxy speed test.

Defines proxy handles loaded from Clash configuration documents,
per-connection measurement samples and per-proxy benchmark results.
"""

import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from errors import DialError

Dialer = Callable[[str, int], Awaitable[socket.socket]]


class ProxyType(str, Enum):
    """Clash proxy types known to the speed test."""
    SHADOWSOCKS = "ss"
    SHADOWSOCKSR = "ssr"
    SNELL = "snell"
    SOCKS5 = "socks5"
    HTTP = "http"
    VMESS = "vmess"
    VLESS = "vless"
    TROJAN = "trojan"
    HYSTERIA = "hysteria"
    HYSTERIA2 = "hysteria2"
    WIREGUARD = "wireguard"
    TUIC = "tuic"
    DIRECT = "direct"
    REJECT = "reject"
    RELAY = "relay"
    SELECTOR = "select"
    FALLBACK = "fallback"
    URL_TEST = "url-test"
    LOAD_BALANCE = "load-balance"


class ProxyClass(str, Enum):
    """Whether a proxy has a real outbound path worth measuring."""
    TESTABLE = "testable"
    LOGICAL = "logical"
    UNSUPPORTED = "unsupported"


TESTABLE_TYPES = frozenset({
    ProxyType.SHADOWSOCKS,
    ProxyType.SHADOWSOCKSR,
    ProxyType.SNELL,
    ProxyType.SOCKS5,
    ProxyType.HTTP,
    ProxyType.VMESS,
    ProxyType.VLESS,
    ProxyType.TROJAN,
    ProxyType.HYSTERIA,
    ProxyType.HYSTERIA2,
    ProxyType.WIREGUARD,
    ProxyType.TUIC,
})

LOGICAL_TYPES = frozenset({
    ProxyType.DIRECT,
    ProxyType.REJECT,
    ProxyType.RELAY,
    ProxyType.SELECTOR,
    ProxyType.FALLBACK,
    ProxyType.URL_TEST,
    ProxyType.LOAD_BALANCE,
})


class BandwidthLevel(str, Enum):
    """Console colour hint derived from bandwidth."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class ProxyHandle:
    """A named proxy from the registry, able to open tunnelled connections."""

    name: str
    type: str
    config: Dict[str, Any] = field(default_factory=dict)
    dialer: Optional[Dialer] = field(default=None, repr=False, compare=False)

    @property
    def proxy_class(self) -> ProxyClass:
        """Classify the proxy by its type."""
        try:
            proxy_type = ProxyType(self.type.lower())
        except ValueError:
            return ProxyClass.UNSUPPORTED
        if proxy_type in TESTABLE_TYPES:
            return ProxyClass.TESTABLE
        return ProxyClass.LOGICAL

    async def dial(self, host: str, port: int) -> socket.socket:
        """
        Open a connection to host:port through this proxy.

        Returns:
            A connected non-blocking socket.

        Raises:
            DialError: If the proxy has no dialer or the tunnel fails.
        """
        if self.dialer is None:
            raise DialError(f"No dialer available for {self.type} proxy {self.name}")
        return await self.dialer(host, port)


@dataclass(frozen=True)
class MeasurementSample:
    """Outcome of one probe connection."""

    bytes_written: int = 0
    ttfb: float = -1.0
    duration: float = 0.0
    bandwidth: float = -1.0

    @classmethod
    def failure(cls) -> "MeasurementSample":
        return cls()

    @property
    def failed(self) -> bool:
        return self.bytes_written == 0 or self.ttfb < 0


@dataclass(frozen=True)
class Result:
    """Aggregated benchmark of one proxy. Bandwidth in bytes/s, TTFB in seconds."""

    name: str
    bandwidth: float
    ttfb: float

    @property
    def ttfb_ms(self) -> int:
        """TTFB truncated to whole milliseconds."""
        return int(self.ttfb * 1000)
