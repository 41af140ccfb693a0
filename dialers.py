"""
Tunnel dialers for proxy handles.

Only protocols with a native Python client get a dialer. Handles of
any other testable type have none, so every probe through them fails
and the proxy reports N/A instead of aborting the run.
"""

import logging
import socket
from typing import Any, Dict, Optional

from python_socks import ProxyConnectionError, ProxyError, ProxyTimeoutError
from python_socks import ProxyType as SocksProxyType
from python_socks.async_.asyncio import Proxy

from errors import DialError
from models import Dialer, ProxyType

logger = logging.getLogger(__name__)

_SOCKS_TYPES = {
    ProxyType.SOCKS5.value: SocksProxyType.SOCKS5,
    ProxyType.HTTP.value: SocksProxyType.HTTP,
}


def build_dialer(proxy_type: str, payload: Dict[str, Any]) -> Optional[Dialer]:
    """
    Build a dial function for a proxy payload.

    Args:
        proxy_type: Clash proxy type.
        payload: Persisted proxy configuration.

    Returns:
        Async callable (host, port) -> socket, or None if the protocol
        has no native dialer.
    """
    socks_type = _SOCKS_TYPES.get(proxy_type.lower())
    if socks_type is None or payload.get("tls"):
        logger.debug("No native dialer for %s proxy %s", proxy_type, payload.get("name"))
        return None

    server = payload.get("server")
    port = payload.get("port")
    if not server or port is None:
        return None
    username = payload.get("username")
    password = payload.get("password")

    async def dial(host: str, dest_port: int) -> socket.socket:
        # A fresh Proxy per call keeps concurrent dials independent
        proxy = Proxy.create(
            socks_type,
            str(server),
            int(port),
            username=str(username) if username is not None else None,
            password=str(password) if password is not None else None,
            rdns=True,
        )
        try:
            return await proxy.connect(dest_host=host, dest_port=dest_port)
        except (ProxyError, ProxyTimeoutError, ProxyConnectionError) as e:
            raise DialError(f"{proxy_type} {server}:{port} -> {host}:{dest_port}: {e}") from e

    return dial
