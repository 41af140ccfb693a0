"""
Single-Connection Prober.

Downloads the liveness object once through a proxy handle and measures
time-to-first-byte and download bandwidth for that connection.
"""

import asyncio
import time
import socket
import logging
from typing import Tuple

import aiohttp
from aiohttp.abc import AbstractResolver

from models import MeasurementSample, ProxyHandle

logger = logging.getLogger(__name__)

HTTP_OK = 200
READ_CHUNK_SIZE = 64 * 1024


class _PassthroughResolver(AbstractResolver):
    """Hand hostnames to the proxy unresolved; the far end does DNS."""

    async def resolve(self, host, port=0, family=socket.AF_INET):
        return [{
            "hostname": host,
            "host": host,
            "port": port,
            "family": socket.AF_INET,
            "proto": 0,
            "flags": 0,
        }]

    async def close(self):
        pass


class DialConnector(aiohttp.TCPConnector):
    """
    TCP connector that opens every connection through a proxy handle.

    TLS, when the target is https, is layered on top of the tunnelled
    socket by the event loop as usual.
    """

    def __init__(self, handle: ProxyHandle, **kwargs):
        kwargs["resolver"] = _PassthroughResolver()
        kwargs.setdefault("force_close", True)
        super().__init__(**kwargs)
        self._handle = handle

    async def _wrap_create_connection(
        self,
        protocol_factory,
        *args,
        addr_infos,
        req,
        timeout,
        client_error=aiohttp.ClientConnectorError,
        **kwargs,
    ):
        host, port = addr_infos[0][4][:2]
        try:
            sock = await self._handle.dial(host, port)
            ssl_context = kwargs.get("ssl") or None
            return await self._loop.create_connection(
                protocol_factory,
                sock=sock,
                ssl=ssl_context,
                server_hostname=kwargs.get("server_hostname") if ssl_context else None,
            )
        except OSError as e:
            raise client_error(req.connection_key, e) from e


async def _drain(response: aiohttp.ClientResponse) -> int:
    """Read and discard the body, returning the byte count."""
    written = 0
    try:
        async for chunk in response.content.iter_chunked(READ_CHUNK_SIZE):
            written += len(chunk)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        # The deadline bounds the measurement; bytes already read still count
        logger.debug("Body read stopped after %d bytes: %r", written, e)
    return written


async def probe(
    handle: ProxyHandle, url: str, timeout: float
) -> Tuple[MeasurementSample, int]:
    """
    Measure one download through one proxy connection.

    Args:
        handle: Proxy to tunnel through.
        url: Liveness URL with the chunk size already substituted.
        timeout: Hard deadline in seconds for connect, headers and body.

    Returns:
        Tuple of (sample, bytes_written). Failed probes return the
        sentinel sample and 0 bytes.
    """
    connector = DialConnector(handle)
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    start = time.perf_counter()

    try:
        async with aiohttp.ClientSession(
            connector=connector, timeout=client_timeout
        ) as session:
            async with session.get(url) as response:
                if response.status - HTTP_OK > 100:
                    logger.debug(
                        "Probe through %s got HTTP %d", handle.name, response.status
                    )
                    return MeasurementSample.failure(), 0
                ttfb = time.perf_counter() - start
                written = await _drain(response)
                elapsed = time.perf_counter() - start

    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        logger.debug("Probe through %s failed: %r", handle.name, e)
        return MeasurementSample.failure(), 0

    if written == 0:
        logger.debug("Probe through %s returned an empty body", handle.name)
        return MeasurementSample.failure(), 0

    duration = elapsed - ttfb
    bandwidth = written / duration if duration > 0 else 0.0
    sample = MeasurementSample(
        bytes_written=written, ttfb=ttfb, duration=duration, bandwidth=bandwidth
    )
    return sample, written
