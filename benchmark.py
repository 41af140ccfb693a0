"""
Concurrent Benchmark Orchestrator.

Fans several probe connections out per proxy, aggregates them into one
Result, and walks the selected proxies one at a time.
"""

import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import prober
from config import BenchmarkConfig
from errors import UnsupportedProxyError
from models import ProxyClass, ProxyHandle, Result

logger = logging.getLogger(__name__)


@dataclass
class _Totals:
    downloaded: int = 0
    ttfb: float = 0.0


class Benchmarker:
    """
    Proxy bandwidth and TTFB benchmark.

    Each proxy is measured with ``concurrent`` simultaneous downloads of
    ``download_size / concurrent`` bytes. Proxies are measured one after
    another so they never compete for bandwidth.
    """

    def __init__(self, config: BenchmarkConfig):
        self.config = config

    async def benchmark(self, name: str, handle: ProxyHandle) -> Result:
        """
        Benchmark a single proxy.

        Failed probes contribute neither bytes nor TTFB. TTFB is averaged
        over the configured fan-out, not over the successful probes.

        Args:
            name: Registry name of the proxy.
            handle: The proxy to measure.

        Returns:
            Result with bandwidth in bytes/s and TTFB in seconds.
        """
        fan_out = self.config.concurrent if self.config.concurrent > 0 else 1
        chunk_size = self.config.download_size_bytes // fan_out
        url = self.config.liveness_url_for(chunk_size)
        timeout = self.config.timeout_s

        totals = _Totals()
        lock = asyncio.Lock()

        async def run_probe() -> None:
            sample, written = await prober.probe(handle, url, timeout)
            if written:
                async with lock:
                    totals.downloaded += written
                    totals.ttfb += sample.ttfb

        start = time.perf_counter()
        await asyncio.gather(*[run_probe() for _ in range(fan_out)])
        wall_clock = time.perf_counter() - start

        result = Result(
            name=name,
            bandwidth=totals.downloaded / wall_clock if wall_clock > 0 else 0.0,
            ttfb=totals.ttfb / fan_out,
        )
        logger.debug(
            "Proxy %s: %d bytes in %.2fs over %d connections",
            name,
            totals.downloaded,
            wall_clock,
            fan_out,
        )
        return result

    async def run(
        self,
        registry: Dict[str, ProxyHandle],
        names: List[str],
        on_result: Optional[Callable[[Result], None]] = None,
    ) -> List[Result]:
        """
        Benchmark the selected proxies sequentially.

        Logical proxies (groups, direct, reject, ...) are skipped.

        Raises:
            UnsupportedProxyError: If a selected proxy has an unknown type.
                Checked for every name before any traffic is sent.
        """
        for name in names:
            handle = registry[name]
            if handle.proxy_class == ProxyClass.UNSUPPORTED:
                raise UnsupportedProxyError(f"Unsupported proxy type: {handle.type} ({name})")

        start = time.perf_counter()
        results: List[Result] = []
        for name in names:
            handle = registry[name]
            if handle.proxy_class != ProxyClass.TESTABLE:
                logger.debug("Skipping %s proxy %s", handle.type, name)
                continue
            result = await self.benchmark(name, handle)
            results.append(result)
            if on_result:
                on_result(result)

        working = sum(1 for r in results if r.bandwidth > 0)
        logger.info(
            "Benchmark complete: %d/%d proxies working (%.2fs)",
            working,
            len(results),
            time.perf_counter() - start,
        )
        return results
