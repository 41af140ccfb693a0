"""
Command line entry point for the proxy speed test.

Loads Clash configuration sources, benchmarks the selected proxies
and reports the results.
"""

import sys
import asyncio
import logging
import argparse
from typing import List, Optional

import aiohttp
from rich.console import Console

from benchmark import Benchmarker
from config import BenchmarkConfig
from errors import ConfigError, SpeedtestError
from filters import filter_names
from registry import FETCH_TIMEOUT, load_sources
from report import Reporter, sort_results, write_output
from utils import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxy-speedtest",
        description="Measure bandwidth and TTFB through proxies from Clash configurations",
    )
    try:
        defaults = BenchmarkConfig()
    except ConfigError as e:
        parser.error(f"invalid environment configuration: {e}")
    parser.add_argument("-c", "--config", dest="config_paths", default=defaults.config_paths,
                        help="configuration file path or http(s) url, comma-separated")
    parser.add_argument("-l", "--liveness", dest="liveness_url", default=defaults.liveness_url,
                        help="liveness object url with a %%d byte-size placeholder")
    parser.add_argument("-f", "--filter", dest="filter_regex", default=defaults.filter_regex,
                        help="regexp of proxies to test")
    parser.add_argument("-nf", "--exclude", dest="exclude_regex", default=defaults.exclude_regex,
                        help="regexp of proxies to skip")
    parser.add_argument("-size", "--size", dest="download_size_mb", type=int,
                        default=defaults.download_size_mb, help="download size per proxy (MB)")
    parser.add_argument("-timeout", "--timeout", dest="timeout_s", type=float,
                        default=defaults.timeout_s, help="timeout per request (seconds)")
    parser.add_argument("-concurrent", "--concurrent", dest="concurrent", type=int,
                        default=defaults.concurrent, help="parallel connections per proxy")
    parser.add_argument("-sort", "--sort", dest="sort_field", default=defaults.sort_field,
                        help="sort field: b/bandwidth or t/ttfb")
    parser.add_argument("-output", "--output", dest="output", default=defaults.output,
                        help="write results as csv or yaml")
    parser.add_argument("-flt", "--quality-filter", dest="use_quality_filter",
                        action="store_true", default=defaults.use_quality_filter,
                        help="drop low-quality proxies from yaml output")
    parser.add_argument("-lt", "--max-latency", dest="max_latency_ms", type=float,
                        default=defaults.max_latency_ms, help="max latency (ms) for the quality filter")
    parser.add_argument("-bdwd", "--min-bandwidth", dest="min_bandwidth_mbps", type=float,
                        default=defaults.min_bandwidth_mbps, help="min bandwidth (MB/s) for the quality filter")
    parser.add_argument("-fn", "--file-name", dest="output_file", default=defaults.output_file,
                        help="output file name")
    parser.add_argument("--log-level", dest="log_level", default=defaults.log_level)
    parser.add_argument("--log-file", dest="log_file", default=defaults.log_file)
    return parser


def parse_args(argv: Optional[List[str]] = None) -> BenchmarkConfig:
    """Build the run configuration from command line flags."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return BenchmarkConfig(**vars(args))
    except ConfigError as e:
        parser.error(str(e))


async def run(config: BenchmarkConfig, console: Optional[Console] = None) -> int:
    """
    Run one benchmark end to end.

    Raises:
        SpeedtestError: On configuration or output failures.
    """
    timeout = aiohttp.ClientTimeout(total=FETCH_TIMEOUT)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        registry = await load_sources(config.sources, session)

    names = filter_names(config.filter_regex, config.exclude_regex, registry)
    logger.info("Selected %d of %d proxies", len(names), len(registry))

    reporter = Reporter(console)
    reporter.print_header()
    results = await Benchmarker(config).run(registry, names, on_result=reporter.print_row)

    if config.sort_field:
        results = sort_results(results, config.sort_field)
        reporter.console.print()
        reporter.print_table(results, config.sort_field)

    write_output(config, results, registry)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    config = parse_args(argv)
    setup_logging(config.log_level, config.log_file or None)
    try:
        return asyncio.run(run(config))
    except SpeedtestError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
