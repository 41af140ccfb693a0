"""
Ranking & Reporting Pipeline.

Sorts benchmark results, prints them to the console and writes the
optional CSV or YAML output file.
"""

import csv
import io
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

import yaml
from rich.console import Console
from rich.table import Table
from rich.text import Text

from config import BenchmarkConfig
from errors import ConfigError, OutputError
from models import BandwidthLevel, ProxyHandle, Result
from utils import (
    MB,
    bandwidth_level,
    format_bandwidth,
    format_bandwidth_suffix,
    format_milliseconds,
    format_name,
)

logger = logging.getLogger(__name__)

HEADER = ("Proxy", "Bandwidth", "TTFB")
ROW_FORMAT = "{:<42}\t{:<12}\t{:<12}"
CSV_HEADER = ("Proxy", "Bandwidth (MB/s)", "TTFB (ms)")

LEVEL_STYLES = {
    BandwidthLevel.LOW: "red",
    BandwidthLevel.NORMAL: None,
    BandwidthLevel.HIGH: "green",
}

SORT_LABELS = {
    "b": "bandwidth",
    "bandwidth": "bandwidth",
    "t": "TTFB",
    "ttfb": "TTFB",
}


def sort_results(results: Iterable[Result], sort_field: str) -> List[Result]:
    """
    Order results for reporting.

    Args:
        results: Benchmark results.
        sort_field: "b"/"bandwidth" (descending), "t"/"ttfb" (ascending),
            or "" to keep the benchmark order.

    Raises:
        ConfigError: For any other sort field.
    """
    key = sort_field.lower()
    if key == "":
        return list(results)
    if key in ("b", "bandwidth"):
        return sorted(results, key=lambda r: r.bandwidth, reverse=True)
    if key in ("t", "ttfb"):
        return sorted(results, key=lambda r: r.ttfb)
    raise ConfigError(f"Unsupported sort field: {sort_field}")


class Reporter:
    """Console output of benchmark results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_header(self) -> None:
        self.console.print(ROW_FORMAT.format(*HEADER), markup=False, highlight=False)

    def print_row(self, result: Result) -> None:
        """Print one result line, coloured by bandwidth level."""
        line = ROW_FORMAT.format(
            format_name(result.name),
            format_bandwidth(result.bandwidth),
            format_milliseconds(result.ttfb),
        )
        self.console.print(
            line,
            style=LEVEL_STYLES[bandwidth_level(result.bandwidth)],
            markup=False,
            highlight=False,
        )

    def print_table(self, results: List[Result], sort_field: str) -> None:
        """Print the sorted results as a table."""
        label = SORT_LABELS.get(sort_field.lower())
        title = f"Results sorted by {label}" if label else "Results"
        table = Table(title=title)
        table.add_column(HEADER[0])
        table.add_column(HEADER[1], justify="right")
        table.add_column(HEADER[2], justify="right")

        for result in results:
            table.add_row(
                Text(format_name(result.name)),
                Text(format_bandwidth(result.bandwidth)),
                Text(format_milliseconds(result.ttfb)),
                style=LEVEL_STYLES[bandwidth_level(result.bandwidth)],
            )
        self.console.print(table)


def passes_quality(result: Result, min_bandwidth_bytes: float, max_latency_ms: float) -> bool:
    """Strict thresholds: bandwidth above the minimum and 0 < TTFB < maximum."""
    return (
        result.bandwidth > min_bandwidth_bytes
        and 0 < result.ttfb_ms < max_latency_ms
    )


def render_csv(results: Iterable[Result]) -> str:
    """CSV table of name, MB/s and whole-millisecond TTFB."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for result in results:
        writer.writerow([
            result.name,
            f"{result.bandwidth / MB:.2f}",
            str(result.ttfb_ms),
        ])
    return buffer.getvalue()


def _dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, allow_unicode=True, sort_keys=False)


def render_yaml(results: Iterable[Result], registry: Dict[str, ProxyHandle]) -> str:
    """Persisted proxy payloads in result order, as a top-level sequence."""
    payloads = [registry[r.name].config for r in results if r.name in registry]
    return _dump_yaml(payloads)


def render_yaml_filtered(
    results: List[Result],
    registry: Dict[str, ProxyHandle],
    min_bandwidth_mbps: float,
    max_latency_ms: float,
) -> str:
    """
    Proxy payloads that pass the quality thresholds, tagged with bandwidth.

    Passing proxies come first in result order with a suffix such as
    "-12MBPS" appended to their name. Registry entries that were never
    tested follow unmodified; tested proxies that fail are dropped.

    Returns:
        YAML document of the form ``{proxies: [...]}``.
    """
    min_bandwidth_bytes = min_bandwidth_mbps * MB
    kept: List[Dict[str, Any]] = []

    for result in results:
        handle = registry.get(result.name)
        if handle is None or not passes_quality(result, min_bandwidth_bytes, max_latency_ms):
            continue
        payload = copy.deepcopy(handle.config)
        if isinstance(payload.get("name"), str):
            payload["name"] = payload["name"] + format_bandwidth_suffix(result.bandwidth)
            kept.append(payload)

    tested = {r.name for r in results}
    untested = [h.config for name, h in registry.items() if name not in tested]

    logger.info(
        "Quality filter kept %d of %d tested proxies", len(kept), len(tested)
    )
    return _dump_yaml({"proxies": kept + untested})


def write_output(
    config: BenchmarkConfig,
    results: List[Result],
    registry: Dict[str, ProxyHandle],
) -> Optional[str]:
    """
    Write the configured output file.

    The document is rendered completely before the file is opened.

    Returns:
        The written path, or None when no output mode is configured.

    Raises:
        OutputError: If the file cannot be written.
    """
    mode = config.output.lower()
    if mode == "csv":
        content = render_csv(results)
        encoding = "utf-8-sig"
    elif mode == "yaml" and config.use_quality_filter:
        content = render_yaml_filtered(
            results, registry, config.min_bandwidth_mbps, config.max_latency_ms
        )
        encoding = "utf-8"
    elif mode == "yaml":
        content = render_yaml(results, registry)
        encoding = "utf-8"
    else:
        return None

    try:
        with open(config.output_file, "w", encoding=encoding, newline="") as f:
            f.write(content)
    except OSError as e:
        raise OutputError(f"Failed to write {mode}: {e}") from e

    logger.info("Wrote %s results to %s", mode, config.output_file)
    return config.output_file
