"""
Speed Test Configuration.

Run configuration with environment variable defaults. Built once at
startup (CLI flags override the environment) and passed explicitly
to every component.
"""

import os
from dataclasses import dataclass
from typing import List

from errors import ConfigError

DEFAULT_LIVENESS_URL = "https://speed.cloudflare.com/__down?bytes=%d"
SIZE_PLACEHOLDER = "%d"

SORT_FIELDS = ("", "b", "bandwidth", "t", "ttfb")
OUTPUT_MODES = ("", "csv", "yaml")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BenchmarkConfig:
    """Immutable configuration for one speed test run."""

    # Sources
    config_paths: str = os.getenv("SPEEDTEST_CONFIG", "")
    liveness_url: str = os.getenv("SPEEDTEST_LIVENESS_URL", DEFAULT_LIVENESS_URL)

    # Selection
    filter_regex: str = os.getenv("SPEEDTEST_FILTER", ".*")
    exclude_regex: str = os.getenv("SPEEDTEST_EXCLUDE", "")

    # Measurement
    download_size_mb: int = int(os.getenv("SPEEDTEST_SIZE", "100"))
    timeout_s: float = float(os.getenv("SPEEDTEST_TIMEOUT", "5"))
    concurrent: int = int(os.getenv("SPEEDTEST_CONCURRENT", "4"))

    # Reporting
    sort_field: str = os.getenv("SPEEDTEST_SORT", "b")
    output: str = os.getenv("SPEEDTEST_OUTPUT", "")
    use_quality_filter: bool = _env_bool("SPEEDTEST_QUALITY_FILTER")
    max_latency_ms: float = float(os.getenv("SPEEDTEST_MAX_LATENCY", "2000"))
    min_bandwidth_mbps: float = float(os.getenv("SPEEDTEST_MIN_BANDWIDTH", "2"))
    output_file: str = os.getenv("SPEEDTEST_OUTPUT_FILE", "proxies_filtered.yaml")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "")

    def __post_init__(self):
        if self.liveness_url.count(SIZE_PLACEHOLDER) != 1:
            raise ConfigError(
                f"Liveness URL must contain exactly one {SIZE_PLACEHOLDER} placeholder: {self.liveness_url}"
            )
        if self.sort_field.lower() not in SORT_FIELDS:
            raise ConfigError(f"Unsupported sort field: {self.sort_field}")
        if self.output.lower() not in OUTPUT_MODES:
            raise ConfigError(f"Unsupported output mode: {self.output}")
        if self.download_size_mb < 0:
            raise ConfigError(f"Download size must not be negative: {self.download_size_mb}")
        if self.timeout_s <= 0:
            raise ConfigError(f"Timeout must be positive: {self.timeout_s}")

    @property
    def sources(self) -> List[str]:
        """Config sources from the comma-separated list."""
        return [s.strip() for s in self.config_paths.split(",") if s.strip()]

    @property
    def download_size_bytes(self) -> int:
        return self.download_size_mb * 1024 * 1024

    @property
    def min_bandwidth_bytes(self) -> float:
        return self.min_bandwidth_mbps * 1024 * 1024

    def liveness_url_for(self, size: int) -> str:
        """Substitute the byte size into the liveness URL template."""
        return self.liveness_url.replace(SIZE_PLACEHOLDER, str(size), 1)
