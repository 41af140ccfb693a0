"""
Speed Test Unit Tests.

Tests for configuration, name filtering, formatting, sorting
and the output writers.
"""

import io

import pytest
import yaml
from rich.console import Console

from config import BenchmarkConfig
from errors import ConfigError, OutputError
from filters import filter_names
from models import BandwidthLevel, ProxyClass, ProxyHandle, Result
from report import (
    Reporter,
    passes_quality,
    render_csv,
    render_yaml,
    render_yaml_filtered,
    sort_results,
    write_output,
)
from utils import (
    MB,
    bandwidth_level,
    format_bandwidth,
    format_bandwidth_suffix,
    format_milliseconds,
    format_name,
)


def make_handle(name, proxy_type="ss", **extra):
    config = {"name": name, "type": proxy_type, "server": "1.2.3.4", "port": 8388}
    config.update(extra)
    return ProxyHandle(name=name, type=proxy_type, config=config)


@pytest.fixture
def registry():
    return {
        "P1": make_handle("P1"),
        "P2": make_handle("P2", "vmess"),
        "Auto": make_handle("Auto", "url-test"),
        "Spare": make_handle("Spare", "trojan"),
    }


class TestConfig:
    """Tests for BenchmarkConfig validation and derived values."""

    def test_defaults_are_valid(self):
        """Test that the default configuration validates."""
        config = BenchmarkConfig()
        assert config.liveness_url.count("%d") == 1

    def test_unsupported_sort_field_raises(self):
        """Test that an unknown sort field is a configuration error."""
        with pytest.raises(ConfigError, match="Unsupported sort field"):
            BenchmarkConfig(sort_field="latency")

    def test_unsupported_output_raises(self):
        """Test that an unknown output mode is a configuration error."""
        with pytest.raises(ConfigError, match="Unsupported output mode"):
            BenchmarkConfig(output="json")

    def test_liveness_url_needs_placeholder(self):
        """Test that the liveness template needs one size placeholder."""
        with pytest.raises(ConfigError, match="placeholder"):
            BenchmarkConfig(liveness_url="https://example.com/file.bin")

    def test_liveness_url_for(self):
        """Test substituting the chunk size into the liveness URL."""
        config = BenchmarkConfig(liveness_url="https://example.com/__down?bytes=%d")
        assert config.liveness_url_for(1024) == "https://example.com/__down?bytes=1024"

    def test_sources_split(self):
        """Test comma-separated config sources."""
        config = BenchmarkConfig(config_paths="a.yaml, https://x/sub ,,")
        assert config.sources == ["a.yaml", "https://x/sub"]

    def test_sizes(self):
        """Test derived byte sizes."""
        config = BenchmarkConfig(download_size_mb=10, min_bandwidth_mbps=2)
        assert config.download_size_bytes == 10 * 1024 * 1024
        assert config.min_bandwidth_bytes == 2 * 1024 * 1024

    def test_config_is_immutable(self):
        """Test that the run configuration cannot be changed."""
        config = BenchmarkConfig()
        with pytest.raises(AttributeError):
            config.concurrent = 8


class TestFilterNames:
    """Tests for include/exclude name selection."""

    def test_include_and_exclude(self):
        """Test the include AND NOT exclude intersection."""
        assert filter_names("^A", "2$", {"A-1", "B-1", "A-2"}) == ["A-1"]

    def test_empty_exclude_keeps_all(self):
        """Test that an empty exclude pattern excludes nothing."""
        assert filter_names(".*", "", ["b", "a", "c"]) == ["a", "b", "c"]

    def test_unanchored_search(self):
        """Test that patterns match anywhere in the name."""
        assert filter_names("HK", "", ["[sub] HK 01", "US 01"]) == ["[sub] HK 01"]

    def test_invalid_pattern_raises(self):
        """Test that a bad regex is a configuration error."""
        with pytest.raises(ConfigError, match="Invalid filter pattern"):
            filter_names("(", "", ["a"])
        with pytest.raises(ConfigError, match="Invalid exclude pattern"):
            filter_names(".*", "[", ["a"])


class TestProxyHandle:
    """Tests for proxy classification."""

    def test_testable_types(self):
        """Test that tunnel protocols are testable."""
        for proxy_type in ("ss", "vmess", "trojan", "socks5", "http", "hysteria2"):
            assert make_handle("x", proxy_type).proxy_class == ProxyClass.TESTABLE

    def test_logical_types(self):
        """Test that routing constructs are skipped."""
        for proxy_type in ("direct", "reject", "select", "url-test", "load-balance"):
            assert make_handle("x", proxy_type).proxy_class == ProxyClass.LOGICAL

    def test_unknown_type(self):
        """Test that unknown types are unsupported."""
        assert make_handle("x", "carrier-pigeon").proxy_class == ProxyClass.UNSUPPORTED


class TestFormatting:
    """Tests for display formatting helpers."""

    def test_format_name(self):
        """Test emoji stripping and whitespace collapsing."""
        assert format_name("\U0001F1FA\U0001F1F8  US   Node \U0001F600") == "US Node"
        assert format_name("plain") == "plain"

    def test_bandwidth_not_available(self):
        """Test that zero and negative bandwidth render as N/A."""
        assert format_bandwidth(0) == "N/A"
        assert format_bandwidth(-1) == "N/A"

    def test_bandwidth_units(self):
        """Test unit selection."""
        assert format_bandwidth(512) == "512.00B/s"
        assert format_bandwidth(1536) == "1.50KB/s"
        assert format_bandwidth(25 * MB) == "25.00MB/s"
        assert format_bandwidth(2 * 1024 * MB) == "2.00GB/s"
        assert format_bandwidth(3 * 1024 * 1024 * MB) == "3.00TB/s"

    def test_format_milliseconds(self):
        """Test TTFB rendering."""
        assert format_milliseconds(0.25) == "250.00ms"
        assert format_milliseconds(0) == "N/A"
        assert format_milliseconds(-1) == "N/A"

    def test_bandwidth_suffix(self):
        """Test name tags used by the quality filter."""
        assert format_bandwidth_suffix(12.7 * MB) == "-12MBPS"
        assert format_bandwidth_suffix(1024 * MB) == "-1GBPS"
        assert format_bandwidth_suffix(0.5 * MB) == "-0MBPS"

    def test_bandwidth_level(self):
        """Test colour hint thresholds."""
        assert bandwidth_level(0) == BandwidthLevel.LOW
        assert bandwidth_level(5 * MB) == BandwidthLevel.NORMAL
        assert bandwidth_level(10 * MB) == BandwidthLevel.NORMAL
        assert bandwidth_level(11 * MB) == BandwidthLevel.HIGH


class TestSorting:
    """Tests for result ordering."""

    results = [
        Result("slow", 1 * MB, 0.5),
        Result("fast", 30 * MB, 0.2),
        Result("mid", 10 * MB, 0.1),
    ]

    def test_sort_by_bandwidth(self):
        """Test bandwidth sorts descending."""
        names = [r.name for r in sort_results(self.results, "b")]
        assert names == ["fast", "mid", "slow"]
        assert sort_results(self.results, "bandwidth") == sort_results(self.results, "b")

    def test_sort_by_ttfb(self):
        """Test TTFB sorts ascending."""
        names = [r.name for r in sort_results(self.results, "ttfb")]
        assert names == ["mid", "fast", "slow"]

    def test_empty_field_keeps_order(self):
        """Test that an empty sort field disables sorting."""
        assert sort_results(self.results, "") == self.results

    def test_unknown_field_raises(self):
        """Test that an unknown sort field is fatal, not a no-op."""
        with pytest.raises(ConfigError, match="Unsupported sort field"):
            sort_results(self.results, "name")


class TestQualityFilter:
    """Tests for the strict quality thresholds."""

    def test_passing_result(self):
        """Test a result above both thresholds."""
        assert passes_quality(Result("a", 3 * MB, 0.1), 2 * MB, 2000) is True

    def test_bandwidth_boundary_excluded(self):
        """Test that bandwidth equal to the minimum is excluded."""
        assert passes_quality(Result("a", 2 * MB, 0.1), 2 * MB, 2000) is False

    def test_zero_ttfb_excluded(self):
        """Test that a TTFB below one millisecond is excluded."""
        assert passes_quality(Result("a", 3 * MB, 0.0004), 2 * MB, 2000) is False

    def test_latency_boundary_excluded(self):
        """Test that TTFB equal to the maximum is excluded."""
        assert passes_quality(Result("a", 3 * MB, 2.0), 2 * MB, 2000) is False


class TestOutput:
    """Tests for CSV and YAML rendering."""

    def test_render_csv(self):
        """Test CSV rows keep result order and units."""
        content = render_csv([Result("P1", 25 * MB, 0.1234), Result("P2", 0.0, 0.0)])
        lines = content.splitlines()
        assert lines[0] == "Proxy,Bandwidth (MB/s),TTFB (ms)"
        assert lines[1] == "P1,25.00,123"
        assert lines[2] == "P2,0.00,0"

    def test_render_yaml_unfiltered(self, registry):
        """Test payloads are emitted as a sequence in result order."""
        results = [Result("P2", 5 * MB, 0.1), Result("P1", 1 * MB, 0.1)]
        data = yaml.safe_load(render_yaml(results, registry))
        assert [p["name"] for p in data] == ["P2", "P1"]
        assert data[0] == registry["P2"].config

    def test_render_yaml_filtered(self, registry):
        """Test tagging passing proxies and passing through untested ones."""
        results = [Result("P1", 25.5 * MB, 0.1), Result("P2", 0.0, 0.0)]
        data = yaml.safe_load(render_yaml_filtered(results, registry, 2, 2000))

        names = [p["name"] for p in data["proxies"]]
        assert names == ["P1-25MBPS", "Auto", "Spare"]
        # the registry payload is left untouched
        assert registry["P1"].config["name"] == "P1"

    def test_write_csv_with_bom(self, tmp_path):
        """Test CSV output starts with a UTF-8 byte-order mark."""
        path = tmp_path / "result.csv"
        config = BenchmarkConfig(output="csv", output_file=str(path))
        assert write_output(config, [Result("节点", 1 * MB, 0.05)], {}) == str(path)

        raw = path.read_bytes()
        assert raw.startswith(b"\xef\xbb\xbf")
        assert "节点,1.00,50" in raw.decode("utf-8-sig")

    def test_write_yaml_filtered(self, tmp_path, registry):
        """Test the quality-filtered YAML mode is selected by the flag."""
        path = tmp_path / "out.yaml"
        config = BenchmarkConfig(output="YAML", use_quality_filter=True, output_file=str(path))
        write_output(config, [Result("P1", 3 * MB, 0.1)], registry)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["proxies"][0]["name"] == "P1-3MBPS"

    def test_no_output_mode(self, tmp_path):
        """Test that nothing is written without an output mode."""
        config = BenchmarkConfig(output="", output_file=str(tmp_path / "x"))
        assert write_output(config, [], {}) is None
        assert not (tmp_path / "x").exists()

    def test_unwritable_path_raises(self, tmp_path):
        """Test that an unwritable output path raises OutputError."""
        config = BenchmarkConfig(output="csv", output_file=str(tmp_path / "missing" / "r.csv"))
        with pytest.raises(OutputError):
            write_output(config, [Result("P1", 1.0, 0.1)], {})


class TestReporter:
    """Tests for console output."""

    def test_rows_and_table(self):
        """Test console rendering including bracketed provider names."""
        buffer = io.StringIO()
        reporter = Reporter(Console(file=buffer, width=200))
        results = [Result("[sub] HK 01", 12 * MB, 0.2), Result("dead", 0.0, 0.0)]

        reporter.print_header()
        for result in results:
            reporter.print_row(result)
        reporter.print_table(results, "b")

        output = buffer.getvalue()
        assert "[sub] HK 01" in output
        assert "12.00MB/s" in output
        assert "N/A" in output
        assert "sorted by bandwidth" in output
