"""
Error hierarchy for the proxy speed test.

Configuration errors abort the run before any benchmarking traffic,
fetch errors only skip one config source, dial errors are folded into
failed probe samples, and output errors surface after the console
report has been printed.
"""

from typing import Optional


class SpeedtestError(Exception):
    """Base error for all speed test errors."""

    message: str = "Speed test failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


class ConfigError(SpeedtestError, ValueError):
    """Invalid configuration source, flag or pattern."""

    message = "Invalid configuration"


class UnsupportedProxyError(ConfigError):
    """A selected proxy has a type that is neither testable nor logical."""

    message = "Unsupported proxy type"


class FetchError(SpeedtestError):
    """A configuration source could not be fetched or read."""

    message = "Failed to fetch configuration"


class DialError(SpeedtestError, ConnectionError):
    """A proxy handle could not open a tunnel to the target."""

    message = "Failed to dial through proxy"


class OutputError(SpeedtestError):
    """The result file could not be written."""

    message = "Failed to write output"
