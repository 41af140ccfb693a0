"""Selection of registry names to benchmark."""

import re
import logging
from typing import Iterable, List

from errors import ConfigError

logger = logging.getLogger(__name__)


def _compile(pattern: str, label: str) -> "re.Pattern[str]":
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid {label} pattern {pattern!r}: {e}") from e


def filter_names(include: str, exclude: str, names: Iterable[str]) -> List[str]:
    """
    Select names matching include and not matching exclude.

    Args:
        include: Regular expression a name must match (unanchored search).
        exclude: Regular expression that removes a name; empty excludes nothing.
        names: Registry names to select from.

    Returns:
        Selected names in lexicographic order.

    Raises:
        ConfigError: If either pattern fails to compile.
    """
    include_re = _compile(include, "filter")
    exclude_re = _compile(exclude, "exclude") if exclude else None

    selected = sorted(
        name
        for name in names
        if include_re.search(name) and not (exclude_re and exclude_re.search(name))
    )
    logger.debug("Filter %r / %r selected %d proxies", include, exclude, len(selected))
    return selected
