"""
Proxy Registry Loader.

Builds the name -> ProxyHandle mapping from Clash configuration
documents: statically declared proxies plus proxies pulled from
file or http proxy providers.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dialers import build_dialer
from errors import ConfigError, FetchError
from models import ProxyHandle

logger = logging.getLogger(__name__)

RESERVED_PROVIDER_NAME = "default"
USER_AGENT = "clash.meta"
FETCH_TIMEOUT = 30


class RawConfig(BaseModel):
    """Top-level sections of a Clash document the registry reads."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    proxies: Optional[List[Dict[str, Any]]] = None
    proxy_providers: Optional[Dict[str, Dict[str, Any]]] = Field(
        default=None, alias="proxy-providers"
    )


class ProxyEntry(BaseModel):
    """Minimal schema of one proxy payload; other keys pass through."""
    model_config = ConfigDict(extra="allow")

    name: str
    type: str


def _parse_document(body: bytes) -> RawConfig:
    try:
        data = yaml.safe_load(body)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed configuration: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Malformed configuration: top level must be a mapping")
    try:
        return RawConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Malformed configuration: {e}") from e


def _make_handle(name: str, entry: Dict[str, Any]) -> ProxyHandle:
    proxy_type = entry["type"]
    return ProxyHandle(
        name=name,
        type=proxy_type,
        config=entry,
        dialer=build_dialer(proxy_type, entry),
    )


def _validate_entry(label: str, entry: Any) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        raise ConfigError(f"{label}: proxy must be a mapping")
    try:
        ProxyEntry.model_validate(entry)
    except ValidationError as e:
        raise ConfigError(f"{label}: {e}") from e
    return entry


async def fetch_source(url: str, session: aiohttp.ClientSession) -> bytes:
    """
    Download a configuration document.

    Raises:
        FetchError: If the URL is unreachable or answers with an error status.
    """
    try:
        async with session.get(url, headers={"User-Agent": USER_AGENT}) as response:
            response.raise_for_status()
            return await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e


def read_source(path: str) -> bytes:
    """
    Read a local configuration document.

    Raises:
        FetchError: If the file cannot be read.
    """
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FetchError(f"Failed to read {path}: {e}") from e


async def _load_provider(
    name: str, provider: Dict[str, Any], session: Optional[aiohttp.ClientSession]
) -> List[Dict[str, Any]]:
    provider_type = provider.get("type")
    try:
        if provider_type == "file":
            body = read_source(str(provider.get("path", "")))
        elif provider_type == "http":
            url = provider.get("url")
            if not url:
                raise ConfigError(f"proxy provider {name}: missing url")
            if session is None:
                timeout = aiohttp.ClientTimeout(total=FETCH_TIMEOUT)
                async with aiohttp.ClientSession(timeout=timeout) as own_session:
                    body = await fetch_source(str(url), own_session)
            else:
                body = await fetch_source(str(url), session)
        else:
            raise ConfigError(f"proxy provider {name}: unsupported type {provider_type!r}")
    except FetchError as e:
        raise ConfigError(f"initial proxy provider {name} error: {e}") from e

    document = _parse_document(body)
    return document.proxies or []


async def load_registry(
    body: bytes, session: Optional[aiohttp.ClientSession] = None
) -> Dict[str, ProxyHandle]:
    """
    Parse one Clash document into a registry.

    Args:
        body: Raw YAML document.
        session: Optional HTTP session used for http proxy providers.

    Returns:
        Mapping of display name to ProxyHandle. Provider proxies are
        keyed as "[provider] name".

    Raises:
        ConfigError: On malformed documents, duplicate names, the reserved
            provider name or a provider that cannot be initialized.
    """
    raw = _parse_document(body)
    registry: Dict[str, ProxyHandle] = {}

    for i, entry in enumerate(raw.proxies or []):
        entry = _validate_entry(f"proxy {i}", entry)
        name = entry["name"]
        if name in registry:
            raise ConfigError(f"proxy {name} is the duplicate name")
        registry[name] = _make_handle(name, entry)

    for provider_name, provider in (raw.proxy_providers or {}).items():
        if provider_name == RESERVED_PROVIDER_NAME:
            raise ConfigError(f"can not defined a provider called `{RESERVED_PROVIDER_NAME}`")
        entries = await _load_provider(provider_name, provider, session)
        for i, entry in enumerate(entries):
            entry = _validate_entry(f"provider {provider_name} proxy {i}", entry)
            key = f"[{provider_name}] {entry['name']}"
            # payload name matches the registry key
            registry[key] = _make_handle(key, dict(entry, name=key))
        logger.info("Loaded %d proxies from provider %s", len(entries), provider_name)

    return registry


async def load_sources(
    sources: Iterable[str], session: aiohttp.ClientSession
) -> Dict[str, ProxyHandle]:
    """
    Load and merge registries from local paths and http(s) URLs.

    Unreachable or unreadable sources are skipped with a warning. The
    first source declaring a name wins.

    Raises:
        ConfigError: If no source is given or a fetched document is invalid.
    """
    sources = list(sources)
    if not sources:
        raise ConfigError("Please specify the configuration file")

    merged: Dict[str, ProxyHandle] = {}
    for source in sources:
        try:
            if source.startswith("http"):
                body = await fetch_source(source, session)
            else:
                body = read_source(source)
        except FetchError as e:
            logger.warning("%s", e)
            continue

        registry = await load_registry(body, session)
        for name, handle in registry.items():
            merged.setdefault(name, handle)
        logger.info("Loaded %d proxies from %s", len(registry), source)

    return merged
