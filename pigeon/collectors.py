"""Source collectors and post-collection transforms."""

import asyncio
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import requests

from pigeon.models import CollectedBatch

logger = logging.getLogger(__name__)

_ATOM_NS = "{http://www.w3.org/2005/Atom}"
_RSS1_NS = "{http://purl.org/rss/1.0/}"
_RDF_NS = "{http://www.w3.org/1999/02/22-rdf-syntax-ns#}"
_DC_NS = "{http://purl.org/dc/elements/1.1/}"
_DEFAULT_TIMEOUT_SEC = 30
_USER_AGENT = "pigeon-collector/0.1"


class CollectorError(Exception):
    """Raised when a source cannot be fetched or parsed."""


class Collector(ABC):
    """Fetches raw items from one configured source."""

    @abstractmethod
    async def collect(self, source: str, options: dict[str, Any]) -> CollectedBatch:
        ...


def _text(element: ET.Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def parse_feed(xml_text: str) -> list[dict[str, str]]:
    """Parse RSS 2.0 <item>, RSS 1.0 (RDF) <item> or Atom <entry> elements into flat dicts."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise CollectorError(f"Invalid feed XML: {exc}") from exc

    items: list[dict[str, str]] = []
    for item in root.iter("item"):
        items.append({
            "title": _text(item.find("title")),
            "link": _text(item.find("link")),
            "description": _text(item.find("description")),
            "guid": _text(item.find("guid")),
            "pub_date": _text(item.find("pubDate")),
        })
    for item in root.iter(f"{_RSS1_NS}item"):
        items.append({
            "title": _text(item.find(f"{_RSS1_NS}title")),
            "link": _text(item.find(f"{_RSS1_NS}link")),
            "description": _text(item.find(f"{_RSS1_NS}description")),
            "guid": item.get(f"{_RDF_NS}about", ""),
            "pub_date": _text(item.find(f"{_DC_NS}date")),
        })
    for entry in root.iter(f"{_ATOM_NS}entry"):
        link = entry.find(f"{_ATOM_NS}link")
        items.append({
            "title": _text(entry.find(f"{_ATOM_NS}title")),
            "link": link.get("href", "") if link is not None else "",
            "description": _text(entry.find(f"{_ATOM_NS}summary")) or _text(entry.find(f"{_ATOM_NS}content")),
            "guid": _text(entry.find(f"{_ATOM_NS}id")),
            "pub_date": _text(entry.find(f"{_ATOM_NS}updated")),
        })
    return items


class SimpleRSSCollector(Collector):
    """Reads an RSS 2.0, RSS 1.0 (RDF) or Atom feed over HTTP.

    Options:
        limit: keep only the first N items.
        timeout_sec: HTTP timeout (default 30).
    """

    def _fetch(self, source: str, timeout_sec: float) -> str:
        try:
            response = requests.get(source, timeout=timeout_sec, headers={"User-Agent": _USER_AGENT})
            response.raise_for_status()
        except requests.RequestException as exc:
            raise CollectorError(f"Failed to fetch {source}: {exc}") from exc
        return response.text

    async def collect(self, source: str, options: dict[str, Any]) -> CollectedBatch:
        timeout_sec = float(options.get("timeout_sec", _DEFAULT_TIMEOUT_SEC))
        xml_text = await asyncio.to_thread(self._fetch, source, timeout_sec)
        items = parse_feed(xml_text)
        limit = options.get("limit")
        if limit is not None:
            items = items[: int(limit)]
        if not items:
            logger.warning("No RSS, RDF or Atom items found in %s", source)
        logger.info("Collected %d items from %s", len(items), source)
        return items


# --- Transforms ---

Transform = Callable[[CollectedBatch], CollectedBatch]

VOLATILE_FIELDS = frozenset({"pub_date", "fetched_at", "updated"})


def identity(batch: CollectedBatch) -> CollectedBatch:
    return batch


def _strip_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        return value
    parts = urlsplit(value)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _map_strings(value: Any, fn: Callable[[str], str]) -> Any:
    if isinstance(value, str):
        return fn(value)
    if isinstance(value, dict):
        return {k: _map_strings(v, fn) for k, v in value.items()}
    if isinstance(value, list):
        return [_map_strings(v, fn) for v in value]
    return value


def strip_query_strings(batch: CollectedBatch) -> CollectedBatch:
    """Remove query strings and fragments from every URL-valued string, at any depth."""
    return [_map_strings(item, _strip_url) for item in batch]


def drop_volatile_fields(batch: CollectedBatch) -> CollectedBatch:
    """Drop top-level item fields that change between fetches of the same content."""
    return [
        {k: v for k, v in item.items() if k not in VOLATILE_FIELDS} if isinstance(item, dict) else item
        for item in batch
    ]


COLLECTORS: dict[str, type[Collector]] = {
    "simple-rss": SimpleRSSCollector,
}

TRANSFORMS: dict[str, Transform] = {
    "identity": identity,
    "strip-query-strings": strip_query_strings,
    "drop-volatile-fields": drop_volatile_fields,
}
