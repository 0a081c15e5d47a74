"""
Playlist Transformer

Turns an M3U playlist payload into an immutable CatalogSnapshot.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime

from tvcatalog.services.catalog_types import (
    CHANNEL_ID_PREFIX,
    FALLBACK_GENRE,
    CatalogSnapshot,
    Channel,
)
from tvcatalog.errors import ParseError
from tvcatalog.utils.file_operations import is_remote
from tvcatalog.utils.logging_helpers import sanitize_url
from tvcatalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

HEADER_TAG = "#EXTM3U"
ENTRY_TAG = "#EXTINF"
GROUP_TAG = "#EXTGRP:"
HEADER_EPG_KEYS = ("url-tvg", "x-tvg-url")

_ATTRIBUTE_RE = re.compile(r'([\w-]+)\s*=\s*"([^"]*)"')
_SLUG_RE = re.compile(r"[^a-z0-9]+")


@dataclass(slots=True)
class _PendingEntry:
    line_number: int
    attributes: dict[str, str]
    name: str
    group: str | None = None


def parse_attributes(text: str) -> dict[str, str]:
    """Extract key="value" pairs; keys are lower-cased."""
    return {key.lower(): value.strip() for key, value in _ATTRIBUTE_RE.findall(text)}


def split_extinf(line: str) -> tuple[str, str]:
    """
    Split an #EXTINF line into its attribute section and display name.

    The display name follows the first comma that is not inside a quoted
    attribute value.
    """
    body = line[len(ENTRY_TAG):].lstrip(":")
    in_quotes = False
    for position, char in enumerate(body):
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            return body[:position], body[position + 1:].strip()
    return body, ""


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = "".join(c for c in normalized if not unicodedata.combining(c))
    return _SLUG_RE.sub("-", ascii_text.lower()).strip("-")


def normalize_genre(value: str | None) -> str:
    label = (value or "").strip()
    return label or FALLBACK_GENRE


class PlaylistTransformer:
    """Parses M3U playlists into catalog snapshots."""

    def transform(
        self,
        raw_text: str,
        source_url: str = "",
        fetched_at: datetime | None = None
    ) -> CatalogSnapshot:
        """
        Parse a playlist payload

        Args:
            raw_text: Playlist text
            source_url: Where the payload came from (recorded on the snapshot)
            fetched_at: Snapshot timestamp, defaults to now (UTC)

        Returns:
            CatalogSnapshot with every well-formed entry

        Raises:
            ParseError: If the payload is empty or has no parseable entries
        """
        if not raw_text or not raw_text.strip():
            raise ParseError("Playlist payload is empty")

        lines = raw_text.lstrip("\ufeff").splitlines()
        epg_urls: list[str] = []
        channels: list[Channel] = []
        used_ids: dict[str, int] = {}
        pending: _PendingEntry | None = None
        skipped = 0

        first = next((line.strip() for line in lines if line.strip()), "")
        if not first.upper().startswith(HEADER_TAG):
            logger.warning("Playlist has no %s header, parsing entries anyway", HEADER_TAG)

        for line_number, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if not line:
                continue

            upper = line.upper()
            if upper.startswith(HEADER_TAG):
                epg_urls.extend(self._header_epg_urls(line, epg_urls))
                continue

            if upper.startswith(ENTRY_TAG):
                if pending is not None:
                    skipped += 1
                    logger.debug(
                        "Line %s: entry '%s' has no stream URL, skipping",
                        pending.line_number,
                        pending.name,
                    )
                attribute_text, name = split_extinf(line)
                pending = _PendingEntry(line_number, parse_attributes(attribute_text), name)
                continue

            if upper.startswith(GROUP_TAG):
                if pending is not None:
                    pending.group = line[len(GROUP_TAG):].strip()
                continue

            if line.startswith("#"):
                continue

            if pending is None:
                skipped += 1
                logger.debug("Line %s: stream URL without metadata, skipping", line_number)
                continue

            channel = self._build_channel(pending, line, used_ids)
            pending = None
            if channel is None:
                skipped += 1
                continue
            channels.append(channel)

        if pending is not None:
            skipped += 1
            logger.debug(
                "Line %s: entry '%s' has no stream URL, skipping",
                pending.line_number,
                pending.name,
            )

        if not channels:
            raise ParseError(f"Playlist contains no parseable entries ({skipped} malformed)")

        snapshot = CatalogSnapshot(
            channels=tuple(channels),
            epg_urls=tuple(epg_urls),
            fetched_at=fetched_at or utc_now(),
            source_url=source_url,
            skipped_entries=skipped,
        )

        if skipped:
            logger.warning("Skipped %s malformed playlist entries", skipped)
        logger.info(
            "Playlist parsed: %s channels, %s genres, %s guide URL(s) in header",
            len(snapshot.channels),
            len(snapshot.genres),
            len(snapshot.epg_urls),
        )
        return snapshot

    @staticmethod
    def _header_epg_urls(line: str, seen: list[str]) -> list[str]:
        attributes = parse_attributes(line)
        found: list[str] = []
        for key in HEADER_EPG_KEYS:
            for url in attributes.get(key, "").split(","):
                url = url.strip()
                if not url or url in seen or url in found:
                    continue
                if not is_remote(url):
                    logger.warning("Ignoring non-HTTP guide URL in playlist header: %s", sanitize_url(url))
                    continue
                found.append(url)
        return found

    @staticmethod
    def _build_channel(
        entry: _PendingEntry,
        stream_url: str,
        used_ids: dict[str, int]
    ) -> Channel | None:
        attributes = entry.attributes
        guide_id = attributes.get("tvg-id") or None
        name = entry.name or attributes.get("tvg-name") or guide_id or ""
        if not name:
            logger.debug("Line %s: entry has neither name nor guide id, skipping", entry.line_number)
            return None

        base_id = f"{CHANNEL_ID_PREFIX}|{guide_id or slugify(name) or name}"
        seen = used_ids.get(base_id, 0) + 1
        used_ids[base_id] = seen
        channel_id = base_id if seen == 1 else f"{base_id}-{seen}"

        return Channel(
            id=channel_id,
            name=name,
            stream_url=stream_url,
            logo_url=attributes.get("tvg-logo") or None,
            genre=normalize_genre(attributes.get("group-title") or entry.group),
            guide_id=guide_id,
        )
