"""
EPG Ingestor

Parses XMLTV guide payloads and merges them into a per-channel program index.
"""
from __future__ import annotations

import gzip
import logging
import re
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from lxml import etree # type: ignore

from tvcatalog.services.catalog_types import Channel, EPGIndex, Program
from tvcatalog.errors import ParseError
from tvcatalog.utils.data_merging import cap_programs, merge_channel_names, merge_programs
from tvcatalog.utils.timezone import DateFormatError, parse_xmltv_time, utc_now


logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")


def normalize_guide_id(value: str | None) -> str:
    """
    Reduce a guide identifier or channel name to a fuzzy matching key.

    Accents are stripped, case is folded and anything that is not a letter
    or digit is removed, so "Rai 1 HD", "rai1hd" and "RAI.1.HD" collide.
    """
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in normalized if not unicodedata.combining(c))
    return _NON_ALNUM_RE.sub("", stripped.casefold())


@dataclass(slots=True)
class ParsedGuide:
    """Channels and programs extracted from one XMLTV payload."""
    source_id: str
    channel_names: dict[str, list[str]] = field(default_factory=dict)
    programs: list[Program] = field(default_factory=list)
    skipped_programs: int = 0


def parse_xmltv(payload: bytes | str, source_id: str = "") -> ParsedGuide:
    """
    Parse one XMLTV document

    Args:
        payload: XML bytes (gzip-compressed payloads are accepted) or text
        source_id: Identifier used in logs

    Returns:
        ParsedGuide with every valid channel and programme record

    Raises:
        ParseError: If the payload is empty, not an XML document, or has
            neither channel nor programme records
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    if payload.startswith(b"\x1f\x8b"):
        try:
            payload = gzip.decompress(payload)
        except (OSError, EOFError) as e:
            raise ParseError(f"[{source_id}] Corrupt gzip payload: {e}") from e
    if not payload.strip():
        raise ParseError(f"[{source_id}] Guide payload is empty")

    parser = etree.XMLParser(recover=True, huge_tree=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(payload, parser=parser)
    except etree.XMLSyntaxError as e:
        raise ParseError(f"[{source_id}] XML parsing error: {e}") from e
    if root is None:
        raise ParseError(f"[{source_id}] Guide payload is not an XML document")

    logger.debug(f"  [{source_id}] XML document loaded (root tag: {root.tag})")

    guide = ParsedGuide(source_id=source_id)
    _parse_channels(root, guide)
    _parse_programs(root, guide)

    if not guide.channel_names and not guide.programs:
        raise ParseError(f"[{source_id}] No channels or programs found in guide (root tag: {root.tag})")

    logger.info(
        f"  [{source_id}] XMLTV parsing complete: {len(guide.channel_names)} channels, "
        f"{len(guide.programs)} programs ({guide.skipped_programs} skipped)"
    )
    return guide


def _parse_channels(root: etree._Element, guide: ParsedGuide) -> None:
    """Extract channel display names from XMLTV root element"""
    for channel in root.iter("channel"):
        guide_id = (channel.get("id") or "").strip()
        if not guide_id:
            logger.debug("Skipping channel with missing ID attribute")
            continue

        names = [
            element.text.strip()
            for element in channel.findall("display-name")
            if element.text and element.text.strip()
        ]
        merge_channel_names(guide.channel_names, guide_id, names or [guide_id])


def _parse_programs(root: etree._Element, guide: ParsedGuide) -> None:
    """Extract programs from XMLTV root element"""
    for programme in root.iter("programme"):
        program = _parse_single_program(programme)
        if program is None:
            guide.skipped_programs += 1
            continue
        guide.programs.append(program)


def _parse_single_program(programme: etree._Element) -> Optional[Program]:
    """Parse single programme element"""
    channel_id = (programme.get("channel") or "").strip()
    start_str = programme.get("start")
    stop_str = programme.get("stop")
    title = _get_text(programme, "title")

    if not channel_id or not start_str or not stop_str or title is None:
        return None

    try:
        start_time = parse_xmltv_time(start_str)
        stop_time = parse_xmltv_time(stop_str)
    except DateFormatError:
        return None

    if stop_time <= start_time:
        return None

    icon_url = None
    icon_elem = programme.find("icon")
    if icon_elem is not None:
        icon_url = icon_elem.get("src") or None

    return Program(
        channel_guide_id=channel_id,
        title=title,
        start=start_time,
        stop=stop_time,
        description=_get_text(programme, "desc"),
        category=_get_text(programme, "category"),
        icon_url=icon_url,
    )


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text or not child.text.strip():
        return default
    return child.text.strip()


def match_guide_id(index: EPGIndex, key: str | None) -> str | None:
    """
    Resolve a guide identifier or channel name to a key of `index.programs`.

    Tries an exact match first, then the fuzzy key built from guide ids and
    guide display names.
    """
    if not key:
        return None
    if key in index.programs:
        return key
    return index.aliases.get(normalize_guide_id(key))


def match_channel(index: EPGIndex, channel: Channel) -> str | None:
    """Resolve a playlist channel by its guide id, falling back to its name."""
    return match_guide_id(index, channel.guide_id) or match_guide_id(index, channel.name)


def _build_aliases(channel_names: dict[str, list[str]], guide_ids: Iterable[str]) -> dict[str, str]:
    aliases: dict[str, str] = {}
    known = list(dict.fromkeys(guide_ids))
    programs_ids = set(known)
    for guide_id in known:
        aliases.setdefault(normalize_guide_id(guide_id), guide_id)
    for guide_id, names in channel_names.items():
        if guide_id not in programs_ids:
            continue
        for name in names:
            aliases.setdefault(normalize_guide_id(name), guide_id)
    aliases.pop("", None)
    return aliases


class EPGIngestor:
    """Builds EPGIndex values from raw XMLTV payloads."""

    def __init__(self, max_programs_per_channel: int = 50, cache_expiry: timedelta = timedelta(days=1)):
        self.max_programs_per_channel = max_programs_per_channel
        self.cache_expiry = cache_expiry

    def ingest(
        self,
        payloads: Sequence[tuple[str, bytes | str]],
        now: datetime | None = None
    ) -> EPGIndex:
        """
        Parse and merge guide payloads

        Args:
            payloads: (source_id, payload) pairs, in priority order
            now: Reference instant for capping and expiry (defaults to now, UTC)

        Returns:
            A new EPGIndex

        Raises:
            ParseError: If no payload could be parsed
        """
        now = now or utc_now()
        guides: list[ParsedGuide] = []

        for source_id, payload in payloads:
            try:
                guides.append(parse_xmltv(payload, source_id))
            except ParseError as e:
                logger.error(f"Skipping guide source {source_id}: {e}")

        if not guides:
            raise ParseError(f"None of {len(payloads)} guide payload(s) could be parsed")

        return self.build_index(guides, now)

    def build_index(self, guides: Sequence[ParsedGuide], now: datetime) -> EPGIndex:
        """Merge parsed guides, de-duplicate, sort and cap per channel."""
        merged: dict[str, dict[tuple, Program]] = {}
        channel_names: dict[str, list[str]] = {}
        duplicates = 0

        for guide in guides:
            for guide_id, names in guide.channel_names.items():
                merge_channel_names(channel_names, guide_id, names)

            by_channel: dict[str, list[Program]] = {}
            for program in guide.programs:
                by_channel.setdefault(program.channel_guide_id, []).append(program)

            for guide_id, programs in by_channel.items():
                existing = merged.setdefault(guide_id, {})
                _, added = merge_programs(existing, programs)
                duplicates += len(programs) - added

        programs_by_channel: dict[str, tuple[Program, ...]] = {}
        trimmed = 0
        for guide_id, keyed in merged.items():
            ordered = sorted(keyed.values(), key=lambda program: program.start)
            capped = cap_programs(ordered, self.max_programs_per_channel, now)
            trimmed += len(ordered) - len(capped)
            programs_by_channel[guide_id] = tuple(capped)

        index = EPGIndex(
            programs=programs_by_channel,
            channel_names={guide_id: tuple(names) for guide_id, names in channel_names.items()},
            aliases=_build_aliases(channel_names, programs_by_channel),
            sources=tuple(guide.source_id for guide in guides),
            fetched_at=now,
            expires_at=now + self.cache_expiry,
        )

        logger.info(
            "EPG index built: %s channels with programs, %s programs "
            "(%s duplicates removed, %s trimmed by per-channel cap)",
            len(index.programs),
            index.program_count,
            duplicates,
            trimmed,
        )
        return index

    @staticmethod
    def check_missing_epg(index: EPGIndex, channels: Iterable[Channel]) -> list[Channel]:
        """
        Return the channels that have no programs in `index`.

        Channels are matched by guide id, then by name.
        Order of `channels` is preserved.
        """
        missing = []
        for channel in channels:
            guide_id = match_channel(index, channel)
            if guide_id is None or not index.programs.get(guide_id):
                missing.append(channel)

        if missing:
            logger.info("Channels without EPG data: %s", len(missing))
            for channel in missing:
                logger.debug("  %s (guide id: %s)", channel.name, channel.guide_id or "-")
        return missing
