"""
Immutable value types shared across the catalog pipeline.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType


FALLBACK_GENRE = "Other"
CHANNEL_ID_PREFIX = "tv"


@dataclass(frozen=True, slots=True)
class Channel:
    """A playable channel parsed from the playlist."""
    id: str
    name: str
    stream_url: str
    logo_url: str | None = None
    genre: str = FALLBACK_GENRE
    guide_id: str | None = None


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """Catalog state produced by one successful playlist refresh."""
    channels: tuple[Channel, ...] = ()
    epg_urls: tuple[str, ...] = ()
    fetched_at: datetime | None = None
    source_url: str = ""
    skipped_entries: int = 0

    @property
    def genres(self) -> list[str]:
        """Distinct genre labels in first-seen order."""
        return list(dict.fromkeys(channel.genre for channel in self.channels))

    @property
    def is_empty(self) -> bool:
        return self.fetched_at is None

    def age(self, now: datetime) -> timedelta | None:
        if self.fetched_at is None:
            return None
        return now - self.fetched_at


@dataclass(frozen=True, slots=True)
class Program:
    """A single guide slot for one channel."""
    channel_guide_id: str
    title: str
    start: datetime
    stop: datetime
    description: str | None = None
    category: str | None = None
    icon_url: str | None = None

    def is_airing(self, now: datetime) -> bool:
        return self.start <= now < self.stop


def _freeze(mapping: Mapping | None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True, slots=True)
class EPGIndex:
    """Per-channel program schedule merged from every guide source."""
    programs: Mapping[str, tuple[Program, ...]] = field(default_factory=dict)
    channel_names: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    aliases: Mapping[str, str] = field(default_factory=dict)
    sources: tuple[str, ...] = ()
    fetched_at: datetime | None = None
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "programs", _freeze(self.programs))
        object.__setattr__(self, "channel_names", _freeze(self.channel_names))
        object.__setattr__(self, "aliases", _freeze(self.aliases))

    @property
    def is_empty(self) -> bool:
        return self.fetched_at is None

    @property
    def program_count(self) -> int:
        return sum(len(programs) for programs in self.programs.values())

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return True
        return now >= self.expires_at


__all__ = [
    "CHANNEL_ID_PREFIX",
    "FALLBACK_GENRE",
    "CatalogSnapshot",
    "Channel",
    "EPGIndex",
    "Program",
]
