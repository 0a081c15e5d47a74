"""
Cache Store

Holds the current catalog snapshot and EPG index. Both are replaced by
reference on commit and never edited in place, so readers always see a
complete value without waiting on a refresh.
"""
import logging
from collections.abc import Iterable
from datetime import datetime

from tvcatalog.services.catalog_types import CatalogSnapshot, Channel, EPGIndex, Program
from tvcatalog.services.epg_ingestor import EPGIngestor, match_guide_id
from tvcatalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

EMPTY_SNAPSHOT = CatalogSnapshot()
EMPTY_EPG_INDEX = EPGIndex()


class CacheStore:
    """In-memory holder for the latest committed catalog and guide data."""

    def __init__(self):
        self._snapshot: CatalogSnapshot = EMPTY_SNAPSHOT
        self._epg_index: EPGIndex = EMPTY_EPG_INDEX

    def get_cached_data(self) -> CatalogSnapshot:
        return self._snapshot

    def get_epg_index(self) -> EPGIndex:
        return self._epg_index

    def commit_snapshot(self, snapshot: CatalogSnapshot) -> None:
        previous = self._snapshot
        self._snapshot = snapshot
        logger.info(
            "Catalog committed: %s channels (previous: %s)",
            len(snapshot.channels),
            len(previous.channels),
        )

    def commit_epg_index(self, index: EPGIndex) -> None:
        self._epg_index = index
        logger.info(
            "EPG index committed: %s channels, %s programs, expires %s",
            len(index.programs),
            index.program_count,
            index.expires_at.isoformat() if index.expires_at else "never",
        )

    def lookup_programs(self, guide_id: str) -> tuple[Program, ...]:
        """Programs for a guide id (fuzzy-matched), ordered by start."""
        index = self._epg_index
        resolved = match_guide_id(index, guide_id)
        if resolved is None:
            return ()
        return index.programs.get(resolved, ())

    def current_program(self, guide_id: str, now: datetime | None = None) -> Program | None:
        """The program airing at `now` on a channel, if any."""
        now = now or utc_now()
        for program in self.lookup_programs(guide_id):
            if program.is_airing(now):
                return program
            if program.start > now:
                break
        return None

    def check_missing_epg(self, channels: Iterable[Channel]) -> list[Channel]:
        return EPGIngestor.check_missing_epg(self._epg_index, channels)
