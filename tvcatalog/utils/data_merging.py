"""
Data merging utilities

This module handles merging of programs and channel names from multiple guide sources.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, MutableMapping, Sequence
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tvcatalog.services.catalog_types import Program

logger = logging.getLogger(__name__)


def merge_programs(
    existing_programs: MutableMapping[tuple, Program],
    new_programs: Iterable[Program]
) -> tuple[MutableMapping[tuple, Program], int]:
    """
    Merge new programs into existing program dictionary.

    The first program seen for a key wins; later duplicates are dropped.

    Args:
        existing_programs: Dictionary of existing programs (program_key -> Program)
        new_programs: Iterable of new programs to merge

    Returns:
        Tuple of (updated_programs_dict, count_of_new_programs_added)
    """
    new_count = 0

    for program in new_programs:
        program_key = create_program_key(program)
        if program_key not in existing_programs:
            existing_programs[program_key] = program
            new_count += 1
        else:
            logger.debug(
                "Skipping duplicate program: %s on %s",
                program.title,
                program.channel_guide_id,
            )

    return existing_programs, new_count


def create_program_key(program: Program) -> tuple:
    """
    Create the de-duplication key for a program: its start instant and title.

    Args:
        program: Program instance

    Returns:
        Key tuple
    """
    return (program.start, program.title)


def merge_channel_names(
    existing_names: MutableMapping[str, list[str]],
    guide_id: str,
    names: Sequence[str]
) -> None:
    """Append display names for a guide channel, skipping ones already recorded."""
    current = existing_names.setdefault(guide_id, [])
    for name in names:
        if name and name not in current:
            current.append(name)


def cap_programs(programs: Sequence[Program], limit: int, now: datetime) -> list[Program]:
    """
    Trim a start-ordered program list to at most `limit` entries.

    Programs still airing or upcoming (stop > now) are kept first; finished
    programs fill the remaining room, most recent first. When upcoming
    programs alone exceed the limit, the earliest-starting ones are kept.

    Args:
        programs: Programs sorted ascending by start
        limit: Maximum number of programs to keep
        now: Reference instant separating past from present/future

    Returns:
        At most `limit` programs, sorted ascending by start
    """
    if len(programs) <= limit:
        return list(programs)

    current = [program for program in programs if program.stop > now]
    past = [program for program in programs if program.stop <= now]

    kept = current[:limit]
    room = limit - len(kept)
    if room > 0:
        kept = past[-room:] + kept

    kept.sort(key=lambda program: program.start)
    return kept
