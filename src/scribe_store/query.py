"""Filtering, ordering and tag/folder derivation over a set of notes.

Backends return notes in no particular order; everything a caller sees as a
listing passes through here.
"""
import datetime
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from scribe_store.models.schema import (
    Folder,
    Note,
    NoteFilter,
    StoreStats,
    TagSummary,
)

logger = logging.getLogger(__name__)


def matches(note: Note, note_filter: NoteFilter) -> bool:
    """True if ``note`` satisfies every active field of ``note_filter``."""
    if note_filter.query:
        needle = note_filter.query.lower()
        if needle not in note.title.lower() and needle not in note.content.lower():
            return False

    if note_filter.pinned is not None and note.pinned != note_filter.pinned:
        return False

    # ANY of the listed tags; an empty list does not constrain
    if note_filter.tags and not note.has_any_tag(note_filter.tags):
        return False

    if note_filter.folder_id is not None and note.folder_id != note_filter.folder_id:
        return False

    if note_filter.date_from is not None and note.updated_at < note_filter.date_from:
        return False
    if note_filter.date_to is not None and note.updated_at > note_filter.date_to:
        return False

    return True


def sort_notes(notes: Iterable[Note]) -> List[Note]:
    """Pinned notes first, then most recently updated first.

    Two stable passes: order by ``updated_at`` descending, then move pinned
    notes ahead without disturbing that order.
    """
    by_recency = sorted(notes, key=lambda n: n.updated_at, reverse=True)
    return sorted(by_recency, key=lambda n: not n.pinned)


def filter_notes(notes: Iterable[Note], note_filter: Optional[NoteFilter] = None) -> List[Note]:
    """Return the notes matching ``note_filter``, sorted for display."""
    if note_filter is None:
        note_filter = NoteFilter()
    selected = [note for note in notes if matches(note, note_filter)]
    logger.debug(f"Filter kept {len(selected)} notes ({note_filter.model_dump(exclude_none=True)})")
    return sort_notes(selected)


def derive_tags(notes: Iterable[Note]) -> List[TagSummary]:
    """Aggregate every distinct tag across ``notes``.

    Each tag counts once per note carrying it. Ranking is usage count
    descending, then the creation time of the earliest note carrying the tag,
    then the tag name.
    """
    counts: Dict[str, int] = {}
    first_seen: Dict[str, Tuple[datetime.datetime, int]] = {}

    for note in notes:
        order = (note.created_at, note.id)
        for name in set(note.tags):
            counts[name] = counts.get(name, 0) + 1
            if name not in first_seen or order < first_seen[name]:
                first_seen[name] = order

    ranked = sorted(
        counts,
        key=lambda name: (-counts[name], first_seen[name], name),
    )
    return [
        TagSummary(name=name, usage_count=counts[name], first_seen=first_seen[name][0])
        for name in ranked
    ]


def derive_folder_listing(folders: Iterable[Folder]) -> List[Folder]:
    """Folders sorted by name (case-insensitive), ties broken by id."""
    return sorted(folders, key=lambda f: (f.name.casefold(), f.id))


def compute_stats(notes: Iterable[Note], folders: Iterable[Folder]) -> StoreStats:
    """Count notes, folders, derived tags, pinned and encrypted notes."""
    notes = list(notes)
    return StoreStats(
        total_notes=len(notes),
        total_folders=len(list(folders)),
        total_tags=len({tag for note in notes for tag in note.tags}),
        pinned_notes=sum(1 for note in notes if note.pinned),
        encrypted_notes=sum(1 for note in notes if note.encrypted),
    )
