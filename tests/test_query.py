"""Tests for filtering, ordering and tag derivation."""
import datetime
from datetime import timezone

from scribe_store.models.schema import Folder, Note, NoteFilter
from scribe_store.query import (
    compute_stats,
    derive_folder_listing,
    derive_tags,
    filter_notes,
    matches,
    sort_notes,
)


def ts(day: int, hour: int = 12) -> datetime.datetime:
    return datetime.datetime(2024, 1, day, hour, tzinfo=timezone.utc)


def make_note(note_id, title="Note", content="", day=1, **kwargs) -> Note:
    created = kwargs.pop("created_at", ts(day))
    return Note(
        id=note_id,
        title=title,
        content=content,
        created_at=created,
        updated_at=kwargs.pop("updated_at", created),
        **kwargs,
    )


class TestMatches:
    """Tests for single-note filter matching."""

    def test_query_is_case_insensitive_on_title_or_content(self):
        note = make_note(1, title="Shopping List", content="Buy MILK")
        assert matches(note, NoteFilter(query="shopping"))
        assert matches(note, NoteFilter(query="milk"))
        assert not matches(note, NoteFilter(query="bread"))

    def test_tags_match_any(self):
        note = make_note(1, tags=["work"])
        assert matches(note, NoteFilter(tags=["home", "work"]))
        assert not matches(note, NoteFilter(tags=["home"]))

    def test_empty_tag_list_does_not_constrain(self):
        assert matches(make_note(1), NoteFilter(tags=[]))

    def test_fields_combine_with_and(self):
        note = make_note(1, title="Plan", pinned=True, tags=["work"], folder_id=5)
        assert matches(note, NoteFilter(query="plan", pinned=True, tags=["work"], folder_id=5))
        assert not matches(note, NoteFilter(query="plan", pinned=False))
        assert not matches(note, NoteFilter(tags=["work"], folder_id=6))

    def test_pinned_false_matches_unpinned_only(self):
        assert matches(make_note(1), NoteFilter(pinned=False))
        assert not matches(make_note(2, pinned=True), NoteFilter(pinned=False))

    def test_date_range_is_inclusive(self):
        note = make_note(1, updated_at=ts(10))
        assert matches(note, NoteFilter(date_from=ts(10), date_to=ts(10)))
        assert not matches(note, NoteFilter(date_from=ts(11)))
        assert not matches(note, NoteFilter(date_to=ts(9)))


class TestOrdering:
    """Tests for listing order."""

    def test_pinned_first_then_newest(self):
        old_pinned = make_note(1, day=1, pinned=True)
        new_pinned = make_note(2, day=3, pinned=True)
        old = make_note(3, day=2)
        new = make_note(4, day=4)
        ordered = sort_notes([old, old_pinned, new, new_pinned])
        assert [n.id for n in ordered] == [2, 1, 4, 3]

    def test_filter_notes_without_spec_returns_everything_sorted(self):
        notes = [make_note(1, day=1), make_note(2, day=2)]
        assert [n.id for n in filter_notes(notes)] == [2, 1]


class TestDeriveTags:
    """Tests for tag derivation and ranking."""

    def test_counts_and_ranking(self):
        notes = [
            make_note(1, day=1, tags=["b", "a"]),
            make_note(2, day=2, tags=["a", "c"]),
            make_note(3, day=3, tags=["c", "a"]),
        ]
        tags = derive_tags(notes)
        assert [(t.name, t.usage_count) for t in tags] == [("a", 3), ("c", 2), ("b", 1)]

    def test_ties_broken_by_first_seen_then_name(self):
        notes = [
            make_note(1, day=2, tags=["zeta"]),
            make_note(2, day=1, tags=["omega"]),
            make_note(3, day=2, tags=["alpha"]),
        ]
        tags = derive_tags(notes)
        # omega appeared first; zeta and alpha share a day, note 1 came first
        assert [t.name for t in tags] == ["omega", "zeta", "alpha"]
        assert tags[0].first_seen == ts(1)

    def test_no_notes_no_tags(self):
        assert derive_tags([]) == []


class TestFoldersAndStats:
    """Tests for folder listing and store statistics."""

    def test_folder_listing_sorted_case_insensitively(self):
        folders = [
            Folder(id=3, name="work"),
            Folder(id=1, name="Archive"),
            Folder(id=2, name="Work"),
        ]
        assert [f.id for f in derive_folder_listing(folders)] == [1, 2, 3]

    def test_compute_stats(self):
        notes = [
            make_note(1, tags=["a", "b"], pinned=True),
            make_note(2, tags=["b"], encrypted=True),
            make_note(3),
        ]
        stats = compute_stats(notes, [Folder(id=1, name="General")])
        assert stats.total_notes == 3
        assert stats.total_folders == 1
        assert stats.total_tags == 2
        assert stats.pinned_notes == 1
        assert stats.encrypted_notes == 1
