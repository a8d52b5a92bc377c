"""
Integration tests for notes, cross references and study sessions.
"""

import pytest

from src.core.errors import InvalidArgumentError, NotFoundError, ParseError
from src.core.richtext import document_from_text
from src.navigation.types import SecurityItem


@pytest.fixture
def bookmark(bookmark_with_card):
    return bookmark_with_card[0]


class TestNotes:
    def test_add_note(self, services, bookmark):
        note = services.notes.add_note(
            bookmark.id, document_from_text("Patch to 2.4.1"), author="alice", is_private=True
        )
        assert note.urn == f"v2e::note::{note.id}"
        assert note.fsm_state == "draft"
        assert note.is_private is True

        latest = services.history.get_history(bookmark.id)[0]
        assert latest.action == "note_added"
        assert latest.new_value == f"Note ID: {note.id}"

    def test_lookups(self, services, bookmark):
        first = services.notes.add_note(bookmark.id, document_from_text("one"))
        second = services.notes.add_note(bookmark.id, document_from_text("two"))
        assert [n.id for n in services.notes.list_notes(bookmark.id)] == [first.id, second.id]
        assert services.notes.get_note(first.id).content == first.content
        assert services.notes.get_note_by_urn(second.urn).id == second.id
        with pytest.raises(NotFoundError):
            services.notes.get_note_by_urn("v2e::note::999")

    def test_invalid_bodies(self, services, bookmark):
        with pytest.raises(ParseError):
            services.notes.add_note(bookmark.id, "not json")
        with pytest.raises(InvalidArgumentError):
            services.notes.add_note(bookmark.id, '{"type": "doc", "content": [{"type": "iframe"}]}')
        assert services.notes.list_notes(bookmark.id) == []

    def test_missing_bookmark(self, services):
        with pytest.raises(NotFoundError):
            services.notes.add_note(404, "")

    def test_update_and_delete(self, services, bookmark):
        note = services.notes.add_note(bookmark.id, document_from_text("draft"))
        updated = services.notes.update_note(note.id, content=document_from_text("final"), is_private=True)
        assert updated.is_private is True
        assert "final" in updated.content

        services.notes.delete_note(note.id)
        with pytest.raises(NotFoundError):
            services.notes.get_note(note.id)


class TestCrossReferences:
    def test_create_and_query(self, services):
        ref = services.cross_references.create(
            "v2e::nvd::cve::CVE-2024-0001",
            "v2e::mitre::cwe::CWE-122",
            "CVE",
            "CWE",
            "caused-by",
            strength=0.8,
            description="NVD weakness mapping",
        )
        assert ref.relationship_type == "caused-by"
        assert [r.id for r in services.cross_references.by_source("v2e::nvd::cve::CVE-2024-0001")] == [ref.id]
        assert [r.id for r in services.cross_references.by_target("v2e::mitre::cwe::CWE-122")] == [ref.id]
        assert [r.id for r in services.cross_references.by_type("CAUSED-BY")] == [ref.id]

    def test_bidirectional(self, services):
        a, b = "v2e::mitre::capec::CAPEC-66", "v2e::mitre::cwe::CWE-89"
        forward = services.cross_references.create(a, b, "CAPEC", "CWE", "exploits")
        backward = services.cross_references.create(b, a, "CWE", "CAPEC")
        services.cross_references.create(a, "v2e::mitre::attack::T1190", "CAPEC", "ATT&CK")
        assert [r.id for r in services.cross_references.bidirectional(a, b)] == [forward.id, backward.id]

    @pytest.mark.parametrize("strength", [-0.1, 1.1])
    def test_strength_bounds(self, services, strength):
        with pytest.raises(InvalidArgumentError):
            services.cross_references.create("a", "b", "CVE", "CWE", strength=strength)

    def test_unknown_relationship(self, services):
        with pytest.raises(ParseError):
            services.cross_references.create("a", "b", "CVE", "CWE", "befriends")

    def test_manager_graph_from_stored_references(self, services):
        items = [
            SecurityItem(urn="v2e::nvd::cve::CVE-2024-0001", item_type="cve"),
            SecurityItem(urn="v2e::mitre::cwe::CWE-122", item_type="cwe"),
            SecurityItem(urn="v2e::mitre::capec::CAPEC-100", item_type="capec"),
        ]
        services.cross_references.create(items[0].urn, items[2].urn, "CVE", "CAPEC")

        manager = services.build_strategy_manager(items)
        assert manager.graph.get_links(items[0].urn) == [items[2].urn]
        assert manager.graph.get_links(items[1].urn) == []

        fallback = services.build_strategy_manager(items, use_cross_references=False)
        assert fallback.graph.get_links(items[0].urn) == [items[1].urn]


class TestLearningSessions:
    def test_session_tally(self, services):
        study = services.sessions.start(user_id="alice")
        assert study.cards_reviewed == 0
        services.sessions.record_review(study.id, correct=True)
        services.sessions.record_review(study.id, correct=False)
        ended = services.sessions.end(study.id, notes="buffer overflows")
        assert ended.cards_reviewed == 2
        assert ended.cards_correct == 1
        assert ended.accuracy == 0.5
        assert ended.session_end is not None
        assert services.sessions.get(study.id).session_notes == "buffer overflows"

    def test_ended_session_is_closed(self, services):
        study = services.sessions.start()
        services.sessions.end(study.id)
        with pytest.raises(InvalidArgumentError):
            services.sessions.record_review(study.id, correct=True)

    def test_missing_session(self, services):
        with pytest.raises(NotFoundError):
            services.sessions.get(77)
