"""Tests for readiness.analysis.vague_terms module."""

from readiness.analysis.vague_terms import (
    CONTEXT_RADIUS,
    SUGGESTIONS,
    detect,
    is_specific_token,
)


class TestDetect:
    """Test detect function."""

    def test_specific_file_is_not_flagged(self):
        assert detect("Add UserService.ts with CRUD operations") == []

    def test_generic_phrase_is_flagged(self):
        terms = detect("Add the new feature")
        assert len(terms) == 1
        assert terms[0].term == "add"
        assert terms[0].position == 0

    def test_flags_implement_without_detail(self):
        terms = detect("implement login")
        assert [t.term for t in terms] == ["implement"]

    def test_each_occurrence_reported(self):
        terms = detect("Fix the thing and fix it again")
        assert [t.position for t in terms] == [0, 18]
        assert all(t.term == "fix" for t in terms)

    def test_case_insensitive(self):
        terms = detect("IMPLEMENT something nice")
        assert terms[0].term == "implement"

    def test_technical_noun_counts_as_detail(self):
        assert detect("add unit tests") == []
        assert detect("Update the orders table") == []

    def test_path_counts_as_detail(self):
        assert detect("Create src/api/users.py") == []

    def test_quoted_name_counts_as_detail(self):
        assert detect("Handle `TimeoutError` in the fetcher") == []

    def test_whole_words_only(self):
        assert detect("Additional handler cleanup") == []

    def test_detail_must_follow_closely(self):
        """A concrete token three words later does not rescue the verb."""
        terms = detect("Update some other stuff in UserService")
        assert [t.term for t in terms] == ["update"]

    def test_sentence_end_stops_lookahead(self):
        terms = detect("Fix it. UserService is fine")
        assert [t.term for t in terms] == ["fix"]

    def test_empty_text(self):
        assert detect("") == []


class TestVagueTermFields:
    """Test the context and suggestion carried by each detection."""

    def test_context_window(self):
        text = "As a user I want the system to handle everything gracefully and quickly"
        term = detect(text)[0]
        assert "handle" in term.context
        assert len(term.context) <= 2 * CONTEXT_RADIUS + len("handle")

    def test_context_collapses_newlines(self):
        term = detect("Title\nfix the\nbug")[0]
        assert "\n" not in term.context

    def test_suggestion_matches_verb(self):
        term = detect("create the thing")[0]
        assert term.suggestion == SUGGESTIONS["create"]


class TestIsSpecificToken:
    """Test is_specific_token function."""

    def test_identifiers(self):
        assert is_specific_token("UserService")
        assert is_specific_token("refresh_session")
        assert is_specific_token("JWT")
        assert is_specific_token("login(email,")

    def test_plain_words(self):
        assert not is_specific_token("new")
        assert not is_specific_token("Feature")
        assert not is_specific_token("")
