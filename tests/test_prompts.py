"""Tests for the prompts module."""

import pytest

from readiness.lib.prompts import (
    PromptError,
    build_list_section,
    build_section,
    clear_cache,
    load_prompt,
    render_prompt,
)


class TestLoadPrompt:
    """Tests for load_prompt function."""

    def test_load_existing_prompt(self):
        """Should load an existing prompt template."""
        clear_cache()
        content = load_prompt("analyze_task")
        assert "{task_title}" in content

    def test_html_comments_stripped(self):
        """Should strip HTML comments from loaded prompts."""
        clear_cache()
        content = load_prompt("suggest_tasks")
        assert "<!--" not in content
        assert "{max_suggestions}" in content

    def test_load_nonexistent_prompt_raises(self):
        """Should raise PromptError for missing template."""
        clear_cache()
        with pytest.raises(PromptError) as exc_info:
            load_prompt("nonexistent_prompt_xyz")
        assert "not found" in str(exc_info.value)

    def test_caching_works(self):
        """Should cache loaded prompts."""
        clear_cache()
        assert load_prompt("analyze_task") is load_prompt("analyze_task")


class TestRenderPrompt:
    """Tests for render_prompt function."""

    def test_missing_variable_raises(self):
        """Should name the missing variable."""
        with pytest.raises(PromptError) as exc_info:
            render_prompt("analyze_task", task_title="x")
        assert "Missing required variable" in str(exc_info.value)

    def test_literal_braces_survive(self):
        """JSON examples use doubled braces in the template."""
        rendered = render_prompt(
            "analyze_task",
            task_title="Add refresh endpoint",
            task_description="desc",
            story_section="",
            criteria_section="",
            score_section="",
        )
        assert "Title: Add refresh endpoint" in rendered
        assert '"summary": "one sentence verdict"' in rendered


class TestBuildSection:
    """Tests for build_section and build_list_section."""

    def test_with_content(self):
        assert build_section("body", "## H") == "## H\n\nbody\n"

    def test_empty_with_message(self):
        assert build_section(None, "## H", "(none)") == "## H\n\n(none)\n"

    def test_empty_without_message(self):
        assert build_section("", "## H") == ""

    def test_list_truncated(self):
        section = build_list_section([f"f{i}" for i in range(5)], "## Files", limit=3)
        assert "- f2" in section
        assert "- f3" not in section
        assert "- ... and 2 more" in section

    def test_empty_list(self):
        assert build_list_section([], "## Files", "(none)") == "## Files\n\n(none)\n"
