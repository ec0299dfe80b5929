"""
Recommendation generation.

Every missing element and every vague term maps to exactly one
recommendation. Cross-cutting recommendations are added when the task is
below the ready bar. Recommendations are regenerated on every run.
"""

import re
from dataclasses import replace

from readiness.analysis.models import (
    CATEGORY_ORDER,
    ClarityScore,
    MissingCategory,
    MissingElement,
    Priority,
    Recommendation,
    RecommendationCategory,
    StoryContext,
    TaskInput,
    VagueTerm,
)
from readiness.analysis.signals import keywords
from readiness.lib.constants import LEVEL_FAIR_MIN, READY_THRESHOLD

AC_ELEVATION_THRESHOLD = 50

_AREA_RE = re.compile(r"\[(backend|frontend|qa|devops)\]", re.IGNORECASE)

TITLES = {
    MissingCategory.TECHNICAL_DETAILS: "Add technical details",
    MissingCategory.ACCEPTANCE_CRITERIA: "Link acceptance criteria",
    MissingCategory.SUCCESS_CRITERIA: "Define success criteria",
    MissingCategory.DEPENDENCIES: "State dependencies",
    MissingCategory.TEST_EXPECTATIONS: "Describe test expectations",
}


def task_area(title: str) -> str | None:
    """Area tag from a title like '[Backend] Add endpoint', or a keyword fallback."""
    match = _AREA_RE.search(title)
    if match:
        return match.group(1).lower()
    lowered = title.lower()
    if "backend" in lowered:
        return "backend"
    if "frontend" in lowered:
        return "frontend"
    if "test" in lowered:
        return "qa"
    if "deploy" in lowered:
        return "devops"
    return None


def suggest_file_paths(title: str, description: str) -> list[str]:
    text = f"{title} {description}".lower()
    area = task_area(title)
    paths = []
    if area == "backend":
        if "endpoint" in text or "api" in text:
            paths.append("HTTP handlers, e.g. <service>/api/routes.py")
        if "database" in text or "migration" in text:
            paths.append("Migrations, e.g. <service>/migrations/<timestamp>_<change>.sql")
        if not paths:
            paths.append("Domain logic, e.g. <service>/domain/<feature>.py")
    elif area == "frontend":
        if "page" in text:
            paths.append("Route page, e.g. web/app/<route>/page.tsx")
        if not paths:
            paths.append("Component file, e.g. web/components/<Feature>/<Component>.tsx")
    elif area == "qa":
        paths.append("Test module, e.g. tests/test_<module>.py")
    elif area == "devops":
        paths.append("Pipeline or manifest, e.g. .github/workflows/<pipeline>.yml")
    else:
        paths.append("Name the files to modify, e.g. src/<package>/<module>.py")
    return paths


def suggest_test_coverage(title: str, description: str) -> list[str]:
    area = task_area(title)
    text = description.lower()
    if area == "backend":
        hints = ["Unit tests for the domain logic", "Integration tests against the database or external services"]
        if "endpoint" in text or "api" in text:
            hints.append("Contract tests for status codes and response schemas")
        return hints
    if area == "frontend":
        return ["Component tests for rendering and state", "End-to-end tests for the user workflow"]
    if area == "qa":
        return ["Happy path and edge cases", "Negative cases for validation and error handling"]
    return ["Say which tests are expected: unit, integration or end-to-end", "List the scenarios that must be covered"]


def suggest_relevant_ac_ids(task: TaskInput, story: StoryContext) -> list[str]:
    """Story AC ids whose id or text shares a keyword with the task."""
    task_words = keywords(task.text)
    relevant = []
    for ac in story.acceptance_criteria:
        if task_words & keywords(f"{ac.ac_id} {ac.text}"):
            relevant.append(ac.ac_id)
    return relevant


def _details(element: MissingElement, task: TaskInput | None, story: StoryContext | None) -> str:
    lines = [element.description + ".", element.remediation]
    if task is None:
        return " ".join(lines)

    if element.category == MissingCategory.TECHNICAL_DETAILS:
        lines.extend(suggest_file_paths(task.title, task.description))
    elif element.category == MissingCategory.TEST_EXPECTATIONS:
        lines.extend(suggest_test_coverage(task.title, task.description))
    elif element.category == MissingCategory.ACCEPTANCE_CRITERIA and story is not None:
        if story.ac_ids:
            relevant = suggest_relevant_ac_ids(task, story)
            if relevant:
                lines.append(f"Likely relevant: {', '.join(relevant)}")
            else:
                lines.append(f"Available: {', '.join(story.ac_ids)}")
        else:
            lines.append("Define story-level acceptance criteria first")
    return " ".join(lines)


def _from_missing(element: MissingElement, task, story) -> Recommendation:
    return Recommendation(
        id="",
        category=RecommendationCategory.from_missing(element.category),
        priority=element.importance,
        title=TITLES[element.category],
        description=_details(element, task, story),
        actionable=True,
        auto_applyable=False,
    )


def _from_vague(term: VagueTerm) -> Recommendation:
    return Recommendation(
        id="",
        category=RecommendationCategory.VAGUE_TERMS,
        priority=Priority.MEDIUM,
        title=f"Replace vague '{term.term}'",
        description=f"'{term.context}': {term.suggestion}",
        actionable=True,
        auto_applyable=True,
    )


def _elevate_ac(recs: list[Recommendation], score: ClarityScore) -> list[Recommendation]:
    if score.ac_references >= AC_ELEVATION_THRESHOLD:
        return recs

    out = []
    elevated = False
    for rec in recs:
        if rec.category == RecommendationCategory.ACCEPTANCE_CRITERIA:
            rec = replace(rec, priority=Priority.CRITICAL)
            elevated = True
        out.append(rec)
    if not elevated:
        out.append(Recommendation(
            id="",
            category=RecommendationCategory.ACCEPTANCE_CRITERIA,
            priority=Priority.CRITICAL,
            title=TITLES[MissingCategory.ACCEPTANCE_CRITERIA],
            description="Reference the acceptance criteria this task satisfies by id.",
        ))
    return out


def _cross_cutting(score: ClarityScore) -> list[Recommendation]:
    recs = []
    if score.overall < READY_THRESHOLD:
        recs.append(Recommendation(
            id="",
            category=RecommendationCategory.AI_COMPATIBILITY,
            priority=Priority.HIGH,
            title="Make the task executable without follow-up questions",
            description=(
                f"Clarity {score.overall}/100 is below the ready bar of {READY_THRESHOLD}. "
                "Add inputs and outputs, a definition of done, and the environment it runs in."
            ),
        ))
    if score.overall < LEVEL_FAIR_MIN:
        recs.append(Recommendation(
            id="",
            category=RecommendationCategory.EXAMPLES,
            priority=Priority.LOW,
            title="Add a worked example",
            description="Show a sample input and the expected result, or point to similar existing code.",
        ))
    return recs


def sort_key(rec: Recommendation) -> tuple[int, int]:
    return rec.priority.rank, CATEGORY_ORDER.index(rec.category)


def generate(
    score: ClarityScore,
    vague_terms: list[VagueTerm],
    missing_elements: list[MissingElement],
    task: TaskInput | None = None,
    story: StoryContext | None = None,
) -> list[Recommendation]:
    """Derive display-ordered recommendations from one analysis.

    task and story are optional; when given, descriptions carry file path,
    test coverage and AC hints specific to the task.
    """
    recs = [_from_missing(element, task, story) for element in missing_elements]
    recs.extend(_from_vague(term) for term in vague_terms)
    recs = _elevate_ac(recs, score)
    recs.extend(_cross_cutting(score))

    ordered = sorted(recs, key=sort_key)
    return [
        replace(rec, id=f"rec-{i:02d}")
        for i, rec in enumerate(ordered, start=1)
    ]
