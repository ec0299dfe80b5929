"""
Text signal extraction shared by the clarity scorer and missing-element rules.

Everything here is pattern presence over the task text. Signals are computed
once per task so the score and the missing-element list can never disagree
about what the text contains.
"""

import re
from dataclasses import dataclass

from readiness.analysis.models import StoryContext, TaskInput
from readiness.lib.constants import AC_ID_PATTERN, UUID_PATTERN

FILE_PATH_RE = re.compile(
    r"(?:[\w.-]+/)+[\w.-]+\.\w{1,6}\b"
    r"|\b[\w-]+\.(?:py|ts|tsx|js|jsx|go|rs|java|kt|rb|php|cs|cpp|c|h|sql|ya?ml|json|toml|md|css|scss|html|vue|svelte|swift)\b"
)
FUNCTION_REF_RE = re.compile(r"\b[A-Za-z_][\w.]*\(")
IDENTIFIER_RE = re.compile(
    r"\b[A-Z][a-z0-9]+(?:[A-Z][a-z0-9]*)+\b"     # CamelCase
    r"|\b[a-z][a-z0-9]*(?:_[a-z0-9]+)+\b"        # snake_case
    r"|\b[a-z]+[A-Z][A-Za-z0-9]*\b"              # camelCase
)
TECH_TERM_RE = re.compile(
    r"\b(?:api|apis|endpoint|endpoints|rest|graphql|grpc|jwt|sql|schema|migration|"
    r"table|column|index|cache|redis|queue|http|https|json|yaml|oauth|webhook|cli|"
    r"class|module|function|method|component|middleware|handler|route|controller|"
    r"repository|serializer|validator|database|query|token|regex)\b",
    re.IGNORECASE,
)
HEDGE_RE = re.compile(
    r"\b(?:some|etc|maybe|various|better|properly|appropriate|appropriately|"
    r"as needed|stuff|things|somehow|should probably|and so on|improve)\b",
    re.IGNORECASE,
)

RETURN_RE = re.compile(
    r"\b(?:returns?|returned|returning|responds?|responding|outputs?|produces|emits|yields)\b",
    re.IGNORECASE,
)
MEASURABLE_RE = re.compile(
    r"\b\d+(?:\.\d+)?\s*(?:ms|milliseconds?|s|secs?|seconds?|minutes?|%|percent|"
    r"rps|requests|items|rows|records|mb|kb|gb|users|retries|times)\b"
    r"|\b(?:status|http|code|returns?|responds? with)\s*[1-5]\d\d\b",
    re.IGNORECASE,
)
COMPLETION_RE = re.compile(
    r"\b(?:must|so that|done when|definition of done|expected|expects?|ensures?|"
    r"verif(?:y|ies)|until)\b",
    re.IGNORECASE,
)
GIVEN_RE = re.compile(r"\bgiven\b", re.IGNORECASE)
WHEN_RE = re.compile(r"\bwhen\b", re.IGNORECASE)
THEN_RE = re.compile(r"\bthen\b", re.IGNORECASE)

INTEGRATION_RE = re.compile(
    r"\b(?:integrat\w*|third[- ]party|external|webhooks?|oauth|sso|ldap|apis?|"
    r"database|queue|redis|kafka|rabbitmq|payments?|stripe|s3|smtp|upstream)\b",
    re.IGNORECASE,
)
PREREQUISITE_RE = re.compile(
    r"\b(?:depends? on|dependent on|requires?|blocked by|prerequisites?|"
    r"after (?:task|story|ticket|pr|#)|waits? for|"
    r"once\b[^.]{0,60}\b(?:merged|deployed|done|available))",
    re.IGNORECASE,
)

EXPLICIT_TEST_RE = re.compile(
    r"\b(?:unit|integration|e2e|end-to-end|regression|contract|snapshot|load|smoke|"
    r"acceptance|component|api)[ -]tests?\b|\btest cases?\b|\b(?:pytest|jest|vitest|"
    r"cypress|playwright|junit|rspec)\b",
    re.IGNORECASE,
)
EDGE_SCENARIO_RE = re.compile(
    r"\b(?:invalid|errors?|edge cases?|failures?|fails|failing|empty|null|timeouts?|"
    r"unauthori[sz]ed|forbidden|boundary|malformed|missing|expired)\b",
    re.IGNORECASE,
)
GENERIC_TEST_RE = re.compile(r"\btest(?:s|ed|ing)?\b", re.IGNORECASE)

WORD_RE = re.compile(r"\w+")


def normalize_ac_id(ref: str) -> str:
    """Canonical form used to compare AC ids: AC-001, ac1 and AC_1 are equal."""
    ref = ref.strip()
    if AC_ID_PATTERN.fullmatch(ref):
        digits = re.sub(r"\D", "", ref)
        return f"AC{int(digits)}"
    return ref.lower()


@dataclass(frozen=True)
class TaskSignals:
    word_count: int
    file_paths: tuple[str, ...]
    function_refs: tuple[str, ...]
    identifiers: tuple[str, ...]
    tech_terms: tuple[str, ...]
    hedges: tuple[str, ...]
    ac_refs: tuple[str, ...]
    valid_ac_refs: tuple[str, ...]
    invalid_ac_refs: tuple[str, ...]
    story_has_acs: bool
    has_return: bool
    has_measurable: bool
    has_completion: bool
    has_given_when_then: bool
    integration_terms: tuple[str, ...]
    has_prerequisite: bool
    explicit_tests: tuple[str, ...]
    edge_scenarios: tuple[str, ...]
    has_generic_test: bool

    @property
    def has_technical_detail(self) -> bool:
        return bool(self.file_paths or self.function_refs or self.identifiers)

    @property
    def success_kinds(self) -> int:
        return sum([self.has_return, self.has_measurable, self.has_completion, self.has_given_when_then])


def _unique(values) -> tuple[str, ...]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


def collect_ac_refs(task: TaskInput, story: StoryContext | None) -> tuple[str, ...]:
    """Explicit refs plus AC ids (and story AC uuids) mentioned in the text."""
    refs = list(task.acceptance_criteria_refs)
    refs.extend(m.group(0) for m in AC_ID_PATTERN.finditer(task.text))
    if story is not None:
        story_keys = {normalize_ac_id(ac_id) for ac_id in story.ac_ids}
        refs.extend(
            m.group(0) for m in UUID_PATTERN.finditer(task.text)
            if normalize_ac_id(m.group(0)) in story_keys
        )

    by_key = {}
    for ref in refs:
        by_key.setdefault(normalize_ac_id(ref), ref.strip())
    return tuple(by_key.values())


def _strip_ac_ids(text: str) -> str:
    # AC ids look like numbers and snake_case words; keep them out of other rules
    text = AC_ID_PATTERN.sub(" ", text)
    return UUID_PATTERN.sub(" ", text)


def extract(task: TaskInput, story: StoryContext | None = None) -> TaskSignals:
    raw = task.text
    text = _strip_ac_ids(raw)

    ac_refs = collect_ac_refs(task, story)
    story_keys = {normalize_ac_id(a) for a in story.ac_ids} if story else set()
    valid = tuple(r for r in ac_refs if normalize_ac_id(r) in story_keys)
    invalid = tuple(r for r in ac_refs if story_keys and normalize_ac_id(r) not in story_keys)

    file_paths = _unique(m.group(0) for m in FILE_PATH_RE.finditer(text))

    return TaskSignals(
        word_count=len(WORD_RE.findall(raw)),
        file_paths=file_paths,
        function_refs=_unique(m.group(0)[:-1] for m in FUNCTION_REF_RE.finditer(text)),
        identifiers=_unique(m.group(0) for m in IDENTIFIER_RE.finditer(text)),
        tech_terms=_unique(m.group(0).lower() for m in TECH_TERM_RE.finditer(text)),
        hedges=tuple(m.group(0).lower() for m in HEDGE_RE.finditer(text)),
        ac_refs=ac_refs,
        valid_ac_refs=valid,
        invalid_ac_refs=invalid,
        story_has_acs=bool(story_keys),
        has_return=bool(RETURN_RE.search(text)),
        has_measurable=bool(MEASURABLE_RE.search(text)),
        has_completion=bool(COMPLETION_RE.search(text)),
        has_given_when_then=bool(GIVEN_RE.search(text) and WHEN_RE.search(text) and THEN_RE.search(text)),
        integration_terms=_unique(m.group(0).lower() for m in INTEGRATION_RE.finditer(text)),
        has_prerequisite=bool(PREREQUISITE_RE.search(text)),
        explicit_tests=_unique(m.group(0).lower() for m in EXPLICIT_TEST_RE.finditer(text)),
        edge_scenarios=_unique(m.group(0).lower() for m in EDGE_SCENARIO_RE.finditer(text)),
        has_generic_test=bool(GENERIC_TEST_RE.search(text)),
    )


STOP_WORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "from", "as", "is", "was", "are", "were", "be", "been", "being", "have", "has",
    "had", "do", "does", "did", "will", "would", "should", "could", "may", "might", "must",
    "can", "this", "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
    "when", "then", "given", "user", "users",
}

_KEYWORD_RE = re.compile(r"[a-z][a-z0-9_]+")


def keywords(text: str) -> set[str]:
    """Lowercased content words longer than three characters."""
    return {w for w in _KEYWORD_RE.findall(text.lower()) if len(w) > 3 and w not in STOP_WORDS}
