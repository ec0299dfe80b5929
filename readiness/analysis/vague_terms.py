"""
Vague-term detection.

Flags low-information verbs ("implement", "add", "fix", ...) unless they are
immediately followed by something concrete: a file, an identifier, a quoted
name, a call, or a well-known technical noun. Flagging every verb would bury
already-specific tasks in noise, so the exception rule is what makes this
useful.
"""

import re

from readiness.analysis.models import VagueTerm

VAGUE_VERBS = ("implement", "add", "fix", "create", "update", "handle")

SUGGESTIONS = {
    "implement": "Name the component and behavior, e.g. 'Implement TokenValidator.validate() in src/auth/token.py'",
    "add": "Say exactly what is added and where, e.g. 'Add a created_at column to the orders table'",
    "fix": "Describe the defect and the expected result, e.g. 'Fix login() returning 500 on empty password'",
    "create": "Name the file, class or endpoint being created, e.g. 'Create src/api/users.py with GET /users'",
    "update": "State what changes from old to new, e.g. 'Update UserSerializer to include the email field'",
    "handle": "Name the condition and the response, e.g. 'Handle TimeoutError in fetch_orders() by retrying twice'",
}

# Articles are skipped before looking for the concrete follow-up
SKIP_WORDS = {"a", "an", "the"}

# How many tokens after the verb (articles excluded) may carry the detail
LOOKAHEAD_TOKENS = 2

CONTEXT_RADIUS = 20

TECHNICAL_NOUNS = {
    "test", "tests", "endpoint", "endpoints", "migration", "migrations",
    "column", "columns", "table", "tables", "schema", "schemas", "index",
    "indexes", "route", "routes", "handler", "handlers", "field", "fields",
    "api", "jwt", "oauth", "webhook", "webhooks", "query", "queries",
    "middleware", "validator", "serializer", "fixture", "fixtures",
}

_VERB_RE = re.compile(r"\b(" + "|".join(VAGUE_VERBS) + r")\b", re.IGNORECASE)
_TOKEN_RE = re.compile(r"\S+")

_QUOTED_RE = re.compile(r"^[`'\"].+")
_CAMEL_RE = re.compile(r"^[A-Za-z]*[a-z0-9][A-Z]\w*$")
_ACRONYM_RE = re.compile(r"^[A-Z]{2,}[0-9]*s?$")
_SNAKE_RE = re.compile(r"^[A-Za-z]\w*_\w+$")
_DOTTED_RE = re.compile(r"^\w+(\.\w+)+$")
_CALL_RE = re.compile(r"^[A-Za-z_]\w*\(")
_EXT_RE = re.compile(r"\.[A-Za-z]{1,5}$")

_TRAILING_PUNCT = ".,;:!?)"


def _clean(token: str) -> str:
    return token.rstrip(_TRAILING_PUNCT)


def is_specific_token(token: str) -> bool:
    """True if a token reads as concrete technical detail."""
    if not token:
        return False
    if _QUOTED_RE.match(token) or _CALL_RE.match(token):
        return True
    word = _clean(token)
    if not word:
        return False
    if "/" in word:
        return True
    if _DOTTED_RE.match(word) or _EXT_RE.search(word):
        return True
    if _CAMEL_RE.match(word) or _ACRONYM_RE.match(word) or _SNAKE_RE.match(word):
        return True
    return word.lower() in TECHNICAL_NOUNS


def _followed_by_detail(text: str, end: int) -> bool:
    checked = 0
    for match in _TOKEN_RE.finditer(text, end):
        token = match.group(0)
        if token.lower() in SKIP_WORDS:
            continue
        if is_specific_token(token):
            return True
        checked += 1
        # Sentence ends before any detail showed up
        if checked >= LOOKAHEAD_TOKENS or token.endswith((".", ";", ":", "!", "?")):
            return False
    return False


def _context(text: str, start: int, end: int) -> str:
    lo = max(0, start - CONTEXT_RADIUS)
    hi = min(len(text), end + CONTEXT_RADIUS)
    return " ".join(text[lo:hi].split())


def detect(text: str) -> list[VagueTerm]:
    """Find vague verb occurrences in text, in order of position.

    Every occurrence is reported separately; position tells duplicates apart.
    """
    if not text:
        return []

    found = []
    for match in _VERB_RE.finditer(text):
        if _followed_by_detail(text, match.end()):
            continue
        term = match.group(1).lower()
        found.append(VagueTerm(
            term=term,
            position=match.start(),
            context=_context(text, match.start(), match.end()),
            suggestion=SUGGESTIONS[term],
        ))
    return found
