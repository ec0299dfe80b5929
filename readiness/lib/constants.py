"""Shared constants for the readiness engine."""

import re

# Clarity levels (lower bounds, inclusive)
LEVEL_FAIR_MIN = 40
LEVEL_GOOD_MIN = 70
LEVEL_EXCELLENT_MIN = 85

# A task at or above this score is ready for autonomous execution.
READY_THRESHOLD = LEVEL_GOOD_MIN

# The 80% rule for "hand it to an agent or a junior dev".
AI_READY_THRESHOLD = 80

# Suggestion runs surface between MIN and MAX candidates.
MIN_SUGGESTIONS = 5
MAX_SUGGESTIONS = 8
DEFAULT_MAX_SUGGESTIONS = 6

# Story readiness: penalties off a perfect 100, ready at or above the threshold
STORY_READY_THRESHOLD = 80
PENALTY_NO_CRITERIA = 50
PENALTY_UNCOVERED_CRITERIA = 30
PENALTY_NO_TASKS = 20

# Generated acceptance criteria per request
MIN_GENERATED_CRITERIA = 2
MAX_GENERATED_CRITERIA = 5

# Acceptance-criteria identifiers as written in task text: AC1, AC-2, ac_003
AC_ID_PATTERN = re.compile(r'\b[Aa][Cc][-_]?\d+\b')
UUID_PATTERN = re.compile(
    r'\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b',
    re.IGNORECASE,
)

# Header carrying the caller's organization (set by the identity layer)
ORG_HEADER = "X-Organization-Id"
