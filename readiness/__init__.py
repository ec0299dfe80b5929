"""Task readiness analysis engine.

Scores backlog tasks for clarity, recommends fixes, and synthesizes new
candidate tasks from a story plus repository context.
"""

__version__ = "0.4.0"
