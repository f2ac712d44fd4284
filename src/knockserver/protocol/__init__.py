"""
Protocol layer: the wire text and the per-connection dialogue.
"""

from .dialogue import KnockKnockDialogue, DialogueState, DialogueOutcome
from .messages import prefix_matches

__all__ = [
    "KnockKnockDialogue",
    "DialogueState",
    "DialogueOutcome",
    "prefix_matches",
]
