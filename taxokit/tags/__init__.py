"""Near-duplicate tag detection and operator-confirmed unification."""

from .models import (
    AdoptionSuggestion,
    Decision,
    MergeSuggestion,
    Scope,
    SuggestionState,
    Tag,
    TagMergeRule,
    TagModificationLog,
)
from .unification import TagUnificationEngine

__all__ = [
    "TagUnificationEngine",
    "Tag",
    "MergeSuggestion",
    "AdoptionSuggestion",
    "Decision",
    "Scope",
    "SuggestionState",
    "TagMergeRule",
    "TagModificationLog",
]
