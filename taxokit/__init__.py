from .parser import TabularParser
from .validator import RowValidator, ParseReport, ParsedRow
from .similarity import similarity_score, edit_distance, fold_label, normalize_term
from .heuristics import suggest_merge_reasons, ReasonResult, MergeReason
from .config import ImportSettings, load_settings
from .schema import ENTITY_SCHEMAS, get_schema

__all__ = [
    "TabularParser",
    "RowValidator",
    "ParseReport",
    "ParsedRow",
    "similarity_score",
    "edit_distance",
    "fold_label",
    "normalize_term",
    "suggest_merge_reasons",
    "ReasonResult",
    "MergeReason",
    "ImportSettings",
    "load_settings",
    "ENTITY_SCHEMAS",
    "get_schema",
]
