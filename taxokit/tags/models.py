"""
Tag unification types.

Tags are pre-existing rows of document_tags; the engine never creates them.
Merge and adoption suggestions are computed per session and never stored.
Only confirmed decisions leave a durable trace: a TagMergeRule so future
tagging snaps the duplicate label to the canonical one, and one
TagModificationLog per affected document.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from ..heuristics import MergeReason

TAGS_TABLE = "document_tags"
MERGE_RULES_TABLE = "tag_merge_rules"
MODIFICATION_LOGS_TABLE = "tag_modification_logs"

MERGE_RULES_CONFLICT_KEY = "source_tag,chat_type"

TAG_TYPE_PARENT = "parent"
TAG_TYPE_CHILD = "child"

_TAG_FIELDS = ("id", "tag_name", "parent_tag_id", "tag_type", "confidence", "source", "document_id")


class SuggestionState(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class Decision(str, Enum):
    CONFIRM = "confirm"
    DISMISS = "dismiss"


class Scope(str, Enum):
    ROOT = "root"
    CHILD = "child"


@dataclass
class Tag:
    id: Any
    tag_name: str
    parent_tag_id: Optional[Any] = None
    tag_type: str = TAG_TYPE_PARENT
    confidence: Optional[float] = None
    source: Optional[str] = None
    document_id: Optional[Any] = None
    # Columns this package does not interpret, written back unchanged
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_parent(self) -> bool:
        return self.parent_tag_id not in (None, "")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Tag":
        return cls(
            id=row["id"],
            tag_name=row.get("tag_name") or "",
            parent_tag_id=row.get("parent_tag_id"),
            tag_type=row.get("tag_type") or TAG_TYPE_PARENT,
            confidence=row.get("confidence"),
            source=row.get("source"),
            document_id=row.get("document_id"),
            extra={k: v for k, v in row.items() if k not in _TAG_FIELDS},
        )

    def to_row(self) -> Dict[str, Any]:
        row = dict(self.extra)
        row.update({
            "id": self.id,
            "tag_name": self.tag_name,
            "parent_tag_id": self.parent_tag_id,
            "tag_type": self.tag_type,
            "confidence": self.confidence,
            "source": self.source,
            "document_id": self.document_id,
        })
        return row


@dataclass
class MergeSuggestion:
    """Two tags in the same scope that probably name the same thing."""
    id: str
    tag_a: Tag
    tag_b: Tag
    scope: Scope
    similarity: float              # 0-100
    confidence: float              # 0-1
    reasons: List[MergeReason] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    parent_tag_id: Optional[Any] = None
    state: SuggestionState = SuggestionState.PROPOSED

    @property
    def key(self) -> FrozenSet[Any]:
        return frozenset((self.tag_a.id, self.tag_b.id))

    def involves(self, tag_id: Any) -> bool:
        return tag_id in (self.tag_a.id, self.tag_b.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": "merge",
            "tags": [self.tag_a.tag_name, self.tag_b.tag_name],
            "tag_ids": [self.tag_a.id, self.tag_b.id],
            "scope": self.scope.value,
            "similarity": self.similarity,
            "confidence": self.confidence,
            "reasons": [r.value for r in self.reasons],
            "explanations": list(self.explanations),
            "state": self.state.value,
        }


@dataclass
class AdoptionSuggestion:
    """An orphan child tag and the root tag it most likely belongs under."""
    id: str
    orphan: Tag
    parent: Tag
    similarity: float
    confidence: float
    reasons: List[MergeReason] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    state: SuggestionState = SuggestionState.PROPOSED

    def involves(self, tag_id: Any) -> bool:
        return tag_id in (self.orphan.id, self.parent.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": "adoption",
            "orphan": self.orphan.tag_name,
            "parent": self.parent.tag_name,
            "similarity": self.similarity,
            "confidence": self.confidence,
            "reasons": [r.value for r in self.reasons],
            "explanations": list(self.explanations),
            "state": self.state.value,
        }


@dataclass
class TagMergeRule:
    source_tag: str
    canonical_tag: str
    chat_type: str
    created_by: str = "admin"

    def to_row(self) -> Dict[str, Any]:
        return {
            "source_tag": self.source_tag,
            "canonical_tag": self.canonical_tag,
            "chat_type": self.chat_type,
            "created_by": self.created_by,
        }


@dataclass
class TagModificationLog:
    document_id: Any
    original_tag_name: str
    new_tag_name: str
    chat_type: str
    modification_type: str = "merge"
    created_by: str = "admin"

    def to_row(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "original_tag_name": self.original_tag_name,
            "new_tag_name": self.new_tag_name,
            "modification_type": self.modification_type,
            "chat_type": self.chat_type,
            "created_by": self.created_by,
        }
