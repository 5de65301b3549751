"""
Typed import records.

Each record is built from a validated ParsedRow and knows how to render
itself as a store row. Records only exist for rows that passed validation,
so constructors trust the converted values.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .schema import DEFAULT_TAXONOMY_STATUS, REGION_CODES
from .similarity import normalize_term
from .validator import ParsedRow


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


# =============================================================================
# TAXONOMY
# =============================================================================

@dataclass
class TaxonomyRecord:
    """One taxonomy node as read from an import file (parent by code)."""
    code: str
    name: str
    level: int
    row_number: int
    description: Optional[str] = None
    parent_code: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    status: str = DEFAULT_TAXONOMY_STATUS
    synonyms: Optional[List[str]] = None
    keywords: Optional[List[str]] = None

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "TaxonomyRecord":
        data = row.data
        return cls(
            code=data["code"].strip(),
            name=data["name"].strip(),
            level=int(data["level"]),
            row_number=row.row_number,
            description=_clean(data.get("description")),
            parent_code=_clean(data.get("parent_code")),
            icon=_clean(data.get("icon")),
            color=_clean(data.get("color")),
            status=data.get("status") or DEFAULT_TAXONOMY_STATUS,
            synonyms=data.get("synonyms"),
            keywords=data.get("keywords"),
        )

    @property
    def is_root(self) -> bool:
        return self.parent_code is None


@dataclass
class ResolvedTaxonomyNode:
    """A taxonomy node whose parent has been resolved to a store id."""
    code: str
    name: str
    level: int
    parent_id: Optional[Any] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    status: str = DEFAULT_TAXONOMY_STATUS
    synonyms: Optional[List[str]] = None
    keywords: Optional[List[str]] = None

    @classmethod
    def from_record(cls, record: TaxonomyRecord, parent_id: Optional[Any]) -> "ResolvedTaxonomyNode":
        return cls(
            code=record.code,
            name=record.name,
            level=record.level,
            parent_id=parent_id,
            description=record.description,
            icon=record.icon,
            color=record.color,
            status=record.status,
            synonyms=record.synonyms,
            keywords=record.keywords,
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "level": self.level,
            "icon": self.icon,
            "color": self.color,
            "status": self.status,
            "synonyms": self.synonyms,
            "keywords": self.keywords,
        }


# =============================================================================
# LEXICON / REGIONAL PRONUNCIATIONS
# =============================================================================

@dataclass
class LexiconTerm:
    term: str
    definition: str
    definition_simple: Optional[str] = None
    pronunciation_ipa: Optional[str] = None
    pronunciation_phonetic: Optional[str] = None
    domain: Optional[List[str]] = None
    synonyms: Optional[List[str]] = None
    is_approved: bool = True

    @property
    def term_normalized(self) -> str:
        return normalize_term(self.term)

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "LexiconTerm":
        data = row.data
        return cls(
            term=data["term"].strip(),
            definition=data["definition"].strip(),
            definition_simple=_clean(data.get("definition_simple")),
            pronunciation_ipa=_clean(data.get("pronunciation_ipa")),
            pronunciation_phonetic=_clean(data.get("pronunciation_phonetic")),
            domain=data.get("domain"),
            synonyms=data.get("synonyms"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "term_normalized": self.term_normalized,
            "definition": self.definition,
            "definition_simple": self.definition_simple,
            "pronunciation_ipa": self.pronunciation_ipa,
            "pronunciation_phonetic": self.pronunciation_phonetic,
            "domain": self.domain,
            "synonyms": self.synonyms,
            "is_approved": self.is_approved,
        }


@dataclass
class RegionalPronunciation:
    """One term -> pronunciation override for a region."""
    region: str
    term: str
    pronunciation: str
    row_number: int

    @property
    def region_code(self) -> str:
        """Store-side region code (e.g. CENTRO_OESTE -> centro-oeste)."""
        return REGION_CODES[self.region]

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "RegionalPronunciation":
        data = row.data
        return cls(
            region=data["region_code"].strip().upper(),
            term=data["term"].strip(),
            pronunciation=data["pronunciation"].strip(),
            row_number=row.row_number,
        )


# =============================================================================
# ONTOLOGY
# =============================================================================

@dataclass
class OntologyConcept:
    name: str
    row_number: int
    description: Optional[str] = None
    taxonomy_code: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def name_normalized(self) -> str:
        return normalize_term(self.name)

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "OntologyConcept":
        data = row.data
        return cls(
            name=data["name"].strip(),
            row_number=row.row_number,
            description=_clean(data.get("description")),
            taxonomy_code=_clean(data.get("taxonomy_code")),
            properties=data.get("properties") or {},
        )

    def to_row(self, taxonomy_id: Optional[Any]) -> Dict[str, Any]:
        return {
            "name": self.name,
            "name_normalized": self.name_normalized,
            "description": self.description,
            "taxonomy_id": taxonomy_id,
            "properties": self.properties,
        }


@dataclass
class OntologyRelation:
    """A directed, weighted edge between two concepts named in the file."""
    subject_name: str
    predicate: str
    object_name: str
    row_number: int
    weight: float = 1.0

    @classmethod
    def from_parsed(cls, row: ParsedRow) -> "OntologyRelation":
        data = row.data
        weight = data.get("weight")
        return cls(
            subject_name=data["subject_name"].strip(),
            predicate=data["predicate"],
            object_name=data["object_name"].strip(),
            row_number=row.row_number,
            weight=1.0 if weight is None else float(weight),
        )

    def to_row(self, subject_id: Any, object_id: Any) -> Dict[str, Any]:
        return {
            "subject_id": subject_id,
            "predicate": self.predicate,
            "object_id": object_id,
            "weight": self.weight,
        }
