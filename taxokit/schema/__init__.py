"""Import schema definitions: column specs, enums and template rows per entity type."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

# Closed vocabularies
TAXONOMY_STATUSES = ["approved", "pending", "deprecated"]
DEFAULT_TAXONOMY_STATUS = "approved"

MIN_TAXONOMY_LEVEL = 1
MAX_TAXONOMY_LEVEL = 5

ONTOLOGY_PREDICATES = ["is_a", "part_of", "causes", "measures", "influences", "related_to"]

# Region codes as they appear in import files -> region_code in the store
REGION_CODES = {
    "SUL": "sul",
    "NORDESTE": "nordeste",
    "NORTE": "norte",
    "CENTRO_OESTE": "centro-oeste",
    "SUDESTE_SP": "sudeste-sp",
    "SUDESTE_RJ": "sudeste-rj",
    "SUDESTE_MG": "sudeste-mg",
}

# Secondary delimiter for multi-valued cells
LIST_DELIMITER = ";"

# Column kinds understood by the validator
KIND_STRING = "string"
KIND_INTEGER = "integer"
KIND_NUMBER = "number"
KIND_LIST = "list"
KIND_JSON = "json"


@dataclass
class ColumnSpec:
    """Declares one column of an import file.

    Attributes:
        key: Canonical field name used in records and in the store
        label: Display label, also accepted as a header
        required: Whether an empty cell is a row error
        kind: One of string, integer, number, list, json
        choices: Allowed values (enum check), matched case-insensitively
        min_value: Inclusive lower bound for numeric kinds
        max_value: Inclusive upper bound for numeric kinds
        default: Value used when the cell is empty and the column is optional
        aliases: Extra header spellings mapped to this column
    """
    key: str
    label: str
    required: bool = False
    kind: str = KIND_STRING
    choices: Optional[List[str]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    default: Any = None
    aliases: Tuple[str, ...] = ()


@dataclass
class EntitySchema:
    """Column set, store table and template for one importable entity."""
    name: str
    table: str
    display_name: str
    columns: List[ColumnSpec]
    conflict_key: str
    template_rows: List[Dict[str, str]] = field(default_factory=list)
    # Built-in cross-field check, returns an error message or None
    row_validator: Optional[Callable[[Dict[str, Any]], Optional[str]]] = None

    @property
    def headers(self) -> List[str]:
        return [c.key for c in self.columns]

    def column(self, key: str) -> Optional[ColumnSpec]:
        for col in self.columns:
            if col.key == key:
                return col
        return None


def _validate_relation_row(row: Dict[str, Any]) -> Optional[str]:
    subject = (row.get("subject_name") or "").strip().lower()
    obj = (row.get("object_name") or "").strip().lower()
    if subject and subject == obj:
        return f'Self-relation not allowed: "{row.get("subject_name")}" -> "{row.get("object_name")}"'
    return None


TAXONOMY_SCHEMA = EntitySchema(
    name="taxonomy",
    table="global_taxonomy",
    display_name="Global Taxonomy",
    conflict_key="code",
    columns=[
        ColumnSpec("code", "Código", required=True, aliases=("codigo", "taxonomy code")),
        ColumnSpec("name", "Nome", required=True, aliases=("nome",)),
        ColumnSpec("description", "Descrição", aliases=("descricao",)),
        ColumnSpec("parent_code", "Código Pai", aliases=("parent", "codigo pai")),
        ColumnSpec("level", "Nível", required=True, kind=KIND_INTEGER,
                   min_value=MIN_TAXONOMY_LEVEL, max_value=MAX_TAXONOMY_LEVEL,
                   aliases=("nivel", "depth")),
        ColumnSpec("icon", "Ícone", aliases=("icone",)),
        ColumnSpec("color", "Cor", aliases=("cor", "colour")),
        ColumnSpec("status", "Status", choices=TAXONOMY_STATUSES,
                   default=DEFAULT_TAXONOMY_STATUS),
        ColumnSpec("synonyms", "Sinônimos", kind=KIND_LIST, aliases=("sinonimos",)),
        ColumnSpec("keywords", "Palavras-chave", kind=KIND_LIST, aliases=("palavras chave", "tags")),
    ],
    template_rows=[
        {"code": "pwa", "name": "PWA", "description": "Root category", "parent_code": "",
         "level": "1", "icon": "Smartphone", "color": "#3B82F6", "status": "approved",
         "synonyms": "", "keywords": "app;mobile"},
        {"code": "pwa.world", "name": "World", "description": "Economy module", "parent_code": "pwa",
         "level": "2", "icon": "Globe", "color": "#10B981", "status": "approved",
         "synonyms": "economy", "keywords": "indicators;news"},
    ],
)

LEXICON_SCHEMA = EntitySchema(
    name="lexicon",
    table="lexicon_terms",
    display_name="Lexicon",
    conflict_key="term_normalized",
    columns=[
        ColumnSpec("term", "Termo", required=True, aliases=("termo",)),
        ColumnSpec("definition", "Definição", required=True, aliases=("definicao",)),
        ColumnSpec("definition_simple", "Definição Simples", aliases=("definicao simples",)),
        ColumnSpec("pronunciation_ipa", "Fonética IPA", aliases=("ipa", "fonetica ipa")),
        ColumnSpec("pronunciation_phonetic", "Pronúncia", aliases=("pronuncia", "phonetic")),
        ColumnSpec("domain", "Domínio", kind=KIND_LIST, aliases=("dominio", "domains")),
        ColumnSpec("synonyms", "Sinônimos", kind=KIND_LIST, aliases=("sinonimos",)),
    ],
    template_rows=[
        {"term": "SELIC", "definition": "Brazilian base interest rate",
         "definition_simple": "The main interest rate in Brazil", "pronunciation_ipa": "/ˈsɛlik/",
         "pronunciation_phonetic": "SÉ-liqui", "domain": "economy", "synonyms": "base rate"},
        {"term": "IPCA", "definition": "Consumer price inflation index",
         "definition_simple": "Measures how much prices went up", "pronunciation_ipa": "/ipeka/",
         "pronunciation_phonetic": "í-pe-cá", "domain": "economy", "synonyms": "inflation"},
    ],
)

REGIONAL_PRONUNCIATIONS_SCHEMA = EntitySchema(
    name="regional_pronunciations",
    table="regional_tone_rules",
    display_name="Regional Pronunciations",
    conflict_key="region_code",
    columns=[
        ColumnSpec("region_code", "Código Região", required=True, choices=list(REGION_CODES),
                   aliases=("region", "regiao")),
        ColumnSpec("term", "Termo", required=True, aliases=("termo",)),
        ColumnSpec("pronunciation", "Pronúncia", required=True, aliases=("pronuncia",)),
    ],
    template_rows=[
        {"region_code": "SUL", "term": "IPCA", "pronunciation": "í-pe-cá"},
        {"region_code": "NORDESTE", "term": "real", "pronunciation": "réal"},
        {"region_code": "SUDESTE_SP", "term": "você", "pronunciation": "cê"},
        {"region_code": "SUDESTE_MG", "term": "trem", "pronunciation": "trem-bão"},
    ],
)

ONTOLOGY_CONCEPTS_SCHEMA = EntitySchema(
    name="ontology_concepts",
    table="ontology_concepts",
    display_name="Ontology Concepts",
    conflict_key="name_normalized",
    columns=[
        ColumnSpec("name", "Nome", required=True, aliases=("nome", "concept")),
        ColumnSpec("description", "Descrição", aliases=("descricao",)),
        ColumnSpec("taxonomy_code", "Código Taxonomia", aliases=("codigo taxonomia",)),
        ColumnSpec("properties", "Propriedades (JSON)", kind=KIND_JSON,
                   aliases=("propriedades", "props")),
    ],
    template_rows=[
        {"name": "Inflation", "description": "General rise in prices",
         "taxonomy_code": "pwa.world", "properties": '{"type": "indicator"}'},
        {"name": "Interest Rate", "description": "Cost of money", "taxonomy_code": "",
         "properties": "{}"},
    ],
)

ONTOLOGY_RELATIONS_SCHEMA = EntitySchema(
    name="ontology_relations",
    table="ontology_relations",
    display_name="Ontology Relations",
    conflict_key="subject_id,predicate,object_id",
    columns=[
        ColumnSpec("subject_name", "Conceito Origem", required=True, aliases=("subject", "conceito origem")),
        ColumnSpec("predicate", "Tipo Relação", required=True, choices=ONTOLOGY_PREDICATES,
                   aliases=("tipo relacao", "relation")),
        ColumnSpec("object_name", "Conceito Destino", required=True, aliases=("object", "conceito destino")),
        ColumnSpec("weight", "Peso (0-1)", kind=KIND_NUMBER, min_value=0.0, max_value=1.0,
                   default=1.0, aliases=("peso",)),
    ],
    template_rows=[
        {"subject_name": "SELIC", "predicate": "influences", "object_name": "Inflation", "weight": "0.8"},
        {"subject_name": "Inflation", "predicate": "measures", "object_name": "IPCA", "weight": "1.0"},
    ],
    row_validator=_validate_relation_row,
)

ENTITY_SCHEMAS: Dict[str, EntitySchema] = {
    schema.name: schema
    for schema in (
        TAXONOMY_SCHEMA,
        LEXICON_SCHEMA,
        REGIONAL_PRONUNCIATIONS_SCHEMA,
        ONTOLOGY_CONCEPTS_SCHEMA,
        ONTOLOGY_RELATIONS_SCHEMA,
    )
}


def get_schema(entity: str) -> EntitySchema:
    """Look up the schema for an entity type.

    Raises:
        ValueError: If the entity type is unknown
    """
    try:
        return ENTITY_SCHEMAS[entity]
    except KeyError:
        raise ValueError(
            f"Unknown entity type: {entity}. Supported: {', '.join(ENTITY_SCHEMAS)}"
        ) from None
