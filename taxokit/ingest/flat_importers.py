"""
Importers for entities without a hierarchy.

Lexicon terms and ontology concepts are upserted on a normalized natural
key. Regional pronunciations are merged into an existing region's
preferred_terms mapping. Ontology relations are resolved from concept names
to ids before they are written.
"""

import logging
from typing import Any, Dict, List, Optional

from ..models import LexiconTerm, OntologyConcept, OntologyRelation, RegionalPronunciation
from ..schema import (
    LEXICON_SCHEMA,
    ONTOLOGY_CONCEPTS_SCHEMA,
    ONTOLOGY_RELATIONS_SCHEMA,
    REGIONAL_PRONUNCIATIONS_SCHEMA,
    TAXONOMY_SCHEMA,
)
from ..similarity import normalize_term
from .batcher import UpsertBatcher
from .store import ImportResult, Store

logger = logging.getLogger(__name__)


def _batch_into(result: ImportResult, batcher: UpsertBatcher, table: str,
                rows: List[Dict[str, Any]], on_conflict: str, context: str) -> None:
    if not rows:
        return
    batch = batcher.upsert(table, rows, on_conflict=on_conflict, context=context)
    result.success_count += batch.success_count
    result.errors.extend(batch.errors)


def _lookup_ids(store: Store, table: str, key: str, values: List[str],
                result: ImportResult, context: str) -> Optional[Dict[str, Any]]:
    """Map key values to ids. A failed lookup is reported once and returns None."""
    values = sorted(set(values))
    if not values:
        return {}
    try:
        rows = store.select(table, key=key, values=values, columns=["id", key])
    except Exception as e:
        message = f"{context}: lookup in {table} failed: {e}"
        logger.error(message, exc_info=True)
        result.errors.append(message)
        return None
    return {row[key]: row["id"] for row in rows}


# =============================================================================
# LEXICON
# =============================================================================

def import_lexicon(
    terms: List[LexiconTerm],
    store: Store,
    batcher: Optional[UpsertBatcher] = None
) -> ImportResult:
    """
    Upsert lexicon terms on term_normalized.

    "Selic", "SELIC" and "selíc" are the same term; the last one in the
    file wins.
    """
    batcher = batcher or UpsertBatcher(store)
    result = ImportResult()
    rows = [term.to_row() for term in terms]
    logger.info(f"Importing {len(rows)} lexicon terms")
    _batch_into(result, batcher, LEXICON_SCHEMA.table, rows,
                LEXICON_SCHEMA.conflict_key, "Lexicon")
    return result


# =============================================================================
# REGIONAL PRONUNCIATIONS
# =============================================================================

def import_regional_pronunciations(
    overrides: List[RegionalPronunciation],
    store: Store
) -> ImportResult:
    """
    Merge term -> pronunciation pairs into each region's preferred_terms.

    Existing terms not in the file are kept; a term present in both takes
    the file's value. Regions are never created: a region missing from the
    store is reported and its rows are skipped. Each region is written
    separately, so one failing region does not affect the others.

    Args:
        overrides: Validated pronunciation overrides
        store: Target store

    Returns:
        ImportResult counting the pairs written
    """
    result = ImportResult()
    if not overrides:
        return result

    table = REGIONAL_PRONUNCIATIONS_SCHEMA.table
    conflict_key = REGIONAL_PRONUNCIATIONS_SCHEMA.conflict_key

    by_region: Dict[str, Dict[str, str]] = {}
    for override in overrides:
        by_region.setdefault(override.region_code, {})[override.term] = override.pronunciation

    try:
        existing = store.select(table, key=conflict_key, values=sorted(by_region))
    except Exception as e:
        message = f"Regional pronunciations: region lookup failed: {e}"
        logger.error(message, exc_info=True)
        result.errors.append(message)
        return result
    regions = {row[conflict_key]: row for row in existing}

    for region_code, pairs in by_region.items():
        region = regions.get(region_code)
        if region is None:
            message = f"Region not found: {region_code}"
            logger.warning(message)
            result.errors.append(message)
            continue

        merged = dict(region.get("preferred_terms") or {})
        merged.update(pairs)
        row = dict(region)
        row["preferred_terms"] = merged

        try:
            store.upsert(table, [row], on_conflict=conflict_key)
        except Exception as e:
            message = f"Region {region_code}: update failed: {e}"
            logger.error(message, exc_info=True)
            result.errors.append(message)
            continue

        result.success_count += len(pairs)
        logger.info(f"Region {region_code}: merged {len(pairs)} pronunciations")

    return result


# =============================================================================
# ONTOLOGY
# =============================================================================

def import_ontology_concepts(
    concepts: List[OntologyConcept],
    store: Store,
    batcher: Optional[UpsertBatcher] = None
) -> ImportResult:
    """
    Upsert ontology concepts on name_normalized.

    A concept naming a taxonomy_code that is not in the store is reported
    and skipped; a concept without one is written with no taxonomy link.
    """
    batcher = batcher or UpsertBatcher(store)
    result = ImportResult()

    taxonomy_ids = _lookup_ids(
        store,
        TAXONOMY_SCHEMA.table,
        "code",
        [c.taxonomy_code for c in concepts if c.taxonomy_code],
        result,
        "Ontology concepts",
    )

    rows = []
    unresolved = 0
    for concept in concepts:
        taxonomy_id = None
        if concept.taxonomy_code and taxonomy_ids is None:
            unresolved += 1
            continue
        if concept.taxonomy_code:
            taxonomy_id = taxonomy_ids.get(concept.taxonomy_code)
            if taxonomy_id is None:
                message = (
                    f'Row {concept.row_number}: taxonomy code "{concept.taxonomy_code}" '
                    f'not found for concept "{concept.name}"'
                )
                logger.warning(message)
                result.errors.append(message)
                continue
        rows.append(concept.to_row(taxonomy_id))

    if unresolved:
        logger.warning(f"Skipped {unresolved} ontology concepts linked to a taxonomy code")

    logger.info(f"Importing {len(rows)} ontology concepts")
    _batch_into(result, batcher, ONTOLOGY_CONCEPTS_SCHEMA.table, rows,
                ONTOLOGY_CONCEPTS_SCHEMA.conflict_key, "Ontology concepts")
    return result


def import_ontology_relations(
    relations: List[OntologyRelation],
    store: Store,
    batcher: Optional[UpsertBatcher] = None
) -> ImportResult:
    """
    Resolve concept names to ids and upsert relations.

    Names are matched on name_normalized. A relation whose subject or
    object is unknown, or whose ends resolve to the same concept, is
    reported and never sent to the store.
    """
    batcher = batcher or UpsertBatcher(store)
    result = ImportResult()

    names = []
    for relation in relations:
        names.append(normalize_term(relation.subject_name))
        names.append(normalize_term(relation.object_name))
    concept_ids = _lookup_ids(
        store, ONTOLOGY_CONCEPTS_SCHEMA.table, "name_normalized", names,
        result, "Ontology relations",
    )
    if concept_ids is None:
        logger.warning(f"Skipped {len(relations)} ontology relations, concepts could not be resolved")
        return result

    rows = []
    for relation in relations:
        subject_id = concept_ids.get(normalize_term(relation.subject_name))
        object_id = concept_ids.get(normalize_term(relation.object_name))

        missing = [
            name for name, concept_id in (
                (relation.subject_name, subject_id),
                (relation.object_name, object_id),
            ) if concept_id is None
        ]
        if missing:
            message = (
                f"Row {relation.row_number}: concept not found: "
                + ", ".join(f'"{name}"' for name in missing)
            )
            logger.warning(message)
            result.errors.append(message)
            continue

        if subject_id == object_id:
            message = (
                f'Row {relation.row_number}: self-relation not allowed: '
                f'"{relation.subject_name}" -> "{relation.object_name}"'
            )
            logger.warning(message)
            result.errors.append(message)
            continue

        rows.append(relation.to_row(subject_id, object_id))

    logger.info(f"Importing {len(rows)} ontology relations")
    _batch_into(result, batcher, ONTOLOGY_RELATIONS_SCHEMA.table, rows,
                ONTOLOGY_RELATIONS_SCHEMA.conflict_key, "Ontology relations")
    return result
