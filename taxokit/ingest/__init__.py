"""Store-facing import pipeline: batching, hierarchy resolution and entity importers."""

import logging
import threading
from typing import Optional, Tuple

from ..config import ImportSettings
from ..models import (
    LexiconTerm,
    OntologyConcept,
    OntologyRelation,
    RegionalPronunciation,
    TaxonomyRecord,
)
from ..parser import TabularParser
from ..schema import get_schema
from ..validator import ParseReport, RowCheck
from .batcher import BatchProgress, BatchResult, ProgressCallback, UpsertBatcher
from .flat_importers import (
    import_lexicon,
    import_ontology_concepts,
    import_ontology_relations,
    import_regional_pronunciations,
)
from .hierarchy import HierarchyResolver, import_taxonomy
from .store import ImportResult, Store
from .supabase_client import SupabaseStore

logger = logging.getLogger(__name__)


def import_report(
    report: ParseReport,
    store: Store,
    settings: Optional[ImportSettings] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None
) -> ImportResult:
    """
    Persist the valid rows of a parse report.

    The result's errors start with the report's row validation errors,
    followed by reference and persistence errors from the importer.
    """
    settings = settings or ImportSettings()
    batcher = UpsertBatcher(
        store,
        chunk_size=settings.batch_size,
        max_workers=settings.max_workers,
        progress_callback=progress_callback,
        cancel_event=cancel_event,
    )

    result = ImportResult(errors=list(report.errors))
    valid = report.valid_rows
    entity = report.entity

    if entity == "taxonomy":
        outcome = import_taxonomy([TaxonomyRecord.from_parsed(r) for r in valid], store, batcher)
    elif entity == "lexicon":
        outcome = import_lexicon([LexiconTerm.from_parsed(r) for r in valid], store, batcher)
    elif entity == "regional_pronunciations":
        outcome = import_regional_pronunciations(
            [RegionalPronunciation.from_parsed(r) for r in valid], store
        )
    elif entity == "ontology_concepts":
        outcome = import_ontology_concepts([OntologyConcept.from_parsed(r) for r in valid], store, batcher)
    elif entity == "ontology_relations":
        outcome = import_ontology_relations([OntologyRelation.from_parsed(r) for r in valid], store, batcher)
    else:
        raise ValueError(f"Unknown entity type: {entity}")

    result.merge(outcome)
    logger.info(
        f"{get_schema(entity).display_name} import finished: {result.success_count} written, "
        f"{len(result.errors)} errors"
    )
    return result


def import_file(
    file_path: str,
    entity: str,
    store: Store,
    parser: Optional[TabularParser] = None,
    settings: Optional[ImportSettings] = None,
    row_check: Optional[RowCheck] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[ParseReport, ImportResult]:
    """
    Parse a file and import its valid rows.

    Args:
        file_path: Path to a .csv, .tsv or .xlsx file
        entity: taxonomy, lexicon, regional_pronunciations, ontology_concepts
            or ontology_relations
        store: Target store
        parser: Parser with registered adapters (default: CSV and Excel)
        settings: Batch size and worker count (default: ImportSettings())
        row_check: Optional cross-field check applied during validation
        progress_callback: Called once per written chunk
        cancel_event: Stops remaining chunks when set

    Returns:
        (parse report, import result)

    Raises:
        ValueError: If the entity is unknown or no adapter handles the file
        FileNotFoundError: If the file doesn't exist
    """
    get_schema(entity)
    parser = parser or TabularParser()
    report = parser.parse(file_path, entity, row_check=row_check)
    logger.info(
        f"Parsed {file_path}: {report.valid_count} valid rows, {report.invalid_count} invalid"
    )
    result = import_report(
        report, store, settings=settings,
        progress_callback=progress_callback, cancel_event=cancel_event,
    )
    return report, result


__all__ = [
    "import_file",
    "import_report",
    "import_taxonomy",
    "import_lexicon",
    "import_regional_pronunciations",
    "import_ontology_concepts",
    "import_ontology_relations",
    "HierarchyResolver",
    "UpsertBatcher",
    "BatchProgress",
    "BatchResult",
    "ImportResult",
    "Store",
    "SupabaseStore",
]
