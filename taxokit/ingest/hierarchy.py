"""
Level-ordered taxonomy import.

Taxonomy rows reference their parent by code, but the store links nodes by
id. Nodes are therefore written one level at a time, shallowest first, and
the ids returned for each level are fed into a code -> (id, level) map used
to resolve the next level's parents.

Parent resolution is strict:
- the parent must exist in the store (or be written earlier in this run)
- the parent's level must be strictly lower than the child's
- a node cannot be its own parent

A record failing any of these is reported once and skipped; it is not
retried later in the same run. Nothing is ever deleted.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models import ResolvedTaxonomyNode, TaxonomyRecord
from ..schema import TAXONOMY_SCHEMA
from .batcher import UpsertBatcher
from .store import ImportResult, Store

logger = logging.getLogger(__name__)

TAXONOMY_TABLE = TAXONOMY_SCHEMA.table
TAXONOMY_CONFLICT_KEY = TAXONOMY_SCHEMA.conflict_key


def dedupe_records(records: List[TaxonomyRecord]) -> List[TaxonomyRecord]:
    """
    Collapse records sharing a code.

    The last occurrence in the file wins, and each collision is logged as a
    warning naming both rows. Surviving records keep file order.
    """
    by_code: Dict[str, TaxonomyRecord] = {}
    for record in records:
        previous = by_code.pop(record.code, None)
        if previous is not None:
            logger.warning(
                f'Duplicate taxonomy code "{record.code}": row {record.row_number} '
                f'overrides row {previous.row_number}'
            )
        by_code[record.code] = record
    return list(by_code.values())


class HierarchyResolver:
    """Resolves parent codes to ids and writes taxonomy nodes level by level."""

    def __init__(self, store: Store, batcher: Optional[UpsertBatcher] = None):
        self.store = store
        self.batcher = batcher or UpsertBatcher(store)
        # code -> (id, level), the single accumulation point for resolved nodes
        self.code_map: Dict[str, Tuple[Any, int]] = {}

    def _remember(self, rows: List[Dict[str, Any]], default_level: Optional[int] = None) -> None:
        for row in rows:
            code = row.get("code")
            if code is None or row.get("id") is None:
                continue
            level = row.get("level", default_level)
            self.code_map[code] = (row["id"], int(level) if level is not None else 0)

    def _lookup(self, codes: List[str], result: ImportResult, context: str) -> None:
        """Fetch codes missing from the map; a failed lookup is reported, not raised."""
        missing = sorted(c for c in set(codes) if c not in self.code_map)
        if not missing:
            return
        try:
            rows = self.store.select(
                TAXONOMY_TABLE, key="code", values=missing, columns=["id", "code", "level"]
            )
        except Exception as e:
            message = f"{context}: lookup of {len(missing)} taxonomy codes failed: {e}"
            logger.error(message, exc_info=True)
            result.errors.append(message)
            return
        self._remember(rows)

    def _resolve_parent(self, record: TaxonomyRecord) -> Tuple[Optional[Any], Optional[str]]:
        level = record.level
        if record.parent_code is None:
            return None, None
        if record.parent_code == record.code:
            return None, f'Level {level}: "{record.code}" cannot be its own parent'
        entry = self.code_map.get(record.parent_code)
        if entry is None:
            return None, f'Level {level}: parent "{record.parent_code}" not found for "{record.code}"'
        parent_id, parent_level = entry
        if parent_level >= level:
            return None, (
                f'Level {level}: parent "{record.parent_code}" is at level {parent_level}, '
                f'not above "{record.code}"'
            )
        return parent_id, None

    def resolve(self, records: List[TaxonomyRecord]) -> ImportResult:
        """
        Write taxonomy records to the store in ascending level order.

        Args:
            records: Validated taxonomy records (duplicates allowed)

        Returns:
            ImportResult with the number of nodes written and every row,
            reference and chunk error
        """
        result = ImportResult()
        records = dedupe_records(records)
        if not records:
            return result

        by_level: Dict[int, List[TaxonomyRecord]] = {}
        for record in records:
            by_level.setdefault(record.level, []).append(record)
        levels = sorted(by_level)

        # Seed with everything the file mentions, as node or as parent
        mentioned = [r.code for r in records] + [r.parent_code for r in records if r.parent_code]
        self._lookup(mentioned, result, "Seed")

        logger.info(f"Importing {len(records)} taxonomy nodes across levels {levels}")

        for level in levels:
            cancel_event = self.batcher.cancel_event
            if cancel_event is not None and cancel_event.is_set():
                message = f"Level {level}: cancelled, levels {[l for l in levels if l >= level]} not written"
                logger.warning(message)
                result.errors.append(message)
                break

            level_records = by_level[level]
            self._lookup(
                [r.parent_code for r in level_records if r.parent_code],
                result,
                f"Level {level}",
            )

            rows = []
            for record in level_records:
                parent_id, error = self._resolve_parent(record)
                if error:
                    logger.warning(f"{error} (row {record.row_number})")
                    result.errors.append(error)
                    continue
                rows.append(ResolvedTaxonomyNode.from_record(record, parent_id).to_row())

            if not rows:
                logger.info(f"Level {level}: nothing to write")
                continue

            batch = self.batcher.upsert(
                TAXONOMY_TABLE, rows, on_conflict=TAXONOMY_CONFLICT_KEY, context=f"Level {level}"
            )
            self._remember(batch.rows, default_level=level)
            result.success_count += batch.success_count
            result.errors.extend(batch.errors)
            logger.info(
                f"Level {level}: {batch.success_count}/{len(rows)} nodes written, "
                f"{len(batch.errors)} chunk errors"
            )

        return result


def import_taxonomy(
    records: List[TaxonomyRecord],
    store: Store,
    batcher: Optional[UpsertBatcher] = None
) -> ImportResult:
    """
    Import taxonomy records into the store.

    Re-importing the same file updates nodes in place (upsert on code);
    running it twice leaves the store as the first run left it.

    Args:
        records: Validated taxonomy records
        store: Target store
        batcher: Configured batcher (chunk size, workers, progress, cancellation);
            a default one is built when omitted

    Returns:
        ImportResult
    """
    return HierarchyResolver(store, batcher).resolve(records)
