"""
Chunked, idempotent upserts.

Rows are written in fixed-size chunks keyed on a natural key, so re-running
an import updates rows instead of duplicating them. A failing chunk is
recorded and the remaining chunks still run; chunks already written are
never rolled back.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .store import Store

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50


@dataclass
class BatchProgress:
    """Progress event emitted once per chunk, in chunk order."""
    context: str
    chunk_index: int       # 1-based
    total_chunks: int
    rows_processed: int    # rows in this and all previous chunks
    total_rows: int
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    success_count: int = 0
    errors: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False


ProgressCallback = Callable[[BatchProgress], None]


def conflict_columns(on_conflict: Optional[str]) -> List[str]:
    if not on_conflict:
        return []
    return [c.strip() for c in on_conflict.split(",") if c.strip()]


def collapse_duplicate_keys(
    rows: List[Dict[str, Any]],
    on_conflict: Optional[str]
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Drop earlier rows that share a conflict key with a later row.

    Postgres refuses to update the same row twice in one statement, so each
    key may appear once per call. The last occurrence wins and takes the
    position of that last occurrence.

    Returns:
        (collapsed rows, number of rows dropped)
    """
    columns = conflict_columns(on_conflict)
    if not columns:
        return list(rows), 0

    by_key: Dict[Any, Dict[str, Any]] = {}
    unkeyed: List[Tuple[int, Dict[str, Any]]] = []
    order: Dict[Any, int] = {}

    for position, row in enumerate(rows):
        key = tuple(row.get(c) for c in columns)
        if any(part is None for part in key):
            unkeyed.append((position, row))
            continue
        by_key[key] = row
        order[key] = position

    ordered = [(order[k], r) for k, r in by_key.items()] + unkeyed
    ordered.sort(key=lambda item: item[0])
    collapsed = [row for _, row in ordered]
    return collapsed, len(rows) - len(collapsed)


class UpsertBatcher:
    """
    Writes rows to a Store in chunks.

    Chunks of one call may run concurrently on a bounded thread pool
    (max_workers > 1). Results, progress callbacks and error messages are
    always produced in the calling thread, in chunk order.
    """

    def __init__(
        self,
        store: Store,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Args:
            store: Store to write to
            chunk_size: Rows per upsert call (must be >= 1)
            max_workers: Concurrent chunks per call (1 runs sequentially)
            progress_callback: Called once per chunk with a BatchProgress
            cancel_event: When set, chunks not yet started are skipped
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.store = store
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _write_chunk(
        self,
        table: str,
        chunk: List[Dict[str, Any]],
        on_conflict: Optional[str]
    ) -> Tuple[Optional[List[Dict[str, Any]]], Optional[Exception]]:
        # (None, None) means the chunk was skipped by cancellation
        if self._cancelled():
            return None, None
        try:
            return self.store.upsert(table, chunk, on_conflict=on_conflict) or [], None
        except Exception as e:
            return None, e

    def upsert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        on_conflict: Optional[str] = None,
        context: Optional[str] = None
    ) -> BatchResult:
        """
        Upsert rows in chunks.

        Args:
            table: Target table
            rows: Rows to write
            on_conflict: Natural key columns (comma-separated), None for plain insert
            context: Prefix for error messages and logs, e.g. "Level 2"

        Returns:
            BatchResult with the accepted row count, per-chunk errors and the
            rows the store returned
        """
        context = context or table
        result = BatchResult()
        if not rows:
            return result

        rows, dropped = collapse_duplicate_keys(rows, on_conflict)
        if dropped:
            logger.warning(
                f"{context}: collapsed {dropped} rows sharing a '{on_conflict}' key (last occurrence wins)"
            )

        chunks = [rows[i:i + self.chunk_size] for i in range(0, len(rows), self.chunk_size)]
        total_chunks = len(chunks)

        if self.max_workers == 1 or total_chunks == 1:
            outcomes = (self._write_chunk(table, chunk, on_conflict) for chunk in chunks)
            self._collect(result, context, chunks, outcomes, len(rows))
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._write_chunk, table, chunk, on_conflict)
                    for chunk in chunks
                ]
                outcomes = (future.result() for future in futures)
                self._collect(result, context, chunks, outcomes, len(rows))

        return result

    def _collect(self, result, context, chunks, outcomes, total_rows) -> None:
        total_chunks = len(chunks)
        start = 0
        skipped_rows = 0
        first_skipped = None

        for index, (chunk, (returned, error)) in enumerate(zip(chunks, outcomes), start=1):
            first_row, last_row = start + 1, start + len(chunk)
            start = last_row

            if returned is None and error is None:
                skipped_rows += len(chunk)
                if first_skipped is None:
                    first_skipped = index
                continue

            message = None
            if error is not None:
                message = f"{context}, chunk {index} (rows {first_row}-{last_row}): {error}"
                logger.error(f"Upsert failed: {message}", exc_info=error)
                result.errors.append(message)
            else:
                result.success_count += len(chunk)
                result.rows.extend(returned)
                logger.info(f"{context}: chunk {index}/{total_chunks} upserted {len(chunk)} rows")

            if self.progress_callback is not None:
                self.progress_callback(BatchProgress(
                    context=context,
                    chunk_index=index,
                    total_chunks=total_chunks,
                    rows_processed=last_row,
                    total_rows=total_rows,
                    error=message,
                ))

        if first_skipped is not None:
            result.cancelled = True
            message = (
                f"{context}: cancelled before chunk {first_skipped} of {total_chunks}, "
                f"{skipped_rows} rows not written"
            )
            logger.warning(message)
            result.errors.append(message)
