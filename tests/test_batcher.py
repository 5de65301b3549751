"""Tests for chunked upserts."""

import threading

import pytest

from taxokit.ingest.batcher import UpsertBatcher, collapse_duplicate_keys


def make_rows(count, prefix="t"):
    return [{"term_normalized": f"{prefix}{i}", "term": f"T{i}"} for i in range(count)]


class TestCollapseDuplicateKeys:

    def test_last_occurrence_wins_at_its_position(self):
        rows = [
            {"code": "a", "name": "first"},
            {"code": "b", "name": "B"},
            {"code": "a", "name": "second"},
        ]
        collapsed, dropped = collapse_duplicate_keys(rows, "code")

        assert dropped == 1
        assert collapsed == [{"code": "b", "name": "B"}, {"code": "a", "name": "second"}]

    def test_composite_key(self):
        rows = [
            {"subject_id": 1, "predicate": "is_a", "object_id": 2, "weight": 0.5},
            {"subject_id": 1, "predicate": "causes", "object_id": 2, "weight": 0.5},
            {"subject_id": 1, "predicate": "is_a", "object_id": 2, "weight": 0.9},
        ]
        collapsed, dropped = collapse_duplicate_keys(rows, "subject_id,predicate,object_id")

        assert dropped == 1
        assert collapsed[-1]["weight"] == 0.9

    def test_no_conflict_key_keeps_everything(self):
        rows = [{"a": 1}, {"a": 1}]
        assert collapse_duplicate_keys(rows, None) == (rows, 0)


class TestUpsertBatcher:

    def test_rejects_bad_sizes(self, store):
        with pytest.raises(ValueError):
            UpsertBatcher(store, chunk_size=0)
        with pytest.raises(ValueError):
            UpsertBatcher(store, max_workers=0)

    def test_chunks_and_counts(self, store):
        result = UpsertBatcher(store, chunk_size=50).upsert(
            "lexicon_terms", make_rows(120), on_conflict="term_normalized"
        )

        assert result.success_count == 120
        assert result.errors == []
        assert [len(c) for c in store.upsert_calls("lexicon_terms")] == [50, 50, 20]
        assert len(result.rows) == 120

    def test_empty_rows_make_no_calls(self, store):
        result = UpsertBatcher(store).upsert("lexicon_terms", [], on_conflict="term_normalized")

        assert result.success_count == 0
        assert store.calls == []

    def test_rerun_is_idempotent(self, store):
        batcher = UpsertBatcher(store, chunk_size=7)
        batcher.upsert("lexicon_terms", make_rows(20), on_conflict="term_normalized")
        batcher.upsert("lexicon_terms", make_rows(20), on_conflict="term_normalized")

        assert len(store.rows("lexicon_terms")) == 20

    def test_failed_chunk_does_not_stop_the_rest(self, store):
        store.fail_upsert = lambda table, rows: rows[0]["term_normalized"] == "t50"

        result = UpsertBatcher(store, chunk_size=50).upsert(
            "lexicon_terms", make_rows(120), on_conflict="term_normalized", context="Lexicon"
        )

        assert result.success_count == 70
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Lexicon, chunk 2 (rows 51-100): simulated failure")
        assert len(store.rows("lexicon_terms")) == 70

    def test_duplicate_keys_within_a_call_are_collapsed(self, store):
        rows = make_rows(3) + [{"term_normalized": "t0", "term": "T0 again"}]

        result = UpsertBatcher(store).upsert("lexicon_terms", rows, on_conflict="term_normalized")

        assert result.errors == []
        assert store.by("lexicon_terms", "term_normalized")["t0"]["term"] == "T0 again"

    def test_progress_events_in_order(self, store):
        events = []
        UpsertBatcher(store, chunk_size=4, progress_callback=events.append).upsert(
            "lexicon_terms", make_rows(10), on_conflict="term_normalized", context="Lexicon"
        )

        assert [(e.chunk_index, e.total_chunks, e.rows_processed) for e in events] == [
            (1, 3, 4), (2, 3, 8), (3, 3, 10)
        ]
        assert all(e.succeeded and e.context == "Lexicon" for e in events)

    def test_parallel_chunks_keep_order(self, store):
        events = []
        store.fail_upsert = lambda table, rows: rows[0]["term_normalized"] == "t10"

        result = UpsertBatcher(
            store, chunk_size=5, max_workers=4, progress_callback=events.append
        ).upsert("lexicon_terms", make_rows(30), on_conflict="term_normalized", context="Lexicon")

        assert [e.chunk_index for e in events] == [1, 2, 3, 4, 5, 6]
        assert result.success_count == 25
        assert result.errors == [
            "Lexicon, chunk 3 (rows 11-15): simulated failure writing lexicon_terms"
        ]
        assert [r["term_normalized"] for r in result.rows] == [
            f"t{i}" for i in range(30) if not 10 <= i < 15
        ]

    def test_cancellation_skips_remaining_chunks(self, store):
        cancel = threading.Event()

        def stop_after_first(event):
            cancel.set()

        result = UpsertBatcher(
            store, chunk_size=5, progress_callback=stop_after_first, cancel_event=cancel
        ).upsert("lexicon_terms", make_rows(15), on_conflict="term_normalized", context="Lexicon")

        assert result.cancelled
        assert result.success_count == 5
        assert result.errors == ["Lexicon: cancelled before chunk 2 of 3, 10 rows not written"]
        assert len(store.upsert_calls("lexicon_terms")) == 1
