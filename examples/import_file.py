#!/usr/bin/env python3
"""Example: Import a taxonomy, lexicon or ontology file into Supabase.

Connection settings and batch sizes come from the environment (or a .env
file in the current directory). See taxokit/config.py for the variables.
"""

import logging

from taxokit import load_settings
from taxokit.ingest import SupabaseStore, import_file


def run_import(entity: str, input_file: str):
    """Parse and import one file, printing a short report.

    Args:
        entity: taxonomy, lexicon, regional_pronunciations, ontology_concepts
            or ontology_relations
        input_file: Path to a .csv, .tsv or .xlsx file
    """
    settings = load_settings()
    store = SupabaseStore(db_url=settings.db_url)

    def show_progress(event):
        status = "ok" if event.succeeded else "FAILED"
        print(f"  {event.context}: chunk {event.chunk_index}/{event.total_chunks} "
              f"({event.rows_processed}/{event.total_rows} rows) {status}")

    try:
        report, result = import_file(
            input_file, entity, store,
            settings=settings,
            progress_callback=show_progress,
        )
    finally:
        store.close()

    print(f"\n✓ {report.valid_count} valid rows, {report.invalid_count} invalid")
    print(f"✓ {result.success_count} rows written")

    if result.errors:
        print(f"\n{len(result.errors)} errors:")
        for error in result.errors:
            print(f"  - {error}")

    return result


if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        print("Usage: python import_file.py <entity> <input_file>")
        print("\nExample:")
        print("  python import_file.py taxonomy taxonomy.xlsx")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    result = run_import(sys.argv[1], sys.argv[2])
    sys.exit(0 if result.ok else 2)
