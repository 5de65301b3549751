#!/usr/bin/env python3
"""Example: Review near-duplicate and orphan tags interactively.

Every suggestion is printed with its reasons; nothing is written unless the
operator answers "y".
"""

import logging

from taxokit import load_settings
from taxokit.ingest import SupabaseStore
from taxokit.tags import TagUnificationEngine


def review(engine: TagUnificationEngine):
    engine.load_tags()
    suggestions = engine.propose_suggestions() + engine.propose_adoptions()
    print(f"{len(suggestions)} suggestions\n")

    for suggestion in suggestions:
        data = suggestion.to_dict()
        if data["kind"] == "merge":
            print(f'Merge "{data["tags"][1]}" into "{data["tags"][0]}"?')
        else:
            print(f'Move "{data["orphan"]}" under "{data["parent"]}"?')
        print(f"  confidence {data['confidence']:.2f}: {'; '.join(data['explanations'])}")

        answer = input("  [y]es / [n]o / [s]kip: ").strip().lower()
        if answer == "s":
            continue
        try:
            result = engine.apply_suggestion(suggestion.id, "confirm" if answer == "y" else "dismiss")
        except KeyError:
            # One of the tags was merged away earlier in this session
            print("  (no longer applicable)")
            continue
        for error in result.errors:
            print(f"  ! {error}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    settings = load_settings()
    store = SupabaseStore(db_url=settings.db_url)
    try:
        review(TagUnificationEngine.from_settings(store, settings))
    finally:
        store.close()
