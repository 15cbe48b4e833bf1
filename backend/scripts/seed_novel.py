#!/usr/bin/env python3
"""
Load a novel fixture (YAML) into the Storyloom database.

The fixture holds the novel itself plus optional characters, plot points,
chapters and generated storylines. Storylines go through the same graph
persistence as accepted AI output, so a bad connection index is reported and
skipped rather than written.

Run from backend/:
    python3 scripts/seed_novel.py scripts/fixtures/the_gate.yaml
    python3 scripts/seed_novel.py scripts/fixtures/the_gate.yaml --db /tmp/storyloom.db --dry-run
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

# ── ensure backend root is on sys.path so bare imports work ──
BACKEND_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BACKEND_ROOT))

from models import Chapter, Character, Novel, PlotPoint  # noqa: E402
from models.generation import GeneratedStoryline  # noqa: E402
from services.storyline_graph import StorylineGraphService  # noqa: E402
from storage import NovelStore, new_id  # noqa: E402

DEFAULT_DB_PATH = BACKEND_ROOT / ".." / "data" / "storyloom.db"


def load_fixture(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        fixture = yaml.safe_load(f) or {}
    if not isinstance(fixture, dict) or not isinstance(fixture.get("novel"), dict):
        raise ValueError(f"fixture has no 'novel' mapping: {path}")
    return fixture


def seed(store: NovelStore, fixture: Dict[str, Any]) -> Dict[str, Any]:
    """Write one fixture into ``store`` and return per-kind row counts."""
    novel_data = dict(fixture["novel"])
    novel = store.add_novel(Novel.model_validate({"id": novel_data.pop("id", None) or new_id(), **novel_data}))

    counts: Dict[str, Any] = {"characters": 0, "plotPoints": 0, "chapters": 0, "storylines": 0, "rejected": 0}
    for item in fixture.get("characters") or []:
        store.add_character(Character.model_validate({"id": new_id(), "novelId": novel.id, **item}))
        counts["characters"] += 1
    for item in fixture.get("plotPoints") or []:
        store.add_plot_point(PlotPoint.model_validate({"id": new_id(), "novelId": novel.id, **item}))
        counts["plotPoints"] += 1
    for order, item in enumerate(fixture.get("chapters") or [], 1):
        payload = {"id": new_id(), "novelId": novel.id, "order": order, **item}
        payload.setdefault("wordCount", len(str(payload.get("content", "")).split()))
        store.add_chapter(Chapter.model_validate(payload))
        counts["chapters"] += 1

    storylines = [GeneratedStoryline.model_validate(item) for item in fixture.get("storylines") or []]
    if storylines:
        outcomes = StorylineGraphService(store).persist_generated(novel.id, storylines)
        for outcome in outcomes:
            if outcome.ok:
                counts["storylines"] += 1
            else:
                counts["rejected"] += 1
                print(f"  ⚠ storyline '{outcome.title}' skipped: {outcome.error}")

    counts["novelId"] = novel.id
    return counts


def main():
    parser = argparse.ArgumentParser(description="Seed a novel fixture into the Storyloom database")
    parser.add_argument("fixture", type=Path, help="path to a YAML fixture")
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="SQLite database path")
    parser.add_argument("--dry-run", action="store_true", help="validate the fixture without writing")
    args = parser.parse_args()

    fixture = load_fixture(args.fixture)
    print("=" * 60)
    print(f"  Fixture: {args.fixture}")
    print(f"  Novel:   {fixture['novel'].get('title', '?')}")
    print("=" * 60)

    if args.dry_run:
        for key in ("characters", "plotPoints", "chapters", "storylines"):
            print(f"  {key}: {len(fixture.get(key) or [])}")
        print("Dry run, nothing written.")
        return

    store = NovelStore(str(args.db.resolve()))
    counts = seed(store, fixture)
    print(f"✓ Novel {counts['novelId']} written to {store.db_path}")
    print(
        f"✓ {counts['characters']} characters, {counts['plotPoints']} plot points, "
        f"{counts['chapters']} chapters, {counts['storylines']} storylines"
    )
    if counts["rejected"]:
        print(f"⚠ {counts['rejected']} storylines rejected")


if __name__ == "__main__":
    main()
