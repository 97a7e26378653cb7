#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.recommender import RecommendationEngine  # noqa: E402
from backend.app.recommender.types import ChatTurn, SelectionResult  # noqa: E402


def _as_text(result: SelectionResult) -> str:
    lines: list[str] = []
    intent = result.intent
    if intent is not None:
        lines.append(f"{intent.natural_language_intent} (confidence {intent.confidence:.2f})")
    if result.viewport is not None:
        c = result.viewport.center
        lines.append(f"Map: {c.lat:.4f}, {c.lng:.4f} @ zoom {result.viewport.zoom}")
    lines.append(
        f"{len(result.markers)} places ({len(result.highlighted_ids)} highlighted) "
        f"from {result.stats.total_candidates} candidates"
    )
    for rec in result.top_recommendations or []:
        lines.append(f"{rec.rank}. {rec.poi.name} [{rec.poi.category}] {rec.match_score}%")
        lines.append(f"   Why: {rec.reasoning}")
        if rec.highlights:
            lines.append(f"   {' · '.join(rec.highlights)}")
    if result.discover_also:
        lines.append("Also worth a look:")
        for item in result.discover_also:
            lines.append(f" - {item.poi.name}: {item.reason}. {item.connection_to_query}")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Recommend places for a free-text request.")
    parser.add_argument("query", help="Free-text request, e.g. 'romantic dinner near seven mile beach'")
    parser.add_argument(
        "--history",
        action="append",
        default=[],
        metavar="MESSAGE",
        help="Earlier user message (repeatable, oldest first)",
    )
    parser.add_argument("--no-reasoning", action="store_true", help="Skip ranked justifications")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    args = parser.parse_args()

    engine = RecommendationEngine.default()
    history = [ChatTurn(role="user", content=msg) for msg in args.history]
    result = engine.recommend_sync(args.query, history=history, reasoning=not args.no_reasoning)

    if args.json:
        print(json.dumps(asdict(result), ensure_ascii=False, indent=2, default=str))
    else:
        print(_as_text(result))


if __name__ == "__main__":
    main()
