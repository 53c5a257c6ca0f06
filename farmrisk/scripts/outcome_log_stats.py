from __future__ import annotations

import argparse
import json
from collections import Counter
from pathlib import Path
from typing import Any

ADVERSE_OUTCOMES = {"poor", "failed", "crop_failure", "loss"}
LEVELS = ("LOW", "MEDIUM", "HIGH")


def _format_rate(n: int, d: int) -> str:
    if d <= 0:
        return "n/a"
    return f"{(100.0 * n / d):.1f}% ({n}/{d})"


def parse_log(path: Path) -> dict[str, Any]:
    by_level: dict[str, Counter[str]] = {level: Counter() for level in LEVELS}
    model_versions: Counter[str] = Counter()
    farms: set[str] = set()
    invalid_lines = 0
    total = 0

    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        if not line.strip():
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            invalid_lines += 1
            continue
        if not isinstance(event, dict):
            invalid_lines += 1
            continue
        level = str(event.get("predicted_level", "")).upper()
        outcome = str(event.get("actual_outcome", "")).strip().lower()
        if level not in by_level or not outcome:
            invalid_lines += 1
            continue
        total += 1
        by_level[level][outcome] += 1
        farms.add(str(event.get("farm_id", "")))
        for analyzer, version in sorted(dict(event.get("model_versions", {}) or {}).items()):
            model_versions[f"{analyzer}={version}"] += 1

    return {
        "total": total,
        "invalid_lines": invalid_lines,
        "farms": len(farms),
        "by_level": by_level,
        "model_versions": model_versions,
    }


def adverse_rate(outcomes: Counter[str]) -> tuple[int, int]:
    adverse = sum(count for name, count in outcomes.items() if name in ADVERSE_OUTCOMES)
    return adverse, sum(outcomes.values())


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Summarize recorded outcomes against predicted risk levels from the outcome JSONL log"
    )
    parser.add_argument(
        "--log-path",
        default="outcomes.jsonl",
        help="Path to the outcome log written when FARMRISK_OUTCOME_LOG_PATH is set (default: outcomes.jsonl)",
    )
    parser.add_argument(
        "--by-model",
        action="store_true",
        help="Also print how many outcomes each analyzer model version is linked to.",
    )
    args = parser.parse_args()

    path = Path(args.log_path).expanduser()
    if not path.exists():
        raise SystemExit(f"log file not found: {path}")

    stats = parse_log(path)

    print(f"log_path: {path}")
    print(f"outcomes: {stats['total']} farms: {stats['farms']} invalid_lines: {stats['invalid_lines']}")
    for level in LEVELS:
        adverse, count = adverse_rate(stats["by_level"][level])
        print(f"predicted_{level.lower()}_adverse_rate: {_format_rate(adverse, count)}")

    if args.by_model:
        for name, count in sorted(stats["model_versions"].items()):
            print(f"model_version {name}: {count}")


if __name__ == "__main__":
    main()
