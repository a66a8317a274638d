#!/usr/bin/env python3
"""
Print the latest collected tweets plus a summary from a collector output file.

Usage:
    python scripts/print_collected.py PATH [LIMIT]

PATH is either a JSONL output (sink "jsonl") or a SQLite database (sink "sqlite").
"""

import json
import sqlite3
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from modules.candidate_tweets.lib.models import TweetRecord  # noqa: E402
from modules.candidate_tweets.lib.report import aggregate, summary_lines  # noqa: E402


def read_jsonl(path: Path) -> list[TweetRecord]:
    out: list[TweetRecord] = []
    with path.open(encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError:
                print(f"Skipping malformed line {lineno}", file=sys.stderr)
                continue
            out.append(
                TweetRecord(
                    candidate=str(row.get("candidate") or ""),
                    election_year=row.get("electionYear"),
                    date=str(row.get("date") or ""),
                    text=str(row.get("text") or ""),
                    url=str(row.get("url") or ""),
                )
            )
    return out


def read_sqlite(path: Path) -> list[TweetRecord]:
    conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
    try:
        rows = conn.execute("SELECT candidate, election_year, date, text, url FROM tweets ORDER BY id").fetchall()
    finally:
        conn.close()
    return [TweetRecord(candidate=c, election_year=y, date=d, text=t, url=u) for c, y, d, t, u in rows]


def main() -> int:
    if len(sys.argv) < 2:
        print(__doc__.strip(), file=sys.stderr)
        return 2

    path = Path(sys.argv[1])
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 1

    limit = 15
    if len(sys.argv) > 2:
        try:
            limit = int(sys.argv[2])
            if limit <= 0:
                raise ValueError
        except ValueError:
            print(f"Invalid limit: {sys.argv[2]}. Using default (15).", file=sys.stderr)
            limit = 15

    records = read_jsonl(path) if path.suffix == ".jsonl" else read_sqlite(path)

    latest = sorted(records, key=lambda r: r.date, reverse=True)[:limit]
    print(f"{len(records)} tweet(s) in {path}. Showing latest {len(latest)}.\n")
    for i, r in enumerate(latest, 1):
        print(f"{i:2d}. [{r.date}] @{r.candidate} ({r.period_label})")
        print(f"     {r.text[:140]}")
        print(f"     {r.url}")
        print()

    for line in summary_lines(aggregate(records)):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
