from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import AggregateReport, TweetRecord, UnitOutcome

RULE = "=" * 60


def aggregate(records: Iterable[TweetRecord]) -> AggregateReport:
    """
    Single pass over the collected tweets.

    ISO-8601 calendar dates sort lexicographically in chronological order,
    so earliest/latest are plain string min/max.
    """
    total = 0
    by_candidate: dict[str, int] = {}
    by_period: dict[str, int] = {}
    earliest: str | None = None
    latest: str | None = None

    for r in records:
        total += 1
        by_candidate[r.candidate] = by_candidate.get(r.candidate, 0) + 1
        by_period[r.period_label] = by_period.get(r.period_label, 0) + 1
        if earliest is None or r.date < earliest:
            earliest = r.date
        if latest is None or r.date > latest:
            latest = r.date

    return AggregateReport(
        total=total,
        by_candidate=by_candidate,
        by_period=dict(sorted(by_period.items())),
        earliest=earliest,
        latest=latest,
    )


def summary_lines(report: AggregateReport, outcomes: Sequence[UnitOutcome] = ()) -> list[str]:
    """Plain-text run summary, one string per line."""
    lines = [RULE, "ORCHESTRATION SUMMARY", RULE, f"Total tweets collected: {report.total}"]

    lines.append("")
    lines.append("Breakdown by candidate:")
    for candidate, count in report.by_candidate.items():
        lines.append(f"  @{candidate}: {count} tweets")

    lines.append("")
    lines.append("Breakdown by election year:")
    for period, count in report.by_period.items():
        lines.append(f"  {period}: {count} tweets")

    if report.total:
        lines.append("")
        lines.append(f"Date range of collected tweets: {report.earliest} to {report.latest}")

    skipped = [o for o in outcomes if o.state == "skipped"]
    if skipped:
        lines.append("")
        lines.append(f"Skipped units ({len(skipped)}):")
        for o in skipped:
            lines.append(f"  @{o.unit.candidate} ({o.unit.period_label}): {o.error}")

    lines.append(RULE)
    return lines


def summary_message(report: AggregateReport, *, units: int) -> str:
    """
    One-line summary like:
        "7 tweets from 2 candidates across 3 units"
    """
    return f"{report.total} tweets from {len(report.by_candidate)} candidates across {units} units"
