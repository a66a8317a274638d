from __future__ import annotations

from collections.abc import Sequence

from . import utils
from .models import AggregateReport, TweetRecord, UnitOutcome


def build_report_html(
    report: AggregateReport,
    records: Sequence[TweetRecord],
    outcomes: Sequence[UnitOutcome] = (),
) -> str:
    """
    Counts tables followed by one tweets table per candidate:

      <h3>@{candidate}</h3>
      <table> Date | Year | Text | Link </table>
    """
    sections: list[str] = [_counts_table("Candidate", {f"@{k}": v for k, v in report.by_candidate.items()})]
    sections.append(_counts_table("Election year", report.by_period))

    by_candidate: dict[str, list[TweetRecord]] = {}
    for r in records:
        by_candidate.setdefault(r.candidate, []).append(r)

    for candidate, items in by_candidate.items():
        rows = []
        for r in items:
            link_html = f'<a href="{utils.esc(r.url)}">{utils.esc(r.url)}</a>'
            rows.append(
                f"<tr><td>{utils.esc(r.date)}</td><td>{utils.esc(r.period_label)}</td>"
                f"<td>{utils.esc(r.text) or '(no text)'}</td><td>{link_html}</td></tr>"
            )
        table_html = (
            "<table border='1' cellspacing='0' cellpadding='6'>"
            "<tr><th>Date</th><th>Year</th><th>Text</th><th>Link</th></tr>" + "".join(rows) + "</table>"
        )
        sections.append(f"<h3>@{utils.esc(candidate)}</h3>\n{table_html}")

    skipped = [o for o in outcomes if o.state == "skipped"]
    if skipped:
        items_html = "".join(
            f"<li>@{utils.esc(o.unit.candidate)} ({utils.esc(o.unit.period_label)}): {utils.esc(o.error)}</li>"
            for o in skipped
        )
        sections.append(f"<h3>Skipped</h3>\n<ul>{items_html}</ul>")

    return "\n".join(sections)


def wrap_document(content_html: str, *, heading: str | None = None, intro: str | None = None) -> str:
    parts: list[str] = ["<div>"]
    if heading:
        parts.append(f"<h2>{utils.esc(heading)}</h2>")
    if intro:
        parts.append(f"<p>{utils.esc(intro)}</p>")
    parts.append(content_html)
    parts.append("</div>")
    return "\n".join(parts)


def _counts_table(label: str, counts: dict[str, int]) -> str:
    rows = "".join(f"<tr><td>{utils.esc(k)}</td><td>{v}</td></tr>" for k, v in counts.items())
    return (
        "<table border='1' cellspacing='0' cellpadding='6'>"
        f"<tr><th>{utils.esc(label)}</th><th>Tweets</th></tr>{rows}</table>"
    )
