from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

SORT_LATEST = "Latest"


def period_label(election_year: Any) -> str:
    """
    Grouping key for an election year, spelled the way the input JSON would:
    2024 / 2024.0 -> "2024", True -> "true", None -> "null".
    """
    if election_year is None:
        return "null"
    if isinstance(election_year, bool):
        return "true" if election_year else "false"
    if isinstance(election_year, float) and election_year.is_integer():
        return str(int(election_year))
    return str(election_year)


@dataclass(frozen=True)
class WorkUnit:
    """
    One (candidate, election window) pair, queried independently.
    start <= end is NOT validated; an inverted window simply matches nothing.
    A unit whose entry could not be read keeps the reason in `problem`
    (start/end are None) and is skipped without a provider call.
    """

    candidate: str  # handle without the leading '@'
    election_year: Any  # raw value from input (int or str)
    start: date | None
    end: date | None
    problem: str | None = None

    @property
    def period_label(self) -> str:
        return period_label(self.election_year)

    def label(self) -> str:
        return f"{self.candidate or '?'}/{self.period_label}"


@dataclass(frozen=True)
class RequestSpec:
    """Provider query for a single unit (see planner.build_request)."""

    query: str
    requested_count: int
    sort: str = SORT_LATEST
    add_user_info: bool = True
    include_search_terms: bool = False

    def to_actor_input(self) -> dict[str, Any]:
        return {
            "searchTerms": [self.query],
            "maxItems": self.requested_count,
            "sort": self.sort,
            "includeSearchTerms": self.include_search_terms,
            "addUserInfo": self.add_user_info,
        }


@dataclass(frozen=True)
class FetchBatch:
    """Raw provider items for one unit; run_id is provider-specific (may be None)."""

    items: list[dict[str, Any]]
    run_id: str | None = None


@dataclass(frozen=True)
class TweetRecord:
    """
    A normalized tweet. `date` is an ISO-8601 calendar date (UTC, no time part).
    """

    candidate: str
    election_year: Any
    date: str
    text: str
    url: str

    @property
    def period_label(self) -> str:
        return period_label(self.election_year)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate": self.candidate,
            "electionYear": self.election_year,
            "date": self.date,
            "text": self.text,
            "url": self.url,
        }


ACCUMULATED = "accumulated"
SKIPPED = "skipped"


@dataclass
class UnitOutcome:
    unit: WorkUnit
    state: str
    raw_count: int = 0
    kept_count: int = 0
    run_id: str | None = None
    error: str | None = None


@dataclass
class CollectionResult:
    """
    Everything one orchestration pass produced.
    - records: normalized tweets in unit-processing order (append-only during collect)
    - outcomes: one entry per unit, same order as the input
    """

    records: list[TweetRecord] = field(default_factory=list)
    outcomes: list[UnitOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.state == SKIPPED]


@dataclass(frozen=True)
class AggregateReport:
    total: int
    by_candidate: dict[str, int]
    by_period: dict[str, int]  # keys in lexicographic order
    earliest: str | None
    latest: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_candidate": dict(self.by_candidate),
            "by_period": dict(self.by_period),
            "earliest": self.earliest,
            "latest": self.latest,
        }
