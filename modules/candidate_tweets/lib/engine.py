"""
Engine for collecting candidate tweets unit by unit, persisting them, and reporting.

Features:
  - Strictly sequential: one provider call in flight, fixed pause between units
  - Per-unit failure isolation (FetchError -> unit skipped, run continues)
  - Persistence pass after collection, summary after persistence
  - Dependency injection for testability (`fetcher`, `sink`, `get_fetcher`, `sleep`)
  - Structured logging via `logging_bridge`
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from . import logging_bridge, normalizer, planner, report
from .config import ConfigError, Settings
from .fetchers.base import BaseFetcher, FetchError
from .models import ACCUMULATED, SKIPPED, AggregateReport, CollectionResult, TweetRecord, UnitOutcome, WorkUnit
from .sinks import BaseSink, build_sink

LOG = logging.getLogger(__name__)

Sleep = Callable[[float], None]


# =============================================================================
# PACING
# =============================================================================
@dataclass(frozen=True)
class PacingPolicy:
    """
    Courtesy delay between consecutive units.

    The pause is unconditional: it happens after every unit except the last,
    whether that unit succeeded or was skipped.
    """

    delay_ms: int = 1000
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> PacingPolicy:
        return cls(delay_ms=settings.delay_ms)

    def pause_after(self, index: int, total: int, sleep: Sleep = time.sleep) -> bool:
        """Sleep after unit `index` (0-based) of `total`; return True if it slept."""
        if not self.enabled or self.delay_ms <= 0 or index >= total - 1:
            return False
        sleep(self.delay_ms / 1000.0)
        return True


# =============================================================================
# DEFAULT FETCHER LOOKUP (PRODUCTION)
# =============================================================================
def _default_get_fetcher(kind: str) -> type[BaseFetcher]:
    from .fetchers.registry import get as get_fetcher_class

    return get_fetcher_class(kind)


def build_fetcher(
    settings: Settings,
    get_fetcher: Callable[[str], type[BaseFetcher]] | None = None,
) -> BaseFetcher:
    lookup = get_fetcher or _default_get_fetcher
    try:
        fetcher_cls = lookup(settings.fetcher_kind)
    except KeyError as e:
        raise ConfigError(f"Unknown fetcher {settings.fetcher_kind!r}.") from e
    return fetcher_cls.from_settings(settings)


# =============================================================================
# COLLECTION (the orchestration loop)
# =============================================================================
def collect(
    settings: Settings,
    fetcher: BaseFetcher,
    *,
    pacing: PacingPolicy | None = None,
    sleep: Sleep = time.sleep,
) -> CollectionResult:
    """
    Run every unit in order: plan -> fetch -> normalize -> accumulate.

    Returns a CollectionResult whose records are in unit-processing order.
    """
    pacing = pacing or PacingPolicy.from_settings(settings)
    result = CollectionResult()
    total = len(settings.units)

    for idx, unit in enumerate(settings.units):
        LOG.info(
            "[Run %d/%d] Processing @%s (%s: %s -> %s)",
            idx + 1,
            total,
            unit.candidate,
            unit.period_label,
            unit.start.isoformat() if unit.start else "?",
            unit.end.isoformat() if unit.end else "?",
        )
        if unit.problem:
            outcome, records = _reject_unit(unit), []
        else:
            outcome, records = _process_unit(unit, settings, fetcher)
        result.outcomes.append(outcome)
        result.records.extend(records)

        pacing.pause_after(idx, total, sleep)

    return result


def _reject_unit(unit: WorkUnit) -> UnitOutcome:
    LOG.error("Skipping unit %s: %s", unit.label(), unit.problem)
    logging_bridge.error({
        "component": "candidate_tweets.engine",
        "op": "unit_skipped",
        "candidate": unit.candidate,
        "election_year": unit.period_label,
        "error": unit.problem,
    })
    return UnitOutcome(unit=unit, state=SKIPPED, error=unit.problem)


def _process_unit(
    unit: WorkUnit,
    settings: Settings,
    fetcher: BaseFetcher,
) -> tuple[UnitOutcome, list[TweetRecord]]:
    request = planner.build_request(
        unit,
        per_unit_cap=settings.max_tweets_per_run,
        inflation_multiplier=settings.inflation_multiplier,
        add_user_info=settings.add_user_info,
    )
    logging_bridge.activity({
        "component": "candidate_tweets.engine",
        "op": "unit_start",
        "candidate": unit.candidate,
        "election_year": unit.period_label,
        "query": request.query,
        "requested": request.requested_count,
    })

    try:
        batch = fetcher.fetch(request)
    except FetchError as e:
        LOG.error("Error scraping @%s for %s: %s", unit.candidate, unit.period_label, e)
        logging_bridge.error({
            "component": "candidate_tweets.engine",
            "op": "unit_skipped",
            "candidate": unit.candidate,
            "election_year": unit.period_label,
            "query": request.query,
            "error": str(e),
        })
        return UnitOutcome(unit=unit, state=SKIPPED, error=str(e)), []

    records = normalizer.normalize(
        batch.items,
        unit,
        per_unit_cap=settings.max_tweets_per_run,
        window_end_time=settings.window_end_time,
    )
    LOG.info(
        "  run %s: retrieved %d raw tweets, %d within date range",
        batch.run_id or "-",
        len(batch.items),
        len(records),
    )
    logging_bridge.activity({
        "component": "candidate_tweets.engine",
        "op": "unit_fetched",
        "candidate": unit.candidate,
        "election_year": unit.period_label,
        "run_id": batch.run_id,
        "requested": request.requested_count,
        "raw_count": len(batch.items),
        "kept_count": len(records),
    })
    outcome = UnitOutcome(
        unit=unit,
        state=ACCUMULATED,
        raw_count=len(batch.items),
        kept_count=len(records),
        run_id=batch.run_id,
    )
    return outcome, records


# =============================================================================
# PERSISTENCE
# =============================================================================
def persist(records: list[TweetRecord], sink: BaseSink) -> int:
    """
    Append every record in order. Write failures propagate (PersistenceError);
    records appended before the failure stay written.
    """
    written = 0
    try:
        for r in records:
            sink.append(r)
            written += 1
    finally:
        sink.close()
    return written


# =============================================================================
# MAIN ENTRY
# =============================================================================
def run_once(
    settings: Settings,
    *,
    fetcher: BaseFetcher | None = None,
    sink: BaseSink | None = None,
    get_fetcher: Callable[[str], type[BaseFetcher]] | None = None,
    sleep: Sleep = time.sleep,
) -> tuple[CollectionResult, AggregateReport]:
    """
    Collect -> persist -> aggregate -> summarize.

    Args:
        settings: validated run settings (units, cap, pacing, provider, sink).
        fetcher: optional ready-made fetcher (tests); else built from the registry.
        sink: optional ready-made sink (tests); else built from settings.
        get_fetcher: optional registry override.
        sleep: pause function used between units.

    Returns:
        (CollectionResult, AggregateReport)
    """
    start_ns = time.perf_counter_ns()
    active_fetcher = fetcher

    LOG.info("Starting candidate tweet collection")
    LOG.info("Processing %d candidate-election combinations", len(settings.units))
    LOG.info("Collecting up to %d tweets per candidate per election", settings.max_tweets_per_run)
    if settings.scrape_tweet_replies:
        LOG.info("scrapeTweetReplies is set but has no effect on the search request")

    try:
        if active_fetcher is None:
            active_fetcher = build_fetcher(settings, get_fetcher)
        result = collect(settings, active_fetcher, sleep=sleep)

        out = sink or build_sink(settings)
        written = persist(result.records, out)
        logging_bridge.activity({
            "component": "candidate_tweets.engine",
            "op": "persisted",
            "sink": settings.sink if sink is None else out.kind,
            "target": settings.sink_target if sink is None else None,
            "written": written,
        })

        agg = report.aggregate(result.records)
        for line in report.summary_lines(agg, result.outcomes):
            LOG.info(line)
    except Exception as e:
        logging_bridge.error({
            "component": "candidate_tweets.engine",
            "op": "run",
            "error": repr(e),
        })
        raise
    finally:
        if fetcher is None and active_fetcher is not None:
            active_fetcher.close()

    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    logging_bridge.activity({
        "component": "candidate_tweets.engine",
        "op": "summary",
        "units": len(settings.units),
        "skipped": [o.unit.label() for o in result.skipped],
        **agg.to_dict(),
        "total_us": total_us,
    })
    return result, agg
