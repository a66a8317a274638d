import json

import pytest

from modules.candidate_tweets.lib import engine, report
from modules.candidate_tweets.lib.config import ConfigError
from modules.candidate_tweets.lib.engine import PacingPolicy, collect, persist, run_once
from modules.candidate_tweets.lib.fetchers.stub import StubFetcher
from modules.candidate_tweets.lib.models import ACCUMULATED, SKIPPED
from modules.candidate_tweets.lib.sinks import BaseSink, MemorySink, PersistenceError
from service import logging_utils


class FailingSink(BaseSink):
    kind = "failing"

    def __init__(self, fail_at):
        self.fail_at = fail_at
        self.written = []
        self.closed = False

    def append(self, record):
        if len(self.written) == self.fail_at:
            raise PersistenceError("disk full")
        self.written.append(record)

    def close(self):
        self.closed = True


def _alice_items(raw_tweet, n):
    return [raw_tweet(f"2024-01-{10 + i:02d}T12:00:00Z", tweet_id=f"a{i}") for i in range(n)]


def _bob_items(raw_tweet, n):
    return [raw_tweet(f"2020-10-{10 + i:02d}T12:00:00Z", tweet_id=f"b{i}") for i in range(n)]


def test_counts_per_candidate(make_settings, two_units, scripted_fetcher, raw_tweet, memory_sink, sleeps):
    settings = make_settings(two_units, input_extra={"maxTweetsPerRun": 5})
    fetcher = scripted_fetcher({"alice": _alice_items(raw_tweet, 3), "bob": _bob_items(raw_tweet, 4)})

    result, agg = run_once(settings, fetcher=fetcher, sink=memory_sink, sleep=sleeps)

    assert agg.total == 7
    assert agg.by_candidate == {"alice": 3, "bob": 4}
    assert agg.by_period == {"2020": 4, "2024": 3}
    assert agg.earliest == "2020-10-10"
    assert agg.latest == "2024-01-12"
    # unit order, then newest-first inside each unit
    assert [r.candidate for r in result.records] == ["alice"] * 3 + ["bob"] * 4
    assert [r.date for r in result.records[:3]] == ["2024-01-12", "2024-01-11", "2024-01-10"]
    assert memory_sink.records == result.records


def test_failed_unit_is_skipped_and_run_continues(make_settings, two_units, scripted_fetcher, raw_tweet, memory_sink, sleeps):
    settings = make_settings(two_units)
    fetcher = scripted_fetcher({"bob": _bob_items(raw_tweet, 2)}, fail=["alice"])

    result, agg = run_once(settings, fetcher=fetcher, sink=memory_sink, sleep=sleeps)

    assert fetcher.calls == ["alice", "bob"]
    assert [o.state for o in result.outcomes] == [SKIPPED, ACCUMULATED]
    assert "quota exceeded" in result.outcomes[0].error
    assert [o.unit.label() for o in result.skipped] == ["alice/2024"]
    assert agg.by_candidate == {"bob": 2}
    assert all(r.candidate == "bob" for r in memory_sink.records)


def test_all_units_failing_still_completes(make_settings, two_units, scripted_fetcher, memory_sink, sleeps):
    settings = make_settings(two_units)
    fetcher = scripted_fetcher(fail=["alice", "bob"])

    result, agg = run_once(settings, fetcher=fetcher, sink=memory_sink, sleep=sleeps)

    assert agg.total == 0
    assert agg.earliest is None and agg.latest is None
    assert len(result.skipped) == 2
    assert memory_sink.records == []


def test_empty_input_fails_before_any_fetch(make_settings, monkeypatch):
    calls = []
    monkeypatch.setattr(StubFetcher, "fetch", lambda self, request: calls.append(request))

    with pytest.raises(ConfigError, match="No candidate elections provided"):
        make_settings([])
    assert calls == []


def test_pacing_sleeps_between_units_even_after_failure(make_settings, scripted_fetcher, sleeps):
    units = [
        {"candidate": c, "electionYear": 2024, "start": "2024-01-01", "end": "2024-01-31"}
        for c in ("alice", "bob", "carol")
    ]
    settings = make_settings(units, delay_ms=1000)
    fetcher = scripted_fetcher(fail=["bob"])

    collect(settings, fetcher, sleep=sleeps)

    assert sleeps.calls == [1.0, 1.0]


def test_pacing_policy_edges(sleeps):
    policy = PacingPolicy(delay_ms=250)
    assert policy.pause_after(0, 3, sleeps) is True
    assert policy.pause_after(2, 3, sleeps) is False
    assert PacingPolicy(delay_ms=0).pause_after(0, 3, sleeps) is False
    assert PacingPolicy(enabled=False).pause_after(0, 3, sleeps) is False
    assert sleeps.calls == [0.25]


def test_single_unit_never_sleeps(make_settings, two_units, scripted_fetcher, sleeps):
    settings = make_settings(two_units[:1], delay_ms=1000)
    collect(settings, scripted_fetcher(), sleep=sleeps)
    assert sleeps.calls == []


def test_persistence_error_propagates_after_partial_write(make_settings, two_units, scripted_fetcher, raw_tweet, sleeps):
    settings = make_settings(two_units)
    fetcher = scripted_fetcher({"alice": _alice_items(raw_tweet, 2), "bob": _bob_items(raw_tweet, 2)})
    sink = FailingSink(fail_at=3)

    with pytest.raises(PersistenceError, match="disk full"):
        run_once(settings, fetcher=fetcher, sink=sink, sleep=sleeps)

    assert len(sink.written) == 3
    assert sink.closed is True


def test_persist_happens_before_aggregation(make_settings, two_units, scripted_fetcher, raw_tweet, sleeps, monkeypatch):
    settings = make_settings(two_units)
    fetcher = scripted_fetcher({"alice": _alice_items(raw_tweet, 2)})
    sink = MemorySink()
    seen = []
    real_aggregate = report.aggregate

    def spy(records):
        seen.append(len(sink.records))
        return real_aggregate(records)

    monkeypatch.setattr(report, "aggregate", spy)
    run_once(settings, fetcher=fetcher, sink=sink, sleep=sleeps)

    assert seen == [2]


def test_persist_returns_count_and_closes():
    sink = FailingSink(fail_at=99)
    assert persist([], sink) == 0
    assert sink.closed is True


def test_request_uses_inflated_count(make_settings, two_units, sleeps):
    settings = make_settings(two_units, input_extra={"maxTweetsPerRun": 3}, inflation_multiplier=2)
    fetcher = StubFetcher()

    collect(settings, fetcher, sleep=sleeps)

    assert [r.requested_count for r in fetcher.requests] == [6, 6]
    assert fetcher.requests[1].query == "from:bob since:2020-10-01 until:2020-11-03"


def test_skip_network_builds_stub_fetcher(make_settings, two_units, raw_tweet, sleeps):
    settings = make_settings(
        two_units,
        fetcher="apify",
        skip_network=True,
        fetcher_params={"items": {"alice": _alice_items(raw_tweet, 1)}},
    )
    fetcher = engine.build_fetcher(settings)
    assert isinstance(fetcher, StubFetcher)

    result, agg = run_once(settings, sink=MemorySink(), sleep=sleeps)
    assert agg.by_candidate == {"alice": 1}
    assert [o.run_id for o in result.outcomes] == ["stub-1", "stub-2"]


def test_unknown_fetcher_is_config_error(make_settings, two_units):
    settings = make_settings(two_units, fetcher="carrier-pigeon")
    with pytest.raises(ConfigError, match="Unknown fetcher"):
        engine.build_fetcher(settings)


def test_owned_fetcher_is_closed(make_settings, two_units, scripted_fetcher, sleeps):
    settings = make_settings(two_units)
    built = scripted_fetcher()

    class Factory:
        @classmethod
        def from_settings(cls, s):
            return built

    run_once(settings, get_fetcher=lambda kind: Factory, sink=MemorySink(), sleep=sleeps)
    assert built.closed is True

    injected = scripted_fetcher()
    run_once(settings, fetcher=injected, sink=MemorySink(), sleep=sleeps)
    assert injected.closed is False


def test_garbage_window_skips_only_that_unit(make_settings, scripted_fetcher, raw_tweet, memory_sink, sleeps):
    units = [
        {"candidate": "alice", "electionYear": 2024, "start": "01/01/2024", "end": "2024-01-31"},
        {"candidate": "bob", "electionYear": 2020, "start": "2020-10-01", "end": "2020-11-03"},
    ]
    settings = make_settings(units, delay_ms=1000)
    fetcher = scripted_fetcher({"alice": _alice_items(raw_tweet, 2), "bob": _bob_items(raw_tweet, 3)})

    result, agg = run_once(settings, fetcher=fetcher, sink=memory_sink, sleep=sleeps)

    assert fetcher.calls == ["bob"]
    assert [o.state for o in result.outcomes] == [SKIPPED, ACCUMULATED]
    assert "YYYY-MM-DD" in result.outcomes[0].error
    assert agg.by_candidate == {"bob": 3}
    assert len(memory_sink.records) == 3
    assert sleeps.calls == [1.0]


def test_fetcher_build_failure_is_logged_as_run_error(make_settings, two_units, sleeps):
    settings = make_settings(two_units)

    class Broken:
        @classmethod
        def from_settings(cls, s):
            raise ValueError("invalid literal for int() with base 10: 'soon'")

    with pytest.raises(ValueError, match="soon"):
        run_once(settings, get_fetcher=lambda kind: Broken, sink=MemorySink(), sleep=sleeps)

    with open(logging_utils.get_error_log_path(), encoding="utf-8") as f:
        errors = [json.loads(line) for line in f]
    assert errors[-1]["op"] == "run"
    assert "soon" in errors[-1]["error"]
