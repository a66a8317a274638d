# tests/conftest.py
import json
import os
import pathlib
import tempfile
import warnings

import pytest
from freezegun import freeze_time

from modules.candidate_tweets.lib import config as ct_config
from modules.candidate_tweets.lib.fetchers.base import BaseFetcher, FetchError
from modules.candidate_tweets.lib.models import FetchBatch
from modules.candidate_tweets.lib.sinks import MemorySink

warnings.filterwarnings("error", category=DeprecationWarning, module="modules")


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path, request):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="ct-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # Never pick up real inputs/outputs/credentials from the developer's shell
    monkeypatch.delenv("CANDIDATE_TWEETS_INPUT", raising=False)
    monkeypatch.setenv("CANDIDATE_TWEETS_OUTPUT", str(tmp_path / "out" / "tweets.jsonl"))
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "out" / "tweets.db"))
    if not (request.config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"):
        monkeypatch.delenv("APIFY_TOKEN", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)

    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Raw provider items
# ---------------------------------------------------------------------
def make_raw(created_at, *, tweet_id="1", text="hello", url=None, snake=False):
    """Build a provider-shaped item; `snake=True` uses created_at/full_text/id."""
    if snake:
        raw = {"created_at": created_at, "full_text": text, "id": tweet_id}
    else:
        raw = {"createdAt": created_at, "text": text, "id_str": tweet_id}
    if url is not None:
        raw["url"] = url
    return raw


@pytest.fixture
def raw_tweet():
    return make_raw


@pytest.fixture
def scenario_a_items():
    """Five items for alice: two outside Jan 2024, three inside."""
    return [
        make_raw("2023-12-31T12:00:00Z", tweet_id="1"),
        make_raw("2024-01-05T12:00:00Z", tweet_id="2"),
        make_raw("2024-01-10T12:00:00Z", tweet_id="3"),
        make_raw("2024-01-20T12:00:00Z", tweet_id="4"),
        make_raw("2024-02-01T12:00:00Z", tweet_id="5"),
    ]


# ---------------------------------------------------------------------
# Settings / collaborators
# ---------------------------------------------------------------------
@pytest.fixture
def make_settings():
    """Build validated Settings with test-friendly defaults (stub fetcher, memory sink, no pause)."""

    def _make(units, **overrides):
        kwargs = {
            "input": {"candidateElections": units, **overrides.pop("input_extra", {})},
            "fetcher": "stub",
            "sink": "memory",
            "delay_ms": 0,
        }
        kwargs.update(overrides)
        return ct_config.Settings.from_env_and_kwargs(kwargs)

    return _make


@pytest.fixture
def two_units():
    return [
        {"candidate": "alice", "electionYear": 2024, "start": "2024-01-01", "end": "2024-01-31"},
        {"candidate": "bob", "electionYear": 2020, "start": "2020-10-01", "end": "2020-11-03"},
    ]


class ScriptedFetcher(BaseFetcher):
    """Returns canned batches per candidate; raises FetchError for candidates in `fail`."""

    kind = "scripted"

    def __init__(self, batches=None, fail=()):
        self.batches = batches or {}
        self.fail = set(fail)
        self.calls = []
        self.closed = False

    def fetch(self, request):
        candidate = request.query.split()[0].split(":", 1)[1]
        self.calls.append(candidate)
        if candidate in self.fail:
            raise FetchError(f"quota exceeded for {candidate}")
        return FetchBatch(items=list(self.batches.get(candidate, [])), run_id=f"run-{len(self.calls)}")

    def close(self):
        self.closed = True


@pytest.fixture
def scripted_fetcher():
    return ScriptedFetcher


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def sleeps():
    """A recording no-op replacement for time.sleep."""
    calls = []

    def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def input_file(tmp_path: pathlib.Path, two_units) -> pathlib.Path:
    path = tmp_path / "INPUT.json"
    path.write_text(json.dumps({"candidateElections": two_units, "maxTweetsPerRun": 3}), encoding="utf-8")
    return path


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    """Write a one-job JSON config and point CONFIG_PATH at it."""
    cfg = {
        "timezone": "UTC",
        "jobs": [
            {
                "id": "collect-tweets",
                "module": "modules.candidate_tweets",
                "trigger": {"cron": "0 6 * * *"},
                "kwargs": {"fetcher": "stub", "sink": "memory", "delay_ms": 0},
                "summary": "Daily candidate tweet collection",
            }
        ],
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(path))
    return path
