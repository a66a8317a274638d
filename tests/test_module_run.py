import json
import os

import pytest

from modules.candidate_tweets import run
from modules.candidate_tweets.lib.config import ConfigError


def test_run_writes_jsonl_and_returns_meta(two_units, scenario_a_items, frozen_utc):
    html, meta = run(
        input={"candidateElections": two_units, "maxTweetsPerRun": 2},
        fetcher="stub",
        fetcher_params={"items": {"alice": scenario_a_items}},
        delay_ms=0,
    )

    out_path = os.environ["CANDIDATE_TWEETS_OUTPUT"]
    rows = [json.loads(line) for line in open(out_path, encoding="utf-8")]
    assert [r["date"] for r in rows] == ["2024-01-20", "2024-01-10"]
    assert rows[0]["url"] == "https://twitter.com/alice/status/4"

    assert meta["total"] == 2
    assert meta["by_candidate"] == {"alice": 2}
    assert meta["by_period"] == {"2024": 2}
    assert meta["earliest"] == "2024-01-10"
    assert meta["latest"] == "2024-01-20"
    assert meta["skipped"] == []
    assert meta["output"] == out_path
    assert meta["message"] == "2 tweets from 1 candidates across 2 units"
    assert "Candidate Tweets" in html and "@alice" in html


def test_run_reports_skipped_units(two_units):
    _, meta = run(
        input={"candidateElections": two_units},
        fetcher="stub",
        fetcher_params={"fail": ["bob"]},
        sink="memory",
        delay_ms=0,
    )
    assert meta["skipped"] == ["bob/2020"]
    assert meta["total"] == 0
    assert meta["output"] is None


def test_run_without_input_is_config_error():
    with pytest.raises(ConfigError, match="No input provided"):
        run(fetcher="stub", sink="memory")
