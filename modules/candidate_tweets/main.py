from __future__ import annotations

from typing import Any

from .lib import render
from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity
from .lib.report import summary_message


def run(**kwargs: Any) -> tuple[str, dict]:
    """
    Entry point for the 'candidate_tweets' module.

    Accepts kwargs (from scheduler/runner/CLI), including:
      input: dict                 # the input object, or
      input_path: str             # JSON file holding it, or
      candidateElections: list    # ...its keys passed directly
      maxTweetsPerRun: int = 5
      addUserInfo: bool = True
      scrapeTweetReplies: bool = False

      inflation_multiplier: int = 4
      delay_ms: int = 1000
      fetcher: str = "apify"      # "stub" for dry runs
      sink: str = "jsonl"         # "sqlite" | "memory"
      output_path / sqlite_path: str
      skip_network: bool = False

    Returns:
      (html: str, meta: dict) - the runner prints/forwards the summary.
    Raises:
      ConfigError before any provider call if the input is missing/empty.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "candidate_tweets.main",
        "op": "start",
        "units": [u.label() for u in settings.units],
        "max_tweets_per_run": settings.max_tweets_per_run,
        "fetcher": settings.fetcher_kind,
        "sink": settings.sink,
        "flags": {
            "add_user_info": settings.add_user_info,
            "scrape_tweet_replies": settings.scrape_tweet_replies,
            "skip_network": settings.skip_network,
        },
    })

    result, agg = _run_engine(settings)

    msg = summary_message(agg, units=len(settings.units))
    html = render.wrap_document(
        render.build_report_html(agg, result.records, result.outcomes),
        heading="Candidate Tweets",
        intro=msg,
    )
    meta = {
        "message": msg,
        "subject": f"Candidate Tweets: {agg.total} collected",
        **agg.to_dict(),
        "skipped": [o.unit.label() for o in result.skipped],
        "output": settings.sink_target,
    }
    return html, meta
