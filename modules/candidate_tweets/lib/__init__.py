# modules/candidate_tweets/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience; importing .fetchers also
# registers the built-in fetchers ("apify", "stub").
from .config import ConfigError, Settings
from .engine import PacingPolicy, collect, run_once
from .fetchers import BaseFetcher, FetchError
from .models import AggregateReport, CollectionResult, RequestSpec, TweetRecord, WorkUnit
from .sinks import PersistenceError

__all__ = [
    "AggregateReport",
    "BaseFetcher",
    "CollectionResult",
    "ConfigError",
    "FetchError",
    "PacingPolicy",
    "PersistenceError",
    "RequestSpec",
    "Settings",
    "TweetRecord",
    "WorkUnit",
    "collect",
    "run_once",
]
