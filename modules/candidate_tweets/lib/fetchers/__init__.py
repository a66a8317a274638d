# candidate_tweets/fetchers/__init__.py
from __future__ import annotations

from .apify import ApifyFetcher
from .base import BaseFetcher, FetchError
from .registry import all_kinds, get, register
from .stub import StubFetcher

__all__ = [
    "ApifyFetcher",
    "BaseFetcher",
    "FetchError",
    "StubFetcher",
    "all_kinds",
    "get",
    "register",
]
