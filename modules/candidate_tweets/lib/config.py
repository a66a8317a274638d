from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import time
from typing import Any

from .models import WorkUnit
from .utils import getenv_str, parse_iso_date, truthy

DEFAULT_ACTOR_ID = "apidojo/twitter-scraper-lite"
DEFAULT_OUTPUT_PATH = "/app/local/state/candidate_tweets.jsonl"
DEFAULT_SQLITE_PATH = "/app/local/state/candidate_tweets.db"

# Keys of the input object (camelCase, as the actor input is written)
_INPUT_KEYS = ("candidateElections", "maxTweetsPerRun", "addUserInfo", "scrapeTweetReplies")


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided input/kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for a 'candidate_tweets' run.

    The input object (candidateElections, maxTweetsPerRun, addUserInfo,
    scrapeTweetReplies) can come from:
        - kwargs["input"]          (dict, or a JSON string the runner decoded)
        - kwargs["input_path"]     (JSON file; env CANDIDATE_TWEETS_INPUT)
        - the same keys passed directly as kwargs

    Everything else is run tuning (pacing, provider, sink).
    """

    units: tuple[WorkUnit, ...]

    # Input object
    max_tweets_per_run: int = 5
    add_user_info: bool = True
    scrape_tweet_replies: bool = False  # accepted; no effect on requests today

    # Planning / normalization
    inflation_multiplier: int = 4
    window_end_time: time = time(23, 59, 59)

    # Pacing between units
    delay_ms: int = 1000

    # Provider
    fetcher: str = "apify"
    actor_id: str = DEFAULT_ACTOR_ID
    apify_token: str | None = field(default=None, repr=False)
    max_wait_s: int = 600
    fetcher_params: dict[str, Any] = field(default_factory=dict)
    skip_network: bool = False

    # Output
    sink: str = "jsonl"
    output_path: str = DEFAULT_OUTPUT_PATH
    sqlite_path: str = DEFAULT_SQLITE_PATH

    # ------------- convenience -------------
    @property
    def fetcher_kind(self) -> str:
        # skip_network always wins: the stub never touches the network
        return "stub" if self.skip_network else self.fetcher

    @property
    def sink_target(self) -> str | None:
        if self.sink == "jsonl":
            return self.output_path
        if self.sink == "sqlite":
            return self.sqlite_path
        return None

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional unless stated otherwise):

            input: dict | input_path: str | candidateElections: list  (one is REQUIRED)
            inflation_multiplier: int = 4
            delay_ms: int = 1000
            window_end_time: "HH:MM:SS" = "23:59:59"
            fetcher: "apify" | "stub" = "apify"
            fetcher_params: dict = {}
            actor_id: str = "apidojo/twitter-scraper-lite"
            apify_token: str          # else env APIFY_TOKEN
            max_wait_s: int = 600
            skip_network: bool = false
            sink: "jsonl" | "sqlite" | "memory" = "jsonl"
            output_path: str          # else env CANDIDATE_TWEETS_OUTPUT
            sqlite_path: str          # else env SQLITE_PATH
        """
        kw = dict(kwargs or {})
        data = _resolve_input(kw)

        units = _parse_units(data.get("candidateElections"))
        if not units:
            raise ConfigError("No candidate elections provided")

        settings = cls(
            units=tuple(units),
            max_tweets_per_run=_int_setting(data.get("maxTweetsPerRun"), 5, "maxTweetsPerRun"),
            add_user_info=truthy(data["addUserInfo"]) if data.get("addUserInfo") is not None else True,
            scrape_tweet_replies=truthy(data.get("scrapeTweetReplies")),
            inflation_multiplier=_int_setting(kw.get("inflation_multiplier"), 4, "inflation_multiplier"),
            window_end_time=_parse_time(kw.get("window_end_time")),
            delay_ms=_int_setting(kw.get("delay_ms"), 1000, "delay_ms"),
            fetcher=str(kw.get("fetcher") or "apify").strip().lower(),
            actor_id=str(kw.get("actor_id") or DEFAULT_ACTOR_ID).strip(),
            apify_token=str(kw.get("apify_token") or "").strip() or getenv_str("APIFY_TOKEN"),
            max_wait_s=_int_setting(kw.get("max_wait_s"), 600, "max_wait_s"),
            fetcher_params=_dict_setting(kw.get("fetcher_params"), "fetcher_params"),
            skip_network=truthy(kw.get("skip_network")),
            sink=str(kw.get("sink") or "jsonl").strip().lower(),
            output_path=str(kw.get("output_path") or getenv_str("CANDIDATE_TWEETS_OUTPUT", DEFAULT_OUTPUT_PATH)),
            sqlite_path=str(kw.get("sqlite_path") or getenv_str("SQLITE_PATH", DEFAULT_SQLITE_PATH)),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _resolve_input(kw: dict[str, Any]) -> dict[str, Any]:
    raw = kw.get("input")
    if raw is None:
        input_path = str(kw.get("input_path") or "").strip() or getenv_str("CANDIDATE_TWEETS_INPUT")
        if input_path:
            raw = _read_input_file(input_path)
        elif any(k in kw for k in _INPUT_KEYS):
            raw = {k: kw[k] for k in _INPUT_KEYS if k in kw}

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError("Input is not valid JSON") from e

    if not raw:
        raise ConfigError("No input provided")
    if not isinstance(raw, Mapping):
        raise ConfigError("Input must be an object.")
    return dict(raw)


def _read_input_file(path: str) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Input file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Input file is invalid JSON: {path}") from e


def _parse_units(value: Any) -> list[WorkUnit]:
    """
    Parse candidateElections into WorkUnit objects, preserving order.
    Accepts: [{"candidate": "...", "electionYear": 2024, "start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}, ...]

    Only a non-list value is a ConfigError. An entry without a candidate or
    with an unreadable window stays in the list as a unit carrying `problem`;
    it contributes no records and the other units still run.
    """
    if not value:
        return []
    if not isinstance(value, list):
        raise ConfigError("'candidateElections' must be a list.")
    out: list[WorkUnit] = []
    for i, item in enumerate(value):
        if not isinstance(item, Mapping):
            out.append(_bad_unit(None, None, f"candidateElections[{i}] is not an object"))
            continue
        candidate = str(item.get("candidate") or "").strip().lstrip("@")
        year = item.get("electionYear")
        if not candidate:
            out.append(_bad_unit("", year, f"candidateElections[{i}] has no 'candidate'"))
            continue
        try:
            start = parse_iso_date(item.get("start"))
            end = parse_iso_date(item.get("end"))
        except (TypeError, ValueError):
            window = f"{item.get('start')!r}..{item.get('end')!r}"
            out.append(_bad_unit(candidate, year, f"window {window} is not YYYY-MM-DD"))
            continue
        out.append(WorkUnit(candidate=candidate, election_year=year, start=start, end=end))
    return out


def _bad_unit(candidate: str | None, year: Any, problem: str) -> WorkUnit:
    return WorkUnit(candidate=candidate or "", election_year=year, start=None, end=None, problem=problem)


def _int_setting(value: Any, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be an integer.") from e


def _dict_setting(value: Any, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be an object.")
    return dict(value)


def _parse_time(value: Any) -> time:
    if value is None or value == "":
        return time(23, 59, 59)
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ConfigError(f"'window_end_time' must be HH:MM[:SS] (got {value!r}).") from e


def _validate_settings(s: Settings) -> None:
    if s.max_tweets_per_run < 1:
        raise ConfigError("'maxTweetsPerRun' must be >= 1.")
    if s.inflation_multiplier < 1:
        raise ConfigError("'inflation_multiplier' must be >= 1.")
    if s.delay_ms < 0:
        raise ConfigError("'delay_ms' must be >= 0.")
    if s.max_wait_s < 1:
        raise ConfigError("'max_wait_s' must be >= 1.")
    if not s.fetcher:
        raise ConfigError("'fetcher' cannot be empty.")
    if s.sink not in {"jsonl", "sqlite", "memory"}:
        raise ConfigError(f"Unknown sink {s.sink!r}; expected jsonl, sqlite or memory.")
    if s.sink == "jsonl" and not s.output_path.strip():
        raise ConfigError("'output_path' cannot be empty.")
    if s.sink == "sqlite" and not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.fetcher_kind == "apify" and not s.actor_id:
        raise ConfigError("'actor_id' cannot be empty.")
