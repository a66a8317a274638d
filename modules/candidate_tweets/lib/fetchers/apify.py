# candidate_tweets/fetchers/apify.py
from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import requests

from ..http_client import HttpClient
from ..models import FetchBatch, RequestSpec
from .base import BaseFetcher, FetchError
from .registry import register

if TYPE_CHECKING:
    from ..config import Settings

API_BASE = "https://api.apify.com/v2"
_TERMINAL = frozenset({"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"})


@register
class ApifyFetcher(BaseFetcher):
    """
    Runs the Twitter search actor on Apify and returns its dataset items.

    One fetch == one actor run:
      1. POST /acts/<actor>/runs                (starts the run, waits up to wait_step_s)
      2. GET  /actor-runs/<id>?waitForFinish=.. (until terminal or max_wait_s elapses)
      3. GET  /datasets/<defaultDatasetId>/items

    Anything other than a SUCCEEDED run is a FetchError. An empty dataset is
    a valid, empty batch.
    """

    kind = "apify"

    def __init__(
        self,
        token: str | None,
        actor_id: str = "apidojo/twitter-scraper-lite",
        *,
        max_wait_s: int = 600,
        wait_step_s: int = 60,
        api_base: str = API_BASE,
        client: HttpClient | None = None,
    ) -> None:
        self.token = (token or "").strip()
        self.actor_id = actor_id
        self.max_wait_s = int(max_wait_s)
        self.wait_step_s = max(1, min(int(wait_step_s), 60))  # API caps waitForFinish at 60s
        self.api_base = api_base.rstrip("/")
        self._client = client or HttpClient(headers={"Authorization": f"Bearer {self.token}"})

    @classmethod
    def from_settings(cls, settings: Settings) -> ApifyFetcher:
        params: dict[str, Any] = dict(settings.fetcher_params or {})
        return cls(
            token=settings.apify_token,
            actor_id=settings.actor_id,
            max_wait_s=settings.max_wait_s,
            wait_step_s=int(params.get("wait_step_s") or 60),
            api_base=str(params.get("api_base") or API_BASE),
        )

    def fetch(self, request: RequestSpec) -> FetchBatch:
        if not self.token:
            raise FetchError("APIFY_TOKEN is not set; cannot call the provider.")

        try:
            run = self._start_run(request.to_actor_input())
            run = self._wait_for_finish(run)
            run_id = str(run.get("id") or "")

            status = run.get("status")
            if status != "SUCCEEDED":
                raise FetchError(f"actor run {run_id or '?'} finished with status {status}")

            dataset_id = run.get("defaultDatasetId")
            if not dataset_id:
                raise FetchError(f"actor run {run_id or '?'} has no default dataset")

            items = self._client.get_json(
                f"{self.api_base}/datasets/{dataset_id}/items",
                params={"clean": "true", "format": "json"},
            )
        except requests.RequestException as e:
            raise FetchError(f"provider request failed: {e}") from e
        except ValueError as e:
            raise FetchError(str(e)) from e

        if not isinstance(items, list):
            raise FetchError(f"unexpected dataset payload type {type(items).__name__}")
        return FetchBatch(items=[i for i in items if isinstance(i, dict)], run_id=run_id or None)

    def close(self) -> None:
        self._client.close()

    # ---- internals ----

    def _actor_path(self) -> str:
        # The REST API addresses actors as "username~actor-name"
        return self.actor_id.replace("/", "~")

    def _start_run(self, actor_input: dict[str, Any]) -> dict[str, Any]:
        body = self._client.post_json(
            f"{self.api_base}/acts/{self._actor_path()}/runs",
            actor_input,
            params={"waitForFinish": self.wait_step_s},
        )
        return _run_data(body)

    def _wait_for_finish(self, run: dict[str, Any]) -> dict[str, Any]:
        deadline = time.monotonic() + self.max_wait_s
        while run.get("status") not in _TERMINAL:
            if time.monotonic() >= deadline:
                raise FetchError(f"actor run {run.get('id')} did not finish within {self.max_wait_s}s")
            body = self._client.get_json(
                f"{self.api_base}/actor-runs/{run.get('id')}",
                params={"waitForFinish": self.wait_step_s},
            )
            run = _run_data(body)
        return run


def _run_data(body: Any) -> dict[str, Any]:
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or not data.get("id"):
        raise FetchError("provider returned no run object")
    return data
