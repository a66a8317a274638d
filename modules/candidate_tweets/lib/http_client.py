# candidate_tweets/http_client.py
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """
    Shared HTTP client with sane defaults and simple helpers.

    Single attempt only: the adapter is mounted with Retry(total=0) so a
    provider failure surfaces immediately and the caller decides what to do.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "CandidateTweets/0.1 (+https://example.invalid)",
        headers: Mapping[str, str] | None = None,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        if headers:
            self.session.headers.update(dict(headers))

        retry = Retry(total=0, raise_on_status=False)
        adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---- convenience ----
    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """GET and parse JSON with clearer errors if decoding fails."""
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout, **kwargs)
        resp.raise_for_status()
        return _decode_json(resp, url)

    def post_json(
        self,
        url: str,
        payload: Any,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        """POST a JSON body and parse the JSON response."""
        resp = self.session.post(
            url,
            json=payload,
            params=params,
            headers=headers,
            timeout=timeout or self.timeout,
            **kwargs,
        )
        resp.raise_for_status()
        return _decode_json(resp, url)

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)


def _decode_json(resp: requests.Response, url: str) -> Any:
    # Prefer requests' decoder; fall back to manual if Content-Type is misleading.
    try:
        return resp.json()
    except ValueError as e:
        try:
            return json.loads(resp.text)
        except ValueError:
            preview = resp.text[:200].replace("\n", " ")
            raise ValueError(f"JSON decode failed for {url!r}; body starts: {preview!r}") from e
