from __future__ import annotations

import re
from typing import Any

from ..models import FetchBatch, RequestSpec
from .base import BaseFetcher, FetchError
from .registry import register

_FROM_RE = re.compile(r"\bfrom:(\S+)")


@register
class StubFetcher(BaseFetcher):
    """
    A zero-network fetcher used for tests, dry-runs and skip_network.

    Params (settings.fetcher_params):
      - items: {candidate: [raw item, ...]} or a flat list served to every unit
      - fail:  [candidate, ...]  -> those units raise FetchError

    The candidate is read back from the query's 'from:<handle>' term.
    """

    kind = "stub"

    def __init__(self, items: Any = None, fail: Any = None, **_ignored: Any) -> None:
        self._items = items or {}
        self._fail = {str(c).lstrip("@").lower() for c in (fail or [])}
        self.requests: list[RequestSpec] = []

    def fetch(self, request: RequestSpec) -> FetchBatch:
        self.requests.append(request)
        m = _FROM_RE.search(request.query)
        candidate = m.group(1) if m else ""

        if candidate.lower() in self._fail:
            raise FetchError(f"stub failure requested for {candidate!r}")

        if isinstance(self._items, dict):
            raw = self._items.get(candidate) or []
        else:
            raw = self._items
        items = [dict(i) for i in raw if isinstance(i, dict)]
        return FetchBatch(items=items[: request.requested_count], run_id=f"stub-{len(self.requests)}")
