from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..models import FetchBatch, RequestSpec

if TYPE_CHECKING:
    from ..config import Settings


class FetchError(Exception):
    """A provider call failed for one unit. Carries a human-readable cause."""


class BaseFetcher(ABC):
    """
    Abstract provider interface.

    Contract:
      - fetch(request) performs ONE synchronous attempt and returns a FetchBatch.
      - Any provider-side problem is raised as FetchError; nothing is retried here.
      - Do NOT filter, sort or truncate: normalization happens upstream.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "apify", "stub"
    kind: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> BaseFetcher:
        """Build an instance from run settings (default: fetcher_params as kwargs)."""
        params: dict[str, Any] = dict(settings.fetcher_params or {})
        return cls(**params)

    @abstractmethod
    def fetch(self, request: RequestSpec) -> FetchBatch:
        raise NotImplementedError

    def close(self) -> None:
        """Release network resources, if any."""
