from __future__ import annotations

import copy
import logging
from typing import Any

# Prefer the service JSONL writer; default to stdlib logging when it is
# unavailable or fails. No prints; this module is silent on import.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging  # type: ignore

    _logging_backend = _svc_logging
except Exception:
    _logging_backend = None

# Keys that should be redacted from structured logs
_REDACT_KEYS = {
    "token",
    "apify_token",
    "apikey",
    "api_key",
    "secret",
    "password",
    "authorization",
    "auth",
    "bearer",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact obvious secret-like fields at top level.
    The service backend redacts nested structures as well.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_token") or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the service logging utility if available.
    Falls back to stdlib logging as structured info.
    """
    payload = _redact_record(record)
    if _logging_backend and hasattr(_logging_backend, "write_activity_log"):
        try:
            _logging_backend.write_activity_log(payload)  # type: ignore[attr-defined]
            return
        except Exception:
            logging.getLogger("candidate_tweets.activity").debug("activity backend failed", exc_info=True)
    logging.getLogger("candidate_tweets.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the service logging utility if available.
    Falls back to stdlib logging as structured error.
    """
    payload = _redact_record(record)
    if _logging_backend and hasattr(_logging_backend, "write_error_log"):
        try:
            _logging_backend.write_error_log(payload)  # type: ignore[attr-defined]
            return
        except Exception:
            logging.getLogger("candidate_tweets.error").debug("error backend failed", exc_info=True)
    logging.getLogger("candidate_tweets.error").error(payload)
