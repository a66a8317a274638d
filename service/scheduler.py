# service/scheduler.py
from __future__ import annotations

import logging
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler BaseTrigger
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


class SchedulerController:
    """Small façade around APScheduler so the CLI can manage lifecycle cleanly."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # wait=False -> stop immediately; in-flight collection runs finish on their own
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()

    def join(self, timeout: float | None = None) -> bool:
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build an APScheduler instance, add jobs, and start.
    Jobs with a bad definition are logged and skipped.
    """
    cfg = config_schema.load_config(config_path)
    scheduler = build_scheduler(cfg)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def build_scheduler(cfg: dict[str, Any]) -> BackgroundScheduler:
    tz = _resolve_timezone(cfg)
    job_defaults = {"coalesce": True, "max_instances": 1}
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 4) or 4)},
        jobstores={"default": MemoryJobStore()},
    )

    for raw in cfg.get("jobs", []):
        try:
            spec = make_job_spec(raw, tz_name=str(tz))
        except (KeyError, TypeError, ValueError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)
    return scheduler


def make_job_spec(raw: dict[str, Any], tz_name: str | None = None) -> JobSpec:
    module = _require(raw, "module")
    return JobSpec(
        id=str(raw.get("id") or raw.get("name") or module),
        trigger=_build_trigger(_require(raw, "trigger"), tz_name),
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), 1) or 1,
        coalesce=bool(raw.get("coalesce", True)),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def _build_trigger(trig_def: dict[str, Any], tz: str | None) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, timezone?, ...}}
      {"cron":     "0 6 * * *"}          # crontab, scheduler tz
      {"date":     {"run_at": ISO|epoch, timezone?}} or {"date": ISO|epoch}

    A trigger-level 'timezone' wins over the scheduler tz.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    present = [k for k in ("interval", "cron", "date") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','date'} must be provided")
    kind = present[0]
    default_tz = _zone(tz)

    if kind == "interval":
        spec = trig_def["interval"]
        if not isinstance(spec, dict):
            raise ValueError("interval must be an object with time fields")
        unknown = set(spec) - {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}
        if unknown:
            raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")

        amounts = {}
        for name in ("weeks", "days", "hours", "minutes", "seconds", "jitter"):
            if name in spec:
                v = int(spec[name])
                if v < 0:
                    raise ValueError(f"interval.{name} must be >= 0")
                if v:
                    amounts[name] = v
        if not any(amounts.get(n) for n in ("weeks", "days", "hours", "minutes", "seconds")):
            raise ValueError("interval must be greater than 0")
        extra = {k: spec[k] for k in ("start_date", "end_date") if k in spec}
        return IntervalTrigger(timezone=_zone(spec.get("timezone")) or default_tz, **amounts, **extra)

    if kind == "cron":
        cron_spec = trig_def["cron"]
        if isinstance(cron_spec, str):
            if len(cron_spec.split()) != 5:
                raise ValueError(f"cron string must have 5 fields: {cron_spec!r}")
            return CronTrigger.from_crontab(cron_spec, timezone=default_tz)
        if not isinstance(cron_spec, dict):
            raise ValueError("cron must be a crontab string or an object")
        fields = {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "start_date", "end_date", "jitter"}
        unknown = set(cron_spec) - fields
        if unknown:
            raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")
        kwargs = {k: v for k, v in cron_spec.items() if k != "timezone"}
        kwargs.setdefault("second", 0)
        kwargs.setdefault("minute", 0)
        return CronTrigger(timezone=_zone(cron_spec.get("timezone")) or default_tz, **kwargs)

    # date
    dspec = trig_def["date"]
    if isinstance(dspec, dict):
        run_at = dspec.get("run_at")
        tzinfo = _zone(dspec.get("timezone")) or default_tz
    else:
        run_at = dspec
        tzinfo = default_tz
    if run_at is None or run_at == "":
        raise ValueError("date trigger requires 'run_at'")

    if isinstance(run_at, (int, float)):
        dt = datetime.fromtimestamp(run_at, tz=tzinfo or timezone.utc)
    else:
        s = str(run_at).strip()
        try:
            dt = datetime.fromisoformat(s[:-1] + "+00:00" if s.endswith("Z") else s)
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tzinfo or timezone.utc)
    return DateTrigger(run_date=dt, timezone=dt.tzinfo)


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register the job with a wrapper that runs the module via
    runner.run_module_once(trigger_type="scheduled") and logs start/finish.
    A failing run is logged; it never takes the scheduler down.
    """

    def _job_wrapper() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs),
                trigger_type="scheduled",
                job_context={"job_id": spec.id, "now_iso": datetime.now(timezone.utc).isoformat()},
                timeout_sec=spec.timeout_sec,
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return
        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", spec.id, duration)
        _write_activity(spec, status="ok", duration_s=duration)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    LOG.info("Registered job[%s] (module=%s, trigger=%s)", spec.id, spec.module, spec.trigger)


def _write_activity(spec: JobSpec, status: str, duration_s: float) -> None:
    try:
        write_activity_log({
            "ts": datetime.now(timezone.utc).isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "job_id": spec.id,
            "module": spec.module,
            "status": status,
            "duration_ms": int(duration_s * 1000),
            "summary": spec.summary,
        })
    except Exception:
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)


def _resolve_timezone(cfg: dict[str, Any]):
    """APScheduler 3.x is happiest with a pytz scheduler timezone."""
    tz_name = cfg.get("timezone") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _zone(name: Any):
    if not name:
        return None
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone {name!r}") from e


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default
