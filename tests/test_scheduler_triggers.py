from datetime import datetime, timedelta, timezone

import pytest

# Helpers ----------------------------------------------------------------------


def _next_times(trigger, tzinfo, count=5, start=None):
    """
    Ask a trigger for the next `count` fire times, seeding the computation
    as if the previous fire happened at `start`. This avoids APScheduler's
    internal default anchoring to trigger.start_date (creation time).
    """
    from datetime import datetime, timedelta

    if start is None:
        start = datetime.now(tz=tzinfo)

    # Seed both prev and now at `start` so "next" means "strictly after start"
    prev = start
    now = start

    out = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        out.append(nxt)
        prev = nxt
        # Move 'now' a tick forward to ensure strictly increasing times
        now = nxt + timedelta(microseconds=1)
    return out


# Tests ------------------------------------------------------------------------


def test_build_trigger_accepts_interval_minutes():
    from service.scheduler import _build_trigger

    trig = _build_trigger({"interval": {"minutes": 5}}, "UTC")
    # IntervalTrigger exposes 'interval' timedelta
    assert hasattr(trig, "interval")
    assert trig.interval.total_seconds() == 300

    # And it should actually schedule every 5 minutes
    ts = datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    times = _next_times(trig, timezone.utc, count=3, start=ts)
    assert times[0] == ts + timedelta(minutes=5)
    assert times[1] == ts + timedelta(minutes=10)
    assert times[2] == ts + timedelta(minutes=15)


def test_build_trigger_accepts_cron_numeric_fields():
    from service.scheduler import _build_trigger

    trig = _build_trigger(
        {"cron": {"second": 0, "minute": 0, "hour": 3, "day_of_week": "mon-fri"}},
        "UTC",
    )
    assert hasattr(trig, "fields")

    # Use a real Monday: 2096-01-02 is Monday
    start = datetime(2096, 1, 2, 0, 0, 0, tzinfo=timezone.utc)  # Monday
    times = _next_times(trig, timezone.utc, count=3, start=start)
    assert times[0] == datetime(2096, 1, 2, 3, 0, 0, tzinfo=timezone.utc)  # Mon
    assert times[1] == datetime(2096, 1, 3, 3, 0, 0, tzinfo=timezone.utc)  # Tue
    assert times[2] == datetime(2096, 1, 4, 3, 0, 0, tzinfo=timezone.utc)  # Wed


def test_build_trigger_accepts_cron_string_lists():
    from service.scheduler import _build_trigger

    trig = _build_trigger(
        {"cron": {"second": 0, "minute": "0,45", "hour": "5-6", "day_of_week": "mon-sat"}},
        "UTC",
    )
    # Use a real Monday: 2099-01-05 is Monday
    start = datetime(2099, 1, 5, 4, 59, 0, tzinfo=timezone.utc)  # Monday 04:59
    times = _next_times(trig, timezone.utc, count=4, start=start)
    # Expect: 05:00, 05:45, 06:00, 06:45 (same day)
    assert times[0] == datetime(2099, 1, 5, 5, 0, 0, tzinfo=timezone.utc)
    assert times[1] == datetime(2099, 1, 5, 5, 45, 0, tzinfo=timezone.utc)
    assert times[2] == datetime(2099, 1, 5, 6, 0, 0, tzinfo=timezone.utc)
    assert times[3] == datetime(2099, 1, 5, 6, 45, 0, tzinfo=timezone.utc)


def test_build_trigger_accepts_date_iso_with_tz():
    from service.scheduler import _build_trigger

    trig = _build_trigger({"date": {"run_at": "2099-01-01T00:00:00Z"}}, "UTC")
    # DateTrigger has run_date
    assert hasattr(trig, "run_date")
    assert trig.run_date.year == 2099
    assert trig.run_date.tzinfo is not None


def test_build_trigger_accepts_date_epoch_seconds():
    from service.scheduler import _build_trigger

    ts = int(datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc).timestamp())
    trig = _build_trigger({"date": {"run_at": ts}}, "UTC")
    assert hasattr(trig, "run_date")
    assert trig.run_date.year == 2099
    assert trig.run_date.tzinfo is not None


def test_build_trigger_date_iso_without_tz_uses_scheduler_tz():
    from service.scheduler import _build_trigger

    trig = _build_trigger({"date": {"run_at": "2099-01-01T00:00:00"}}, "America/Indiana/Indianapolis")
    assert trig.run_date.tzinfo is not None
    # We can't assert exact offset (DST varies), but tzinfo must be present
    assert "America" in str(trig.run_date.tzinfo) or "UTC" in str(trig.run_date.tzinfo)


def test_build_trigger_accepts_crontab_string():
    from service.scheduler import _build_trigger

    trig = _build_trigger({"cron": "30 6 * * *"}, "UTC")
    start = datetime(2099, 1, 5, 0, 0, 0, tzinfo=timezone.utc)
    times = _next_times(trig, timezone.utc, count=2, start=start)
    assert times[0] == datetime(2099, 1, 5, 6, 30, 0, tzinfo=timezone.utc)
    assert times[1] == datetime(2099, 1, 6, 6, 30, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "payload",
    [
        {"date": {}},
        {"date": {"run_at": "not-a-date"}},
        {"cron": "*/15 * *"},  # invalid: only 3 fields
        {"cron": {"hour": 3, "fortnight": 1}},  # unknown field
        {"interval": {"minutes": -5}},  # invalid interval
        {"interval": {"minutes": 0}},
        {"interval": {"minutes": 5}, "cron": "0 6 * * *"},
        {},  # empty
    ],
)
def test_build_trigger_invalid_inputs_raise(payload):
    from service.scheduler import _build_trigger

    with pytest.raises(ValueError):
        _build_trigger(payload, "UTC")


def test_make_job_spec_defaults():
    from service.scheduler import make_job_spec

    spec = make_job_spec(
        {"module": "modules.candidate_tweets", "trigger": {"interval": {"hours": 12}}, "kwargs": {"sink": "memory"}},
        tz_name="UTC",
    )
    assert spec.id == "modules.candidate_tweets"
    assert spec.kwargs == {"sink": "memory"}
    assert spec.max_instances == 1
    assert spec.coalesce is True
    assert spec.timeout_sec is None

    with pytest.raises(ValueError, match="module"):
        make_job_spec({"trigger": {"interval": {"hours": 1}}})


def test_build_scheduler_registers_valid_jobs_and_skips_bad_ones():
    from service.scheduler import build_scheduler

    cfg = {
        "timezone": "UTC",
        "jobs": [
            {"id": "good", "module": "modules.candidate_tweets", "trigger": {"cron": "0 6 * * *"}},
            {"id": "bad", "module": "modules.candidate_tweets", "trigger": {"cron": "0 6 *"}},
        ],
    }
    scheduler = build_scheduler(cfg)
    assert [j.id for j in scheduler.get_jobs()] == ["good"]


def test_scheduled_job_runs_module_via_runner(monkeypatch):
    from service import scheduler as sched

    calls = []

    def fake_run(module, kwargs=None, trigger_type="scheduled", job_context=None, timeout_sec=None):
        calls.append((module, kwargs, trigger_type, job_context["job_id"], timeout_sec))
        return None, "run-id"

    monkeypatch.setattr(sched.runner, "run_module_once", fake_run)
    scheduler = sched.build_scheduler({
        "jobs": [
            {
                "id": "collect",
                "module": "modules.candidate_tweets",
                "trigger": {"interval": {"hours": 1}},
                "kwargs": {"sink": "memory"},
                "timeout_sec": 120,
            }
        ]
    })
    job = scheduler.get_jobs()[0]
    job.func()
    assert calls == [("modules.candidate_tweets", {"sink": "memory"}, "scheduled", "collect", 120)]
