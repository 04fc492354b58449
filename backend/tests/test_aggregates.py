from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select

from backend.careergate.aggregates import DAILY_FIELDS, AggregateUpdater
from backend.careergate.models import DailyStat, JobStat


def _daily(session_factory, date, app_id="test-app"):
    with session_factory() as session:
        return session.execute(
            select(DailyStat).where(DailyStat.app_id == app_id, DailyStat.date == date)
        ).scalar_one_or_none()


def _job(session_factory, job_id, app_id="test-app"):
    with session_factory() as session:
        return session.get(JobStat, {"app_id": app_id, "job_id": job_id})


@pytest.mark.parametrize("upsert", [True, False])
def test_first_increment_seeds_row(session_factory, clock, upsert):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock, upsert=upsert)

    updater.update_daily_stats("page_views")

    stat = _daily(session_factory, "2024-05-01")
    assert stat.page_views == 1
    for field in DAILY_FIELDS:
        if field != "page_views":
            assert getattr(stat, field) == 0
    assert stat.last_updated is not None


@pytest.mark.parametrize("upsert", [True, False])
def test_existing_row_is_incremented(session_factory, clock, upsert):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock, upsert=upsert)

    updater.update_daily_stats("sessions")
    updater.update_daily_stats("sessions")
    clock.advance(minutes=5)
    updater.update_daily_stats("new_visitors")

    stat = _daily(session_factory, "2024-05-01")
    assert stat.sessions == 2
    assert stat.new_visitors == 1
    assert stat.page_views == 0


def test_new_day_gets_its_own_row(session_factory, clock):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock)

    updater.update_daily_stats("page_views")
    clock.advance(days=1)
    updater.update_daily_stats("page_views")

    assert _daily(session_factory, "2024-05-01").page_views == 1
    assert _daily(session_factory, "2024-05-02").page_views == 1


def test_namespaces_do_not_share_counters(session_factory, clock):
    AggregateUpdater(session_factory, "site-a", clock=clock).update_daily_stats("page_views")
    AggregateUpdater(session_factory, "site-b", clock=clock).update_daily_stats("page_views")

    assert _daily(session_factory, "2024-05-01", app_id="site-a").page_views == 1
    assert _daily(session_factory, "2024-05-01", app_id="site-b").page_views == 1


@pytest.mark.parametrize("upsert", [True, False])
def test_job_counters(session_factory, clock, upsert):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock, upsert=upsert)

    updater.update_job_stats("job1", "views")
    updater.update_job_stats("job1", "views")
    updater.update_job_stats("job1", "whatsapp_clicks")

    stat = _job(session_factory, "job1")
    assert stat.views == 2
    assert stat.whatsapp_clicks == 1


def test_empty_job_id_is_ignored(session_factory, clock):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock)

    updater.update_job_stats("", "views")
    updater.update_job_stats(None, "views")

    with session_factory() as session:
        assert session.execute(select(JobStat)).scalars().all() == []


def test_unknown_fields_are_rejected(session_factory, clock):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock)

    with pytest.raises(ValueError):
        updater.update_daily_stats("clicks")
    with pytest.raises(ValueError):
        updater.update_job_stats("job1", "page_views")


def test_concurrent_increments_are_never_lost(session_factory, clock):
    updater = AggregateUpdater(session_factory, "test-app", clock=clock)
    total = 40

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: updater.update_daily_stats("job_views"), range(total)))

    assert _daily(session_factory, "2024-05-01").job_views == total
