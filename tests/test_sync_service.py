from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import pytz

from conftest import make_event, make_scoreboard
from football_pool.errors import RemoteStatusError, TransportError
from football_pool.models import Game, Result
from football_pool.services.sync_service import (
    BACKFILL_JOB_ID,
    SPREAD_CHECK_JOB_ID,
    TICK_JOB_ID,
    WEEKLY_SPREADS_JOB_ID,
    SyncService,
)
from football_pool.utils.espn_client import Scoreboard
from football_pool.utils.event_cache import EventCache
from football_pool.utils.timezone_utils import (
    current_week,
    next_monday_11pm_eastern,
    week_for_days,
)

WEEK1 = datetime(2025, 9, 4, tzinfo=timezone.utc)
EASTERN = pytz.timezone("America/New_York")


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    # Thursday of week 1
    return Clock(WEEK1 + timedelta(hours=12))


@pytest.fixture
def espn():
    client = mock.Mock()
    client.get_scoreboard.return_value = Scoreboard.from_dict(make_scoreboard())
    return client


@pytest.fixture
def odds():
    return mock.Mock()


@pytest.fixture
def scheduler():
    return mock.Mock()


@pytest.fixture
def service(app, store, espn, odds, scheduler, clock, tmp_path):
    return SyncService(
        app,
        store,
        odds_service=odds,
        client=espn,
        cache=EventCache(str(tmp_path / "events"), timedelta(hours=1)),
        scheduler=scheduler,
        time_provider=clock,
    )


def scoreboard(*events):
    return Scoreboard.from_dict(make_scoreboard(*events))


class TestWeekDerivation:
    @pytest.mark.parametrize(
        "days, week", [(-1, 0), (0, 1), (6, 1), (7, 2), (13, 2), (14, 3), (125, 18)]
    )
    def test_week_for_days(self, days, week):
        assert week_for_days(days) == week

    def test_partial_day_before_week1_is_preseason(self):
        assert current_week(WEEK1 - timedelta(hours=1), WEEK1) == 0

    def test_last_moment_of_week1(self):
        assert current_week(WEEK1 + timedelta(days=7) - timedelta(seconds=1), WEEK1) == 1

    def test_service_uses_time_provider(self, service, clock):
        clock.now = WEEK1 + timedelta(days=15)

        assert service.get_current_season_and_week() == (2025, 3)


class TestNextMonday:
    def test_monday_before_2300_is_today(self):
        now = EASTERN.localize(datetime(2025, 9, 8, 22, 59))

        assert next_monday_11pm_eastern(now) == EASTERN.localize(datetime(2025, 9, 8, 23, 0))

    def test_monday_at_2300_is_next_week(self):
        now = EASTERN.localize(datetime(2025, 9, 8, 23, 0))

        assert next_monday_11pm_eastern(now) == EASTERN.localize(datetime(2025, 9, 15, 23, 0))

    def test_midweek(self):
        now = datetime(2025, 9, 10, 12, 0, tzinfo=timezone.utc)  # Wednesday

        assert next_monday_11pm_eastern(now) == EASTERN.localize(datetime(2025, 9, 15, 23, 0))

    def test_utc_monday_night_is_already_tuesday_in_utc(self):
        # 02:00 UTC Tuesday is 22:00 Monday in New York (EDT)
        now = datetime(2025, 9, 9, 2, 0, tzinfo=timezone.utc)

        assert next_monday_11pm_eastern(now) == EASTERN.localize(datetime(2025, 9, 8, 23, 0))

    def test_follows_daylight_saving(self):
        result = next_monday_11pm_eastern(datetime(2025, 11, 5, tzinfo=timezone.utc))

        assert result.utcoffset() == timedelta(hours=-5)
        assert result.astimezone(timezone.utc) == datetime(2025, 11, 11, 4, 0, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back_to_utc(self, caplog):
        now = datetime(2025, 9, 10, 12, 0, tzinfo=timezone.utc)

        result = next_monday_11pm_eastern(now, timezone_name="Mars/Olympus_Mons")

        assert result == datetime(2025, 9, 15, 23, 0, tzinfo=timezone.utc)
        assert "falling back to UTC" in caplog.text


class TestSyncWeek:
    def test_ingest_one_game(self, service, espn):
        espn.get_scoreboard.return_value = scoreboard(
            make_event(1, "Philadelphia Eagles", "Dallas Cowboys", 24, 20)
        )

        stored = service.sync_week_data(2025, 1)

        assert stored == 1
        espn.get_scoreboard.assert_called_once_with(1, season_type=2)
        game = Game.query.one()
        assert game.natural_key == (2025, 1, "Philadelphia Eagles", "Dallas Cowboys")
        assert game.spread == 0.0
        result = Result.query.one()
        assert (result.favorite_score, result.underdog_score, result.outcome) == (24, 20, "favorite")

    def test_duplicate_event_stored_once(self, service, espn, caplog):
        event = make_event(1, "Philadelphia Eagles", "Dallas Cowboys", 24, 20)
        espn.get_scoreboard.return_value = scoreboard(event, event)

        assert service.sync_week_data(2025, 1) == 1
        assert Game.query.count() == 1
        assert "Skipping duplicate event 1" in caplog.text

    def test_duplicate_game_with_new_event_id_stored_once(self, service, espn, caplog):
        espn.get_scoreboard.return_value = scoreboard(
            make_event(1, "Philadelphia Eagles", "Dallas Cowboys"),
            make_event(2, "Philadelphia Eagles", "Dallas Cowboys"),
        )

        assert service.sync_week_data(2025, 1) == 1
        assert Game.query.count() == 1
        assert "Skipping duplicate game" in caplog.text

    def test_bad_event_does_not_stop_the_week(self, service, espn, caplog):
        broken = make_event(1, "Philadelphia Eagles", "Dallas Cowboys")
        broken["competitions"][0]["competitors"].pop()
        espn.get_scoreboard.return_value = scoreboard(
            broken,
            make_event(2, "Kansas City Chiefs", "Los Angeles Chargers"),
        )

        assert service.sync_week_data(2025, 1) == 1
        assert Game.query.one().favorite_team == "Kansas City Chiefs"
        assert "Failed to transform event 1" in caplog.text

    def test_events_without_id_are_skipped(self, service, espn):
        event = make_event(1, "Philadelphia Eagles", "Dallas Cowboys")
        del event["id"]
        espn.get_scoreboard.return_value = scoreboard(event)

        assert service.sync_week_data(2025, 1) == 0

    def test_fetched_events_are_cached(self, service, espn):
        espn.get_scoreboard.return_value = scoreboard(
            make_event(1, "Philadelphia Eagles", "Dallas Cowboys")
        )
        service.sync_week_data(2025, 1)

        events, hit = service.cache.get(2025, 1)

        assert hit
        assert [e.id for e in events] == ["1"]

    def test_cache_hit_skips_the_network(self, service, espn):
        service.cache.set(
            2025, 1, scoreboard(make_event(1, "Philadelphia Eagles", "Dallas Cowboys")).events
        )

        assert service.sync_week_data(2025, 1) == 1
        espn.get_scoreboard.assert_not_called()

    def test_remote_error_aborts_the_week(self, service, espn):
        espn.get_scoreboard.side_effect = RemoteStatusError(500)

        with pytest.raises(RemoteStatusError):
            service.sync_week_data(2025, 1)

        assert not service.cache.get(2025, 1)[1]

    def test_stop_request_abandons_remaining_events(self, service, espn):
        espn.get_scoreboard.return_value = scoreboard(
            make_event(1, "Philadelphia Eagles", "Dallas Cowboys"),
        )
        service.stop()

        assert service.sync_week_data(2025, 1) == 0


class TestSyncData:
    def test_syncs_current_week(self, service, espn, clock):
        clock.now = WEEK1 + timedelta(days=8)

        service.sync_data()

        espn.get_scoreboard.assert_called_once_with(2, season_type=2)
        assert service.sync_stats["successful_syncs"] == 1
        assert service.sync_stats["last_sync_week"] == (2025, 2)

    def test_preseason_is_skipped(self, service, espn, clock):
        clock.now = WEEK1 - timedelta(days=3)

        assert service.sync_data() is None
        espn.get_scoreboard.assert_not_called()

    def test_failure_is_recorded_not_raised(self, service, espn):
        espn.get_scoreboard.side_effect = TransportError("boom")

        assert service.sync_data() is None
        assert service.sync_stats["failed_syncs"] == 1
        assert "boom" in service.sync_stats["last_error"]

    def test_force_sync_given_week(self, service, espn):
        espn.get_scoreboard.return_value = scoreboard(
            make_event(1, "Philadelphia Eagles", "Dallas Cowboys")
        )

        success, message = service.force_sync(season=2025, week=4)

        assert success
        assert "week 4" in message
        assert Game.query.one().week == 4

    def test_force_sync_rejects_week_outside_season(self, service, espn):
        success, _ = service.force_sync(week=19)

        assert not success
        espn.get_scoreboard.assert_not_called()

    def test_force_sync_reports_failure(self, service, espn):
        espn.get_scoreboard.side_effect = RemoteStatusError(503)

        success, message = service.force_sync()

        assert not success
        assert "503" in message


class TestBackfill:
    def test_backfills_only_empty_weeks(self, service, espn, add_game):
        add_game(week=1)
        espn.get_scoreboard.side_effect = lambda week, season_type: scoreboard(
            make_event(week, "Philadelphia Eagles", "Dallas Cowboys")
        )

        synced = service.backfill()

        assert synced == list(range(2, 19))
        assert espn.get_scoreboard.call_count == 17
        assert Game.query.count() == 18

    def test_failing_week_does_not_stop_backfill(self, service, espn, caplog):
        def fetch(week, season_type):
            if week == 5:
                raise TransportError("timeout")
            return scoreboard(make_event(week, "Philadelphia Eagles", "Dallas Cowboys"))

        espn.get_scoreboard.side_effect = fetch

        synced = service.backfill()

        assert 5 not in synced
        assert len(synced) == 17
        assert not service.store.week_has_games(2025, 5)
        assert "Backfill failed for season 2025 week 5" in caplog.text


class TestSpreads:
    def test_upcoming_week_refresh(self, service, odds, clock):
        clock.now = WEEK1 + timedelta(days=4)

        assert service.refresh_upcoming_spreads() == 2
        odds.update_game_spreads.assert_called_once_with(2025, 2)

    def test_no_refresh_after_final_week(self, service, odds, clock):
        clock.now = WEEK1 + timedelta(days=200)

        assert service.refresh_upcoming_spreads() is None
        odds.update_game_spreads.assert_not_called()

    def test_zero_spread_check(self, service, odds, clock, add_game):
        clock.now = WEEK1 + timedelta(days=8)  # week 2
        add_game(week=2)
        add_game(week=3)

        assert service.check_zero_spreads() == [2]
        odds.update_game_spreads.assert_called_once_with(2025, 2)

    def test_zero_spread_check_skips_weeks_with_spreads(self, service, odds, clock, add_game):
        clock.now = WEEK1 + timedelta(days=8)
        add_game(week=1)
        add_game(week=2, spread=3.5)

        assert service.check_zero_spreads() == [1]

    def test_odds_failure_is_logged(self, service, odds, caplog):
        odds.update_game_spreads.side_effect = RemoteStatusError(401)

        assert not service.refresh_spreads(2025, 2)
        assert "Spread refresh failed" in caplog.text

    def test_weekly_job_reschedules_itself(self, service, odds, scheduler, clock):
        clock.now = WEEK1 + timedelta(days=4)  # Monday 2025-09-08, 00:00 UTC
        service.is_running = True

        service._run_weekly_spread_job()

        odds.update_game_spreads.assert_called_once_with(2025, 2)
        kwargs = scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == WEEKLY_SPREADS_JOB_ID
        assert kwargs["trigger"].run_date == EASTERN.localize(datetime(2025, 9, 8, 23, 0))


class TestLifecycle:
    def test_disabled_service_does_nothing(self, service, scheduler, espn):
        assert service.start() is False

        scheduler.start.assert_not_called()
        espn.get_scoreboard.assert_not_called()

    def test_start_runs_initial_sync_and_schedules_jobs(self, service, scheduler, espn):
        service.enabled = True

        assert service.start(interval=timedelta(minutes=30)) is True

        espn.get_scoreboard.assert_called_once_with(1, season_type=2)
        scheduler.start.assert_called_once()
        job_ids = {call.kwargs["id"] for call in scheduler.add_job.call_args_list}
        assert job_ids == {BACKFILL_JOB_ID, SPREAD_CHECK_JOB_ID, TICK_JOB_ID, WEEKLY_SPREADS_JOB_ID}

        tick = next(
            call.kwargs for call in scheduler.add_job.call_args_list
            if call.kwargs["id"] == TICK_JOB_ID
        )
        assert tick["trigger"].interval == timedelta(minutes=30)

        service.stop()

        scheduler.shutdown.assert_called_once_with(wait=False)
        assert not service.is_running
        assert service.stopping

    def test_stop_closes_http_sessions(self, service, espn, odds):
        service.stop()

        espn.close.assert_called_once()
        odds.close.assert_called_once()
        assert service.stopping

    def test_start_twice_is_a_no_op(self, service, scheduler):
        service.enabled = True
        service.start()
        service.start()

        scheduler.start.assert_called_once()
        service.stop()

    def test_status(self, service, clock):
        clock.now = WEEK1 + timedelta(days=8)

        status = service.get_status()

        assert status["enabled"] is False
        assert status["is_running"] is False
        assert (status["season"], status["current_week"]) == (2025, 2)
        assert status["stats"]["total_syncs"] == 0
