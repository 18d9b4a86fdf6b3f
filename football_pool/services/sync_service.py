"""
ESPN Sync Service

Keeps the games and results tables in step with the ESPN scoreboard using
APScheduler. Three jobs run in the background once the service is started:

- a one-shot backfill of every regular-season week that has no games yet
- a tick on the configured interval that syncs the current week
- a weekly spread refresh at Monday 23:00 US Eastern for the upcoming week

Every job is best-effort: a failing event, week or tick is logged and the
next one proceeds.
"""

import atexit
import logging
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from football_pool.errors import PoolError
from football_pool.services.transformer import Transformer, game_key
from football_pool.utils.cache_utils import invalidate_leaderboards
from football_pool.utils.espn_client import REGULAR_SEASON, ScoreboardClient
from football_pool.utils.event_cache import EventCache
from football_pool.utils.timezone_utils import (
    REGULAR_SEASON_WEEKS,
    current_week,
    next_monday_11pm_eastern,
)

logger = logging.getLogger(__name__)

TICK_JOB_ID = "sync_current_week"
BACKFILL_JOB_ID = "backfill_season"
SPREAD_CHECK_JOB_ID = "check_zero_spreads"
WEEKLY_SPREADS_JOB_ID = "weekly_spread_refresh"


def utc_now():
    return datetime.now(timezone.utc)


class SyncService:
    """Drives scoreboard -> cache -> transformer -> store"""

    def __init__(
        self,
        app,
        store,
        odds_service=None,
        client=None,
        cache=None,
        transformer=None,
        scheduler=None,
        time_provider=None,
    ):
        config = app.config

        self.app = app
        self.store = store
        self.odds_service = odds_service
        self.enabled = config.get("ESPN_SYNC_ENABLED", False)
        self.interval = config.get("ESPN_SYNC_INTERVAL", timedelta(hours=1))
        self.season_year = config["ESPN_SEASON_YEAR"]
        self.week1_date = config["ESPN_WEEK1_DATE"]
        self._stop_event = threading.Event()

        self.client = client or ScoreboardClient(
            config["ESPN_BASE_URL"], stop_event=self._stop_event
        )
        self.cache = cache or EventCache(
            config["ESPN_CACHE_DIR"], config.get("ESPN_CACHE_EXPIRY", timedelta(hours=24))
        )
        self.transformer = transformer or Transformer(store)
        self.scheduler = scheduler
        self.time_provider = time_provider or utc_now

        self.is_running = False

        # (season, week) pairs being synced right now
        self._in_progress = set()
        self._in_progress_lock = threading.Lock()

        self.sync_stats = {
            "last_sync": None,
            "last_sync_week": None,
            "total_syncs": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "games_stored": 0,
            "last_error": None,
            "last_spread_refresh": None,
        }

    # Lifecycle

    def start(self, interval=None):
        """
        Start background syncing

        Runs one sync of the current week synchronously, then schedules the
        backfill, the spread-zero check, the interval tick and the weekly
        spread refresh. Does nothing when sync is disabled.
        """
        if not self.enabled:
            logger.info("ESPN sync service is disabled")
            return False

        if self.is_running:
            return True

        interval = interval or self.interval
        if interval <= timedelta(0):
            raise ValueError("sync interval must be positive")

        logger.info(f"Starting ESPN sync service (interval {interval})")
        self._stop_event.clear()

        if self.scheduler is None:
            self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        self.scheduler.remove_all_jobs()

        # Initial sync before the tick loop
        self._run_sync_job()

        self._add_jobs(interval)
        self.scheduler.start()
        self.is_running = True

        atexit.register(self.stop)
        logger.info("ESPN sync service started")
        return True

    def stop(self):
        """
        Stop background syncing

        Running jobs see the stop event between weeks and events; closing the
        HTTP sessions drops the connections an in-flight request is using.
        """
        self._stop_event.set()
        self.client.close()
        if self.odds_service is not None:
            self.odds_service.close()

        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")
        self.is_running = False
        logger.info("ESPN sync service stopped")

    @property
    def stopping(self):
        return self._stop_event.is_set()

    def _add_jobs(self, interval):
        # One-shot jobs: no trigger means run once, now
        self.scheduler.add_job(
            func=self._run_backfill_job,
            id=BACKFILL_JOB_ID,
            name="Backfill Missing Weeks",
            max_instances=1,
        )

        self.scheduler.add_job(
            func=self._run_spread_check_job,
            id=SPREAD_CHECK_JOB_ID,
            name="Check Zero Spreads",
            max_instances=1,
        )

        self.scheduler.add_job(
            func=self._run_sync_job,
            trigger=IntervalTrigger(seconds=interval.total_seconds()),
            id=TICK_JOB_ID,
            name="Sync Current Week",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=int(interval.total_seconds()),
        )

        self._schedule_weekly_spread_refresh()

        logger.info("Sync jobs added")

    def _schedule_weekly_spread_refresh(self):
        run_at = next_monday_11pm_eastern(self.time_provider())
        self.scheduler.add_job(
            func=self._run_weekly_spread_job,
            trigger=DateTrigger(run_date=run_at),
            id=WEEKLY_SPREADS_JOB_ID,
            name="Weekly Spread Refresh",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=3600,
        )
        logger.info(f"Next weekly spread refresh scheduled for {run_at.isoformat()}")
        return run_at

    # Scheduled job bodies

    def _run_sync_job(self):
        with self.app.app_context():
            try:
                self.sync_data()
            except Exception as e:
                self.store.session.rollback()
                self._update_stats(False, error=e)
                logger.error(f"Error in scheduled sync: {e}", exc_info=True)

    def _run_backfill_job(self):
        with self.app.app_context():
            try:
                self.backfill()
            except Exception as e:
                self.store.session.rollback()
                logger.error(f"Error in backfill: {e}", exc_info=True)

    def _run_spread_check_job(self):
        with self.app.app_context():
            try:
                self.check_zero_spreads()
            except Exception as e:
                self.store.session.rollback()
                logger.error(f"Error in spread check: {e}", exc_info=True)

    def _run_weekly_spread_job(self):
        with self.app.app_context():
            try:
                self.refresh_upcoming_spreads()
            except Exception as e:
                self.store.session.rollback()
                logger.error(f"Error in weekly spread refresh: {e}", exc_info=True)

        if not self.stopping and self.is_running:
            self._schedule_weekly_spread_refresh()

    # Sync operations

    def get_current_season_and_week(self):
        """Configured season and the week derived from the Week 1 date"""
        week = current_week(self.time_provider(), self.week1_date, REGULAR_SEASON_WEEKS)
        return self.season_year, week

    def sync_data(self):
        """Sync the current week; returns games stored, or None when skipped"""
        season, week = self.get_current_season_and_week()

        if week == 0:
            logger.info(f"Preseason for {season}, nothing to sync yet")
            return None

        try:
            stored = self.sync_week_data(season, week)
        except PoolError as e:
            self._update_stats(False, error=e)
            logger.error(f"Failed to sync season {season} week {week}: {e}")
            return None

        self._update_stats(True, games_stored=stored, week=(season, week))
        logger.info(f"ESPN data sync completed for season {season} week {week}")
        return stored

    def sync_week_data(self, season, week):
        """
        Fetch (or read from cache) one week of events and store them

        Returns the number of games stored. Raises TransportError,
        RemoteStatusError or EmptyPayload when the scoreboard cannot be read.
        """
        key = (season, week)
        with self._in_progress_lock:
            if key in self._in_progress:
                logger.info(f"Season {season} week {week} is already syncing, skipping")
                return 0
            self._in_progress.add(key)

        try:
            logger.info(f"Syncing season {season} week {week}")
            events = self.fetch_events(season, week)
            stored = self.transform_and_store_events(events, season, week)
        finally:
            with self._in_progress_lock:
                self._in_progress.discard(key)

        if stored:
            invalidate_leaderboards()
        return stored

    def fetch_events(self, season, week):
        events, hit = self.cache.get(season, week)
        if hit:
            logger.debug(f"Using {len(events)} cached events for season {season} week {week}")
            return events

        scoreboard = self.client.get_scoreboard(week, season_type=REGULAR_SEASON)
        events = scoreboard.events
        logger.info(f"Fetched {len(events)} events from ESPN for season {season} week {week}")

        try:
            self.cache.set(season, week, events)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to cache events for season {season} week {week}: {e}")

        return events

    def transform_and_store_events(self, events, season, week):
        """
        Transform and persist events in feed order

        Repeated event ids and repeated games (same teams, same week) after the
        first are skipped. Returns the number of games stored.
        """
        seen_events = set()
        seen_games = set()
        stored = 0

        for index, event in enumerate(events):
            if self.stopping:
                logger.info("Stop requested, abandoning remaining events")
                break

            if event.id is None:
                logger.debug(f"Skipping event with no id at index {index}")
                continue

            if event.id in seen_events:
                logger.warning(f"Skipping duplicate event {event.id}")
                continue
            seen_events.add(event.id)

            try:
                game, result = self.transformer.transform_event(event, season, week)
            except PoolError as e:
                logger.warning(f"Failed to transform event {event.id}: {e}")
                continue

            if game is None:
                logger.debug(f"Skipping event {event.id} with no competitions")
                continue

            key = game_key(game)
            if key in seen_games:
                logger.warning(
                    f"Skipping duplicate game: season {season} week {week} "
                    f"{game.underdog_team} @ {game.favorite_team}"
                )
                continue
            seen_games.add(key)

            try:
                self.transformer.store_game_and_result(game, result)
            except PoolError as e:
                logger.error(f"Failed to store event {event.id}: {e}")
                continue

            stored += 1

        logger.info(
            f"Stored {stored} games from {len(events)} events "
            f"({len(seen_events)} unique) for season {season} week {week}"
        )
        return stored

    def backfill(self):
        """Sync every regular-season week that has no games; returns weeks synced"""
        season = self.season_year
        synced = []

        for week in range(1, REGULAR_SEASON_WEEKS + 1):
            if self.stopping:
                logger.info("Stop requested, ending backfill")
                break

            try:
                if self.store.week_has_games(season, week):
                    continue
                self.sync_week_data(season, week)
                synced.append(week)
            except PoolError as e:
                logger.error(f"Backfill failed for season {season} week {week}: {e}")

        logger.info(f"Backfill complete for season {season}: synced weeks {synced}")
        return synced

    # Spreads

    def refresh_spreads(self, season, week):
        """Ask the odds service to refresh one week; errors are logged"""
        if self.odds_service is None:
            logger.warning("No odds service configured, skipping spread refresh")
            return False

        try:
            self.odds_service.update_game_spreads(season, week)
        except PoolError as e:
            logger.error(f"Spread refresh failed for season {season} week {week}: {e}")
            return False

        self.sync_stats["last_spread_refresh"] = self.time_provider()
        invalidate_leaderboards()
        return True

    def refresh_upcoming_spreads(self):
        """Refresh spreads for the week after the current one, if in season"""
        season, week = self.get_current_season_and_week()
        upcoming = week + 1

        if not 1 <= upcoming <= REGULAR_SEASON_WEEKS:
            logger.info(f"Week {upcoming} is outside the regular season, skipping spreads")
            return None

        logger.info(f"Refreshing spreads for season {season} week {upcoming}")
        self.refresh_spreads(season, upcoming)
        return upcoming

    def check_zero_spreads(self):
        """Refresh spreads for the previous and current week while all are 0"""
        season, week = self.get_current_season_and_week()
        refreshed = []

        for candidate in (week - 1, week):
            if not 1 <= candidate <= REGULAR_SEASON_WEEKS:
                continue
            if not self.store.all_spreads_zero(season, candidate):
                continue
            logger.info(f"All spreads are zero for season {season} week {candidate}")
            if self.refresh_spreads(season, candidate):
                refreshed.append(candidate)

        return refreshed

    # Status

    def _update_stats(self, success, games_stored=0, week=None, error=None):
        self.sync_stats["last_sync"] = self.time_provider()
        self.sync_stats["total_syncs"] += 1

        if success:
            self.sync_stats["successful_syncs"] += 1
            self.sync_stats["games_stored"] += games_stored or 0
            self.sync_stats["last_sync_week"] = week
            self.sync_stats["last_error"] = None
        else:
            self.sync_stats["failed_syncs"] += 1
            self.sync_stats["last_error"] = str(error) if error else None

    def get_status(self):
        """Sync service status for the admin API and CLI"""
        jobs = []
        if self.scheduler and self.is_running:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        season, week = self.get_current_season_and_week()
        stats = dict(self.sync_stats)
        for key in ("last_sync", "last_spread_refresh"):
            if stats[key] is not None:
                stats[key] = stats[key].isoformat()
        if stats["last_sync_week"] is not None:
            stats["last_sync_week"] = list(stats["last_sync_week"])

        return {
            "enabled": self.enabled,
            "is_running": self.is_running,
            "season": season,
            "current_week": week,
            "interval_seconds": self.interval.total_seconds(),
            "jobs": jobs,
            "stats": stats,
        }

    def force_sync(self, season=None, week=None):
        """
        Manually sync a week, the current one by default

        Runs regardless of ESPN_SYNC_ENABLED. Returns (success, message).
        """
        current_season, current = self.get_current_season_and_week()
        season = current_season if season is None else season
        week = current if week is None else week

        if not 1 <= week <= REGULAR_SEASON_WEEKS:
            return False, f"Week {week} is outside the regular season"

        try:
            stored = self.sync_week_data(season, week)
        except PoolError as e:
            self._update_stats(False, error=e)
            return False, f"Manual sync failed: {e}"

        self._update_stats(True, games_stored=stored, week=(season, week))
        return True, f"Synced {stored} games for season {season} week {week}"
