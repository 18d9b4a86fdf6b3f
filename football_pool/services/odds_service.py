"""
Point spreads from The Odds API

Fetches the NFL spreads market for a week's 7-day window and writes each
line onto the matching game. The team quoted with the negative point is the
favorite; the spread stored is the absolute value of that point.
"""

import logging
from dataclasses import dataclass

import requests

from football_pool.errors import EmptyPayload, PoolError, RemoteStatusError, TransportError
from football_pool.utils.timezone_utils import week_date_range

logger = logging.getLogger(__name__)

SPORT_KEY = "americanfootball_nfl"
SPREADS_MARKET = "spreads"
ODDS_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class GameSpread:
    home_team: str
    away_team: str
    spread: float
    favorite_side: str  # "home" or "away"

    @property
    def favorite_team(self):
        return self.home_team if self.favorite_side == "home" else self.away_team


def extract_spread(event):
    """
    Pull the spread for one odds event.

    Uses the first bookmaker whose spreads market quotes both teams. Returns
    None when no bookmaker has a usable line.
    """
    home_team = event.get("home_team")
    away_team = event.get("away_team")
    if not home_team or not away_team:
        return None

    for bookmaker in event.get("bookmakers") or []:
        for market in bookmaker.get("markets") or []:
            if market.get("key") != SPREADS_MARKET:
                continue

            outcomes = market.get("outcomes") or []
            if len(outcomes) != 2:
                continue

            points = {}
            for outcome in outcomes:
                if outcome.get("point") is None:
                    continue
                if outcome.get("name") == home_team:
                    points["home"] = float(outcome["point"])
                elif outcome.get("name") == away_team:
                    points["away"] = float(outcome["point"])

            if len(points) != 2:
                continue

            home_point, away_point = points["home"], points["away"]
            if home_point < 0 < away_point:
                return GameSpread(home_team, away_team, abs(home_point), "home")
            if away_point < 0 < home_point:
                return GameSpread(home_team, away_team, abs(away_point), "away")
            if home_point == 0 and away_point == 0:
                # Pick'em, home team stays the favorite
                return GameSpread(home_team, away_team, 0.0, "home")

            logger.debug(
                f"Inconsistent spread from {bookmaker.get('key')} for "
                f"{away_team} @ {home_team}: {home_point}/{away_point}"
            )

    return None


class OddsService:
    """Keeps game spreads in line with The Odds API"""

    def __init__(self, store, config, session=None, timeout=30):
        self.store = store
        self.base_url = config["THEODDSAPI_BASE_URL"].rstrip("/")
        self.api_key = config.get("THEODDSAPI_API_KEY")
        self.region = config.get("THEODDSAPI_REGION", "us")
        self.week1_date = config["ESPN_WEEK1_DATE"]
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self):
        return bool(self.api_key)

    def fetch_spreads_for_week(self, season, week):
        """
        GET {base_url}/sports/americanfootball_nfl/odds for the week's window

        Raises:
            TransportError: connection failure or timeout
            RemoteStatusError: any status other than 200
            EmptyPayload: body is not a JSON list of events
        """
        week_start, week_end = week_date_range(self.week1_date, week)
        url = f"{self.base_url}/sports/{SPORT_KEY}/odds"
        params = {
            "apiKey": self.api_key,
            "regions": self.region,
            "markets": SPREADS_MARKET,
            "oddsFormat": "american",
            "commenceTimeFrom": week_start.strftime(ODDS_DATETIME_FORMAT),
            "commenceTimeTo": week_end.strftime(ODDS_DATETIME_FORMAT),
        }

        logger.info(f"Fetching spreads for season {season} week {week}")

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RemoteStatusError(
                response.status_code,
                f"The Odds API returned status {response.status_code}",
            )

        try:
            events = response.json()
        except ValueError as e:
            raise EmptyPayload("The Odds API returned an undecodable body") from e

        if not isinstance(events, list):
            raise EmptyPayload("The Odds API returned an unexpected body")

        spreads = []
        for event in events:
            if not isinstance(event, dict):
                continue
            spread = extract_spread(event)
            if spread is None:
                logger.warning(
                    f"No spread for {event.get('away_team')} @ {event.get('home_team')}"
                )
                continue
            spreads.append(spread)

        remaining = response.headers.get("x-requests-remaining")
        logger.info(
            f"Fetched {len(spreads)} spreads from The Odds API"
            + (f" ({remaining} requests remaining)" if remaining else "")
        )
        return spreads

    def update_game_spreads(self, season, week):
        """
        Refresh spreads for (season, week) and return how many games changed

        Games missing from the store are logged and skipped. Without an API key
        nothing is fetched.
        """
        if not self.enabled:
            logger.warning(
                f"THEODDSAPI_API_KEY not set, skipping spread update for week {week}"
            )
            return 0

        spreads = self.fetch_spreads_for_week(season, week)

        updated = 0
        for spread in spreads:
            game = self.store.find_game_for_teams(
                season, week, spread.home_team, spread.away_team
            )
            if game is None:
                logger.warning(
                    f"Game not found for spread update: season {season} week {week} "
                    f"{spread.away_team} @ {spread.home_team}"
                )
                continue

            try:
                self.store.update_game_spread(
                    game.id,
                    spread.spread,
                    favorite_team=spread.favorite_team,
                    favorite_side=spread.favorite_side,
                )
            except PoolError as e:
                logger.error(f"Failed to update spread for game {game.id}: {e}")
                continue

            updated += 1

        logger.info(
            f"Updated spreads for {updated} of {len(spreads)} games "
            f"(season {season} week {week})"
        )
        return updated

    def close(self):
        self.session.close()
