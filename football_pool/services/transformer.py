"""
Turns ESPN scoreboard events into Game and Result rows.

The scoreboard carries no point spread, so the home team is recorded as the
favorite with a spread of 0 until the odds service assigns the real line.
"""

import logging

from football_pool.errors import InvalidEvent, MissingStartTime
from football_pool.models import Game, Result
from football_pool.utils.scoring import outcome_for

logger = logging.getLogger(__name__)


def parse_score(value):
    """ESPN scores are decimal strings; empty or non-numeric counts as 0"""
    try:
        return max(int(str(value).strip()), 0)
    except (TypeError, ValueError):
        return 0


def game_key(game):
    """Key used to drop duplicate games within one batch"""
    return (game.season, game.week, game.favorite_team, game.underdog_team)


class Transformer:
    def __init__(self, store):
        self.store = store

    def transform_event(self, event, season, week):
        """
        Convert one event into an unsaved (Game, Result) pair.

        Returns (None, None) for an event without competitions. The Result is
        None until both competitors carry a score and the game is underway
        (a 0-0 scoreboard is treated as not yet played).

        Raises:
            InvalidEvent: the first competition does not have exactly two
                named competitors split into home and away
            MissingStartTime: neither the competition nor the event has a date
        """
        if not event.competitions:
            return None, None

        competition = event.competitions[0]
        home, away = self._extract_competitors(event, competition)
        start_time = self._extract_start_time(event, competition)

        game = Game(
            season=season,
            week=week,
            favorite_team=home.team_name,
            underdog_team=away.team_name,
            spread=0.0,
            start_time=start_time,
        )

        result = None
        if home.score is not None and away.score is not None:
            favorite_score = parse_score(home.score)
            underdog_score = parse_score(away.score)
            if favorite_score > 0 or underdog_score > 0:
                result = Result(
                    favorite_score=favorite_score,
                    underdog_score=underdog_score,
                    outcome=outcome_for(favorite_score, underdog_score, game.spread),
                )

        return game, result

    def _extract_competitors(self, event, competition):
        competitors = competition.competitors or []
        if len(competitors) != 2:
            raise InvalidEvent(
                f"Event {event.id}: expected 2 competitors, got {len(competitors)}"
            )

        home = away = None
        for competitor in competitors:
            if not competitor.team_name:
                raise InvalidEvent(f"Event {event.id}: competitor missing team name")
            if competitor.is_home:
                home = competitor
            else:
                away = competitor

        if home is None or away is None:
            raise InvalidEvent(f"Event {event.id}: could not identify home and away teams")
        if home.team_name == away.team_name:
            raise InvalidEvent(f"Event {event.id}: both competitors are {home.team_name}")

        return home, away

    def _extract_start_time(self, event, competition):
        start_time = competition.date or event.date
        if start_time is None:
            raise MissingStartTime(
                f"Event {event.id}: unable to determine the start date from competition or event"
            )
        return start_time

    def store_game_and_result(self, game, result):
        """
        Upsert the game, then its result.

        The stored spread is preserved, and if the odds feed has re-oriented
        the stored game (away team favored) the scores follow the teams.
        Returns the persisted game.
        """
        stored = self.store.upsert_game_by_natural_key(game, preserve_spread=True)

        if result is not None:
            if stored.favorite_team != game.favorite_team:
                result.favorite_score, result.underdog_score = (
                    result.underdog_score,
                    result.favorite_score,
                )
            result.game_id = stored.id
            self.store.upsert_result_by_game_id(result)

        return stored
