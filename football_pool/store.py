"""
Persistence layer for the football pool.

Store wraps an injected SQLAlchemy session. Every write runs inside
transaction(), which commits on success and rolls back on the first error;
database failures surface as StoreError, unique-key violations as Conflict.
"""

import logging
from collections import defaultdict
from contextlib import contextmanager

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from football_pool.errors import (
    Conflict,
    InvalidGame,
    InvalidPickSet,
    InvalidWeek,
    NotFound,
    StoreError,
)
from football_pool.models import Game, Pick, Result, SurvivorPick, User, Week
from football_pool.models.game import FAVORITE_SIDES
from football_pool.models.pick import PICK_SIDES
from football_pool.utils.scoring import FAVORITE, UNDERDOG, validate_ranks
from football_pool.utils.timezone_utils import REGULAR_SEASON_WEEKS, ensure_utc

logger = logging.getLogger(__name__)

OTHER_SIDE = {FAVORITE: UNDERDOG, UNDERDOG: FAVORITE}

# Columns an admin may edit on a game
GAME_FIELDS = (
    "season",
    "week",
    "favorite_team",
    "underdog_team",
    "spread",
    "favorite_side",
    "start_time",
)

WEEK_FIELDS = ("week_number", "season", "week_start_time", "week_end_time", "is_active")


class Store:
    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self, conflict_reason=None):
        """Commit on success, roll back and translate errors on failure"""
        try:
            yield self.session
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Integrity error: {e.orig}")
            raise Conflict(conflict_reason or "Duplicate or conflicting record") from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error: {e}")
            raise StoreError(f"Database error: {e}") from e
        except Exception:
            self.session.rollback()
            raise

    def _read(self, query_fn):
        try:
            return query_fn()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error: {e}")
            raise StoreError(f"Database error: {e}") from e

    # Users

    def create_user(self, name, email, password_hash="", role="user"):
        user = User(name=name, email=email, password_hash=password_hash, role=role)
        with self.transaction(conflict_reason=f"User {email} already exists"):
            self.session.add(user)
        return user

    def get_user(self, user_id):
        user = self._read(lambda: self.session.get(User, user_id))
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def list_users_by_ids(self, user_ids):
        """Mapping user_id -> User for the given ids"""
        user_ids = list(set(user_ids))
        if not user_ids:
            return {}
        users = self._read(
            lambda: self.session.query(User).filter(User.id.in_(user_ids)).all()
        )
        return {user.id: user for user in users}

    # Games

    def get_game(self, game_id):
        game = self._read(lambda: self.session.get(Game, game_id))
        if game is None:
            raise NotFound(f"Game {game_id} not found")
        return game

    def get_games_by_week(self, season, week):
        return self._read(
            lambda: self.session.query(Game)
            .filter_by(season=season, week=week)
            .order_by(Game.start_time, Game.id)
            .all()
        )

    def get_games_for_season(self, season):
        return self._read(
            lambda: self.session.query(Game)
            .filter_by(season=season)
            .order_by(Game.week, Game.start_time, Game.id)
            .all()
        )

    def week_has_games(self, season, week):
        count = self._read(
            lambda: self.session.query(Game.id)
            .filter_by(season=season, week=week)
            .limit(1)
            .count()
        )
        return count > 0

    def all_spreads_zero(self, season, week):
        """True when the week has games and every spread is still 0"""
        games = self.get_games_by_week(season, week)
        return bool(games) and all(game.spread == 0 for game in games)

    def find_game_for_teams(self, season, week, team_a, team_b):
        """Find a game between two teams in either favorite/underdog orientation"""
        return self._read(
            lambda: self.session.query(Game)
            .filter(
                Game.season == season,
                Game.week == week,
                or_(
                    (Game.favorite_team == team_a) & (Game.underdog_team == team_b),
                    (Game.favorite_team == team_b) & (Game.underdog_team == team_a),
                ),
            )
            .first()
        )

    def _reorient(self, game):
        """Swap favorite and underdog; result scores and picks follow the teams"""
        game.favorite_team, game.underdog_team = game.underdog_team, game.favorite_team

        result = game.result
        if result is not None:
            result.favorite_score, result.underdog_score = (
                result.underdog_score,
                result.favorite_score,
            )

        picks = self.session.query(Pick).filter_by(game_id=game.id).all()
        for pick in picks:
            pick.picked = OTHER_SIDE[pick.picked]

        logger.info(
            f"Game {game.id} re-oriented, favorite is {game.favorite_team} "
            f"({len(picks)} picks flipped)"
        )

    def upsert_game_by_natural_key(self, game, preserve_spread=False):
        """
        Insert a game or update the row with the same natural key.

        The first-inserted row (and its id) is kept. An existing row that was
        re-oriented by the odds feed (teams swapped) is matched as well. With
        preserve_spread the stored spread and favorite side are left alone,
        which is what ingestion wants since the scoreboard carries no spread.
        """
        with self.transaction():
            existing = self.find_game_for_teams(
                game.season, game.week, game.favorite_team, game.underdog_team
            )
            if existing is None:
                self.session.add(game)
                self.session.flush()
                logger.debug(f"Created game {game}")
                return game

            existing.start_time = game.start_time
            if not preserve_spread:
                reoriented = existing.favorite_team != game.favorite_team
                spread_changed = reoriented or existing.spread != game.spread
                if reoriented:
                    self._reorient(existing)
                existing.spread = game.spread
                if game.favorite_side is not None:
                    existing.favorite_side = game.favorite_side
                if spread_changed and existing.result is not None:
                    existing.result.grade(existing.spread)
            return existing

    def update_game_spread(self, game_id, spread, favorite_team=None, favorite_side=None):
        """
        Set a game's spread and regrade its result.

        When favorite_team names the stored underdog, the row is re-oriented so
        favorite_team always holds the favorite; result scores and the sides of
        existing picks follow the teams.
        """
        if spread < 0:
            raise ValueError("spread must be non-negative")

        with self.transaction():
            game = self.get_game(game_id)

            if favorite_team is not None and favorite_team == game.underdog_team:
                self._reorient(game)

            game.spread = spread
            if favorite_side is not None:
                game.favorite_side = favorite_side
            if game.result is not None:
                game.result.grade(game.spread)
            return game

    def _check_game(self, game):
        if game.season is None or game.week is None or game.start_time is None:
            raise InvalidGame("season, week and start_time are required")
        if not game.favorite_team or not game.underdog_team:
            raise InvalidGame("favorite_team and underdog_team are required")
        if game.favorite_team == game.underdog_team:
            raise InvalidGame("favorite_team and underdog_team must differ")
        if game.spread is None or game.spread < 0:
            raise InvalidGame("spread must be non-negative")
        if not 1 <= game.week <= REGULAR_SEASON_WEEKS:
            raise InvalidGame(f"week must be between 1 and {REGULAR_SEASON_WEEKS}")
        if game.favorite_side is not None and game.favorite_side not in FAVORITE_SIDES:
            raise InvalidGame("favorite_side must be home, away or null")

    def create_games(self, games):
        """Admin insert of a batch of games; all or nothing"""
        games = list(games)
        for game in games:
            if game.spread is None:
                game.spread = 0.0
            self._check_game(game)

        with self.transaction(conflict_reason="Game already exists for these teams and week"):
            self.session.add_all(games)

        logger.info(f"Created {len(games)} games")
        return games

    def update_game(self, game_id, **changes):
        """
        Admin edit of a game.

        Swapping favorite_team and underdog_team re-orients the game like an
        odds update does. The result is regraded against the new spread.
        """
        unknown = set(changes) - set(GAME_FIELDS)
        if unknown:
            raise InvalidGame(f"Unknown game fields: {', '.join(sorted(unknown))}")

        with self.transaction(conflict_reason="Game already exists for these teams and week"):
            game = self.get_game(game_id)

            favorite = changes.pop("favorite_team", game.favorite_team)
            underdog = changes.pop("underdog_team", game.underdog_team)
            if (favorite, underdog) == (game.underdog_team, game.favorite_team):
                self._reorient(game)
            else:
                game.favorite_team, game.underdog_team = favorite, underdog

            for key, value in changes.items():
                setattr(game, key, value)

            self._check_game(game)
            if game.result is not None:
                game.result.grade(game.spread)

        logger.info(f"Updated game {game_id}")
        return game

    def delete_game(self, game_id):
        """Delete a game and its result; refuses while any pick references it"""
        with self.transaction():
            game = self.get_game(game_id)
            pick_count = self.session.query(Pick).filter_by(game_id=game_id).count()
            if pick_count:
                raise Conflict(f"Game {game_id} has {pick_count} picks and cannot be deleted")
            self.session.delete(game)
        logger.info(f"Deleted game {game_id}")

    # Results

    def upsert_result_by_game_id(self, result):
        """
        Insert or update the result for result.game_id.

        The outcome is always derived from the scores and the game's persisted
        spread, whatever the caller computed.
        """
        with self.transaction():
            game = self.get_game(result.game_id)
            existing = (
                self.session.query(Result).filter_by(game_id=result.game_id).first()
            )
            if existing is None:
                self.session.add(result)
                target = result
            else:
                existing.favorite_score = result.favorite_score
                existing.underdog_score = result.underdog_score
                target = existing
            target.grade(game.spread)
            return target

    def submit_result(self, game_id, favorite_score, underdog_score):
        """Admin entry of a final score"""
        if favorite_score < 0 or underdog_score < 0:
            raise ValueError("scores must be non-negative")
        result = Result(
            game_id=game_id,
            favorite_score=favorite_score,
            underdog_score=underdog_score,
        )
        return self.upsert_result_by_game_id(result)

    def get_results_for_games(self, game_ids):
        """Mapping game_id -> Result for the graded games among game_ids"""
        game_ids = list(game_ids)
        if not game_ids:
            return {}
        results = self._read(
            lambda: self.session.query(Result).filter(Result.game_id.in_(game_ids)).all()
        )
        return {result.game_id: result for result in results}

    # Picks

    def get_picks_for_games(self, game_ids):
        game_ids = list(game_ids)
        if not game_ids:
            return []
        return self._read(
            lambda: self.session.query(Pick).filter(Pick.game_id.in_(game_ids)).all()
        )

    def get_picks_for_user(self, user_id, season=None, week=None):
        def query():
            q = self.session.query(Pick).join(Game).filter(Pick.user_id == user_id)
            if season is not None:
                q = q.filter(Game.season == season)
            if week is not None:
                q = q.filter(Game.week == week)
            return q.order_by(Game.season, Game.week, Pick.rank.desc()).all()

        return self._read(query)

    def get_picks_for_week(self, season, week):
        """Every user's picks for one week, for the admin view"""
        return self._read(
            lambda: self.session.query(Pick)
            .join(Game)
            .filter(Game.season == season, Game.week == week)
            .order_by(Pick.user_id, Game.id)
            .all()
        )

    def delete_pick(self, pick_id):
        with self.transaction():
            pick = self.session.get(Pick, pick_id)
            if pick is None:
                raise NotFound(f"Pick {pick_id} not found")
            self.session.delete(pick)
        logger.info(f"Deleted pick {pick_id}")

    def create_picks(self, picks):
        """
        Insert a batch of picks atomically.

        Raises:
            InvalidPickSet: bad side or rank, or the ranks of a user's picks for
                one (season, week), new and existing together, are not 1..N
            NotFound: a pick references a missing game
            Conflict: a (user, game) pair already has a pick
        """
        picks = list(picks)
        if not picks:
            return []

        with self.transaction(conflict_reason="Pick already exists for this game"):
            games = {}
            seen = set()
            for pick in picks:
                if pick.picked not in PICK_SIDES:
                    raise InvalidPickSet(
                        f"picked must be one of {', '.join(PICK_SIDES)}, got {pick.picked!r}"
                    )
                if not isinstance(pick.rank, int) or pick.rank < 1:
                    raise InvalidPickSet(f"rank must be a positive integer, got {pick.rank!r}")
                if (pick.user_id, pick.game_id) in seen:
                    raise Conflict(
                        f"Duplicate pick for user {pick.user_id} on game {pick.game_id}"
                    )
                seen.add((pick.user_id, pick.game_id))
                if pick.game_id not in games:
                    games[pick.game_id] = self.get_game(pick.game_id)

            # Group by (user, season, week) and check ranks with existing picks
            grouped = defaultdict(list)
            for pick in picks:
                game = games[pick.game_id]
                grouped[(pick.user_id, game.season, game.week)].append(pick)

            for (user_id, season, week), new_picks in grouped.items():
                existing = (
                    self.session.query(Pick)
                    .join(Game)
                    .filter(
                        Pick.user_id == user_id,
                        Game.season == season,
                        Game.week == week,
                    )
                    .all()
                )
                taken = {pick.game_id for pick in existing}
                for pick in new_picks:
                    if pick.game_id in taken:
                        raise Conflict(
                            f"User {user_id} already has a pick on game {pick.game_id}"
                        )
                ranks = [pick.rank for pick in existing] + [pick.rank for pick in new_picks]
                if not validate_ranks(ranks):
                    raise InvalidPickSet(
                        f"Ranks for user {user_id} in week {week} of {season} must be "
                        f"1..{len(ranks)} with no repeats, got {sorted(ranks)}"
                    )

            self.session.add_all(picks)

        logger.info(f"Created {len(picks)} picks")
        return picks

    # Survivor

    def create_survivor_pick(self, user_id, week, team):
        pick = SurvivorPick(user_id=user_id, week=week, team=team)
        with self.transaction(
            conflict_reason=f"User {user_id} already has a survivor pick for week {week}"
        ):
            self.session.add(pick)
        return pick

    def get_survivor_picks(self, user_id):
        return self._read(
            lambda: self.session.query(SurvivorPick)
            .filter_by(user_id=user_id)
            .order_by(SurvivorPick.week)
            .all()
        )

    # Weeks

    def create_week(self, week_number, season, week_start_time, week_end_time):
        week = Week(
            week_number=week_number,
            season=season,
            week_start_time=week_start_time,
            week_end_time=week_end_time,
        )
        with self.transaction(
            conflict_reason=f"Week {week_number} of {season} already exists"
        ):
            self.session.add(week)
        return week

    def list_weeks(self, season=None):
        def query():
            q = self.session.query(Week)
            if season is not None:
                q = q.filter_by(season=season)
            return q.order_by(Week.season, Week.week_number).all()

        return self._read(query)

    def get_active_week(self):
        return self._read(lambda: self.session.query(Week).filter_by(is_active=True).first())

    def activate_week(self, week_id):
        """Make week_id the only active week"""
        with self.transaction():
            week = self.session.get(Week, week_id)
            if week is None:
                raise NotFound(f"Week {week_id} not found")
            self.session.query(Week).update({Week.is_active: False})
            week.is_active = True
        logger.info(f"Activated week {week_id}")
        return week

    def update_week(self, week_id, **changes):
        """
        Admin edit of a week.

        Setting is_active deactivates every other week, as activate_week does.
        """
        unknown = set(changes) - set(WEEK_FIELDS)
        if unknown:
            raise InvalidWeek(f"Unknown week fields: {', '.join(sorted(unknown))}")

        with self.transaction(conflict_reason="Week already exists for that season"):
            week = self.session.get(Week, week_id)
            if week is None:
                raise NotFound(f"Week {week_id} not found")

            if changes.get("is_active"):
                self.session.query(Week).filter(Week.id != week_id).update(
                    {Week.is_active: False}
                )
            for key, value in changes.items():
                setattr(week, key, value)

            if ensure_utc(week.week_end_time) < ensure_utc(week.week_start_time):
                raise InvalidWeek("week_end_time must not be before week_start_time")

        logger.info(f"Updated week {week_id}")
        return week

    def delete_week(self, week_id):
        with self.transaction():
            week = self.session.get(Week, week_id)
            if week is None:
                raise NotFound(f"Week {week_id} not found")
            self.session.delete(week)
        logger.info(f"Deleted week {week_id}")
