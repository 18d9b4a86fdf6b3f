"""
Scoring Engine for the football pool

Pure functions: no database access and no shared state. Inputs are any
objects exposing the attributes used below (ORM rows or plain records).
For the leaderboard payloads built on top of this, see
football_pool/routes/api/routes.py
"""

from collections import defaultdict
from collections.abc import Mapping

FAVORITE = "favorite"
UNDERDOG = "underdog"
PUSH = "push"
OUTCOMES = (FAVORITE, UNDERDOG, PUSH)


def outcome_for(favorite_score, underdog_score, spread):
    """
    Grade a game against the spread.

    margin = favorite_score - underdog_score - spread; the favorite covers
    when the margin is positive, the underdog when it is negative, and the
    game is a push when it is exactly zero.
    """
    margin = favorite_score - underdog_score - spread
    if margin > 0:
        return FAVORITE
    if margin < 0:
        return UNDERDOG
    return PUSH


def calculate_pick_score(pick, result):
    """
    Calculate score for a single pick.

    Returns:
        pick.rank for a pick on the side that covered
        pick.rank / 2 for a push, whichever side was picked
        0.0 otherwise, or when the game has no result yet
    """
    if result is None:
        return 0.0

    # Push: half credit
    if result.outcome == PUSH:
        return pick.rank / 2

    if pick.picked == result.outcome:
        return float(pick.rank)

    return 0.0


def _results_by_game(results):
    if isinstance(results, Mapping):
        return dict(results)
    return {result.game_id: result for result in results}


def score_week(games, results, picks):
    """
    Score every player over a set of games.

    Args:
        games: games in scope (a week, or a whole season)
        results: mapping game_id -> Result, or an iterable of Results
        picks: picks to score; picks on games outside `games` are ignored

    Returns:
        list of (user_id, score) pairs, unordered. Players whose picks only
        touch ungraded games do not appear.
    """
    game_ids = {game.id for game in games}
    results_by_game = _results_by_game(results)

    scores = defaultdict(float)
    for pick in picks:
        if pick.game_id not in game_ids:
            continue
        result = results_by_game.get(pick.game_id)
        if result is None:
            # Game hasn't been graded
            continue
        scores[pick.user_id] += calculate_pick_score(pick, result)

    return list(scores.items())


def score_season(games, results, picks):
    """Season totals use the weekly rule over every game of the season"""
    return score_week(games, results, picks)


def validate_ranks(ranks):
    """True when ranks are exactly 1..N, each used once"""
    ranks = list(ranks)
    return sorted(ranks) == list(range(1, len(ranks) + 1))
