from datetime import datetime

from flask import current_app, jsonify, request
from sqlalchemy import text

from football_pool import db
from football_pool.models import Game, Pick
from football_pool.models.game import FAVORITE_SIDES
from football_pool.routes.api import bp
from football_pool.utils.cache_utils import cached_route, invalidate_leaderboards
from football_pool.utils.scoring import score_season, score_week
from football_pool.utils.timezone_utils import REGULAR_SEASON_WEEKS, ensure_utc


def get_store():
    return current_app.extensions["store"]


def get_sync_service():
    return current_app.extensions["sync_service"]


def bad_request(message):
    return jsonify({"error": message}), 400


def _int_arg(name, default=None):
    value = request.args.get(name, default=default, type=int)
    if value is None:
        raise ValueError(f"{name} is required and must be an integer")
    return value


def _season_arg():
    return _int_arg("season", default=current_app.config["ESPN_SEASON_YEAR"])


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _non_negative_int(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer")
    return value


def _datetime_field(data, key):
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be an ISO-8601 string")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _team_field(data, key):
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} is required")
    return value.strip()


def _spread_field(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"{key} must be a non-negative number")
    return float(value)


def _favorite_side_field(data, key):
    value = data.get(key)
    if value is not None and value not in FAVORITE_SIDES:
        raise ValueError(f"{key} must be one of {', '.join(FAVORITE_SIDES)} or null")
    return value


def _bool_field(data, key):
    value = data.get(key)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


GAME_PARSERS = {
    "season": _non_negative_int,
    "week": _non_negative_int,
    "favorite_team": _team_field,
    "underdog_team": _team_field,
    "spread": _spread_field,
    "favorite_side": _favorite_side_field,
    "start_time": _datetime_field,
}
REQUIRED_GAME_FIELDS = ("season", "week", "favorite_team", "underdog_team", "start_time")

WEEK_PARSERS = {
    "week_number": _non_negative_int,
    "season": _non_negative_int,
    "week_start_time": _datetime_field,
    "week_end_time": _datetime_field,
    "is_active": _bool_field,
}


def _parse_fields(data, parsers, required=()):
    """Validate the known keys of a JSON object; unknown or missing keys are errors"""
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(f"missing fields: {', '.join(missing)}")
    unknown = sorted(set(data) - set(parsers))
    if unknown:
        raise ValueError(f"unknown fields: {', '.join(unknown)}")
    return {key: parse(data, key) for key, parse in parsers.items() if key in data}


def build_leaderboard(store, scores):
    """Attach player names and order by score (desc), then name"""
    users = store.list_users_by_ids(user_id for user_id, _ in scores)

    rows = []
    for user_id, score in scores:
        user = users.get(user_id)
        if user is None:
            name = f"User {user_id}"
        elif user.player and user.player.name:
            name = user.player.name
        else:
            name = user.name
        rows.append({"player_id": user_id, "player_name": name, "score": score})

    rows.sort(key=lambda row: (-row["score"], row["player_name"]))
    return rows


@bp.route("/health")
def health():
    """Liveness plus a database round-trip"""
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        current_app.logger.error(f"Health check database error: {e}")
        database = "error"

    status = 200 if database == "ok" else 503
    return jsonify({"status": "ok" if status == 200 else "degraded", "database": database}), status


@bp.route("/games")
def games():
    """Games (with results) for a season and week"""
    try:
        season = _season_arg()
        week = _int_arg("week")
    except ValueError as e:
        return bad_request(str(e))

    games = get_store().get_games_by_week(season, week)
    return jsonify([game.to_dict(include_result=True) for game in games])


@bp.route("/admin/games", methods=["POST"])
def create_games():
    """Body: one game object or a list of them; the batch is created atomically"""
    data = request.get_json(silent=True)
    entries = data if isinstance(data, list) else [data]
    try:
        if not entries or not all(isinstance(entry, dict) for entry in entries):
            raise ValueError("Request body must be a game object or a non-empty list of them")
        games = [
            Game(**_parse_fields(entry, GAME_PARSERS, required=REQUIRED_GAME_FIELDS))
            for entry in entries
        ]
    except ValueError as e:
        return bad_request(str(e))

    created = get_store().create_games(games)
    return jsonify([game.to_dict() for game in created]), 201


@bp.route("/admin/games/<int:game_id>", methods=["PUT"])
def update_game(game_id):
    """Edit any of the game fields; the result is regraded"""
    try:
        changes = _parse_fields(_json_body(), GAME_PARSERS)
        if not changes:
            raise ValueError("No game fields given")
    except ValueError as e:
        return bad_request(str(e))

    game = get_store().update_game(game_id, **changes)
    invalidate_leaderboards()
    return jsonify(game.to_dict(include_result=True))


@bp.route("/admin/games/<int:game_id>", methods=["DELETE"])
def delete_game(game_id):
    get_store().delete_game(game_id)
    return "", 204


@bp.route("/results", methods=["POST"])
def submit_result():
    """Admin entry of a final score; the outcome is graded against the spread"""
    try:
        data = _json_body()
        game_id = _non_negative_int(data, "game_id")
        favorite_score = _non_negative_int(data, "favorite_score")
        underdog_score = _non_negative_int(data, "underdog_score")
    except ValueError as e:
        return bad_request(str(e))

    result = get_store().submit_result(game_id, favorite_score, underdog_score)
    invalidate_leaderboards()

    current_app.logger.info(
        f"Result submitted for game {game_id}: {favorite_score}-{underdog_score} ({result.outcome})"
    )
    return jsonify(result.to_dict()), 201


@bp.route("/results/week")
@cached_route(timeout=300, key_prefix="weekly_results")
def weekly_results():
    """Weekly leaderboard; an ungraded week is an empty list"""
    try:
        season = _season_arg()
        week = _int_arg("week")
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    games = store.get_games_by_week(season, week)
    game_ids = [game.id for game in games]
    results = store.get_results_for_games(game_ids)
    picks = store.get_picks_for_games(game_ids)

    return build_leaderboard(store, score_week(games, results, picks))


@bp.route("/results/season")
@cached_route(timeout=600, key_prefix="season_results")
def season_results():
    """Season leaderboard across every game of the season"""
    try:
        season = _season_arg()
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    games = store.get_games_for_season(season)
    game_ids = [game.id for game in games]
    results = store.get_results_for_games(game_ids)
    picks = store.get_picks_for_games(game_ids)

    return build_leaderboard(store, score_season(games, results, picks))


@bp.route("/picks")
def picks():
    try:
        user_id = _int_arg("user_id")
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    store.get_user(user_id)
    picks = store.get_picks_for_user(
        user_id,
        season=request.args.get("season", type=int),
        week=request.args.get("week", type=int),
    )
    return jsonify([pick.to_dict() for pick in picks])


@bp.route("/picks/submit", methods=["POST"])
def submit_picks():
    """
    Submit a batch of ranked picks for one user

    Body: {"user_id": 1, "picks": [{"game_id": 3, "picked": "favorite", "rank": 2}]}
    """
    try:
        data = _json_body()
        user_id = _non_negative_int(data, "user_id")
        entries = data.get("picks")
        if not isinstance(entries, list) or not entries:
            raise ValueError("picks must be a non-empty list")

        new_picks = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValueError("each pick must be an object")
            new_picks.append(
                Pick(
                    user_id=user_id,
                    game_id=_non_negative_int(entry, "game_id"),
                    picked=entry.get("picked"),
                    rank=_non_negative_int(entry, "rank"),
                    quick_pick=bool(entry.get("quick_pick", False)),
                )
            )
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    store.get_user(user_id)
    created = store.create_picks(new_picks)
    invalidate_leaderboards()
    return jsonify([pick.to_dict() for pick in created]), 201


@bp.route("/admin/picks/week/<int:week>")
def admin_picks_for_week(week):
    """Every user's picks for a week"""
    try:
        season = _season_arg()
    except ValueError as e:
        return bad_request(str(e))

    picks = get_store().get_picks_for_week(season, week)
    return jsonify([pick.to_dict() for pick in picks])


@bp.route("/admin/picks/<int:pick_id>", methods=["DELETE"])
def delete_pick(pick_id):
    get_store().delete_pick(pick_id)
    invalidate_leaderboards()
    return "", 204


@bp.route("/survivor/picks")
def survivor_picks():
    try:
        user_id = _int_arg("user_id")
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    store.get_user(user_id)
    return jsonify([pick.to_dict() for pick in store.get_survivor_picks(user_id)])


@bp.route("/survivor/picks/submit", methods=["POST"])
def submit_survivor_pick():
    try:
        data = _json_body()
        user_id = _non_negative_int(data, "user_id")
        week = _non_negative_int(data, "week")
        team = data.get("team")
        if not isinstance(team, str) or not team.strip():
            raise ValueError("team is required")
    except ValueError as e:
        return bad_request(str(e))

    store = get_store()
    store.get_user(user_id)
    pick = store.create_survivor_pick(user_id, week, team.strip())
    return jsonify(pick.to_dict()), 201


@bp.route("/admin/weeks", methods=["GET"])
def list_weeks():
    season = request.args.get("season", type=int)
    return jsonify([week.to_dict() for week in get_store().list_weeks(season=season)])


@bp.route("/admin/weeks", methods=["POST"])
def create_week():
    """Body: {"week_number", "season", "week_start_time", "week_end_time"} (ISO-8601)"""
    try:
        data = _json_body()
        week_number = _non_negative_int(data, "week_number")
        season = _non_negative_int(data, "season")
        start = _datetime_field(data, "week_start_time")
        end = _datetime_field(data, "week_end_time")
        if ensure_utc(end) < ensure_utc(start):
            raise ValueError("week_end_time must not be before week_start_time")
    except ValueError as e:
        return bad_request(str(e))

    week = get_store().create_week(week_number, season, start, end)
    return jsonify(week.to_dict()), 201


@bp.route("/admin/weeks/<int:week_id>", methods=["PUT"])
def update_week(week_id):
    try:
        changes = _parse_fields(_json_body(), WEEK_PARSERS)
        if not changes:
            raise ValueError("No week fields given")
    except ValueError as e:
        return bad_request(str(e))

    week = get_store().update_week(week_id, **changes)
    return jsonify(week.to_dict())


@bp.route("/admin/weeks/<int:week_id>", methods=["DELETE"])
def delete_week(week_id):
    get_store().delete_week(week_id)
    return "", 204


@bp.route("/admin/weeks/<int:week_id>/activate", methods=["POST"])
def activate_week(week_id):
    week = get_store().activate_week(week_id)
    return jsonify(week.to_dict())


@bp.route("/admin/sync/status")
def sync_status():
    return jsonify(get_sync_service().get_status())


@bp.route("/admin/sync", methods=["POST"])
def force_sync():
    """Sync the current week, or the season/week given in the body"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request("Request body must be a JSON object")

    season = data.get("season")
    week = data.get("week")
    for key, value in (("season", season), ("week", week)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            return bad_request(f"{key} must be an integer")
    if week is not None and not 1 <= week <= REGULAR_SEASON_WEEKS:
        return bad_request(f"week must be between 1 and {REGULAR_SEASON_WEEKS}")

    success, message = get_sync_service().force_sync(season=season, week=week)
    return jsonify({"success": success, "message": message}), (200 if success else 502)
