from datetime import datetime, timezone

import pytest

from config import TestingConfig
from football_pool import create_app, db
from football_pool.models import Game


def make_event(
    event_id,
    home,
    away,
    home_score=None,
    away_score=None,
    date="2025-09-05T00:20Z",
    competition_date=None,
):
    """Build one ESPN scoreboard event the way the site API returns it"""

    def competitor(home_away, name, score):
        data = {"homeAway": home_away, "team": {"displayName": name}}
        if score is not None:
            data["score"] = str(score)
        return data

    return {
        "id": str(event_id),
        "name": f"{away} at {home}",
        "date": date,
        "competitions": [
            {
                "id": str(event_id),
                "date": competition_date or date,
                "competitors": [
                    competitor("home", home, home_score),
                    competitor("away", away, away_score),
                ],
            }
        ],
    }


def make_scoreboard(*events, season=2025, week=1):
    return {
        "events": list(events),
        "season": {"year": season},
        "week": {"number": week},
    }


@pytest.fixture
def app_config(tmp_path):
    config = TestingConfig()
    config.ESPN_CACHE_DIR = str(tmp_path / "cache")
    return config


@pytest.fixture
def app(app_config):
    app = create_app(config_object=app_config, start_sync=False)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions["store"]


@pytest.fixture
def add_game(store):
    """Insert a game and return it"""

    def _add_game(
        favorite="Philadelphia Eagles",
        underdog="Dallas Cowboys",
        season=2025,
        week=1,
        spread=0.0,
        start_time=datetime(2025, 9, 5, 0, 20, tzinfo=timezone.utc),
    ):
        game = Game(
            season=season,
            week=week,
            favorite_team=favorite,
            underdog_team=underdog,
            spread=spread,
            start_time=start_time,
        )
        return store.upsert_game_by_natural_key(game)

    return _add_game


@pytest.fixture
def add_user(store):
    counter = {"n": 0}

    def _add_user(name=None, email=None):
        counter["n"] += 1
        name = name or f"Player {counter['n']}"
        email = email or f"player{counter['n']}@example.com"
        return store.create_user(name, email)

    return _add_user
