from datetime import datetime, timezone
from unittest import mock

import pytest

from football_pool.errors import RemoteStatusError
from football_pool.services.odds_service import GameSpread, OddsService, extract_spread

CONFIG = {
    "THEODDSAPI_BASE_URL": "https://api.the-odds-api.com/v4",
    "THEODDSAPI_API_KEY": "secret",
    "THEODDSAPI_REGION": "us",
    "ESPN_WEEK1_DATE": datetime(2025, 9, 4, tzinfo=timezone.utc),
}


def odds_event(home, away, home_point, away_point, market="spreads"):
    return {
        "id": f"{home}-{away}",
        "home_team": home,
        "away_team": away,
        "bookmakers": [
            {
                "key": "draftkings",
                "markets": [
                    {
                        "key": market,
                        "outcomes": [
                            {"name": home, "price": -110, "point": home_point},
                            {"name": away, "price": -110, "point": away_point},
                        ],
                    }
                ],
            }
        ],
    }


def make_service(store, events=None, status_code=200, config=None):
    response = mock.Mock()
    response.status_code = status_code
    response.headers = {"x-requests-remaining": "480"}
    response.json.return_value = events if events is not None else []
    session = mock.Mock()
    session.get.return_value = response
    return OddsService(store, config or CONFIG, session=session), session


class TestExtractSpread:
    def test_home_favorite(self):
        spread = extract_spread(odds_event("Philadelphia Eagles", "Dallas Cowboys", -7.5, 7.5))

        assert spread == GameSpread("Philadelphia Eagles", "Dallas Cowboys", 7.5, "home")
        assert spread.favorite_team == "Philadelphia Eagles"

    def test_away_favorite(self):
        spread = extract_spread(odds_event("New York Jets", "Buffalo Bills", 6.5, -6.5))

        assert spread == GameSpread("New York Jets", "Buffalo Bills", 6.5, "away")
        assert spread.favorite_team == "Buffalo Bills"

    def test_pick_em(self):
        spread = extract_spread(odds_event("Chicago Bears", "Detroit Lions", 0, 0))

        assert spread == GameSpread("Chicago Bears", "Detroit Lions", 0.0, "home")

    def test_skips_bookmakers_without_spreads(self):
        event = odds_event("Philadelphia Eagles", "Dallas Cowboys", -3, 3)
        event["bookmakers"].insert(
            0, {"key": "fanduel", "markets": [{"key": "h2h", "outcomes": []}]}
        )

        assert extract_spread(event).spread == 3.0

    def test_no_usable_market(self):
        assert extract_spread(odds_event("A", "B", -3, 3, market="totals")) is None
        assert extract_spread({"home_team": "A", "away_team": "B"}) is None
        assert extract_spread(odds_event("A", "B", -3, -3)) is None


class TestFetch:
    def test_requests_the_week_window(self, store):
        service, session = make_service(store)

        service.fetch_spreads_for_week(2025, 2)

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://api.the-odds-api.com/v4/sports/americanfootball_nfl/odds"
        assert params["apiKey"] == "secret"
        assert params["regions"] == "us"
        assert params["markets"] == "spreads"
        assert params["commenceTimeFrom"] == "2025-09-11T00:00:00Z"
        assert params["commenceTimeTo"] == "2025-09-18T00:00:00Z"

    def test_non_200(self, store):
        service, _ = make_service(store, status_code=401)

        with pytest.raises(RemoteStatusError):
            service.fetch_spreads_for_week(2025, 1)


class TestUpdateGameSpreads:
    def test_updates_matching_games(self, store, add_game, caplog):
        home_favored = add_game()
        away_favored = add_game(favorite="New York Jets", underdog="Buffalo Bills")
        service, _ = make_service(
            store,
            [
                odds_event("Philadelphia Eagles", "Dallas Cowboys", -3.5, 3.5),
                odds_event("New York Jets", "Buffalo Bills", 6.5, -6.5),
                odds_event("Miami Dolphins", "New England Patriots", -1, 1),
            ],
        )

        assert service.update_game_spreads(2025, 1) == 2

        game = store.get_game(home_favored.id)
        assert (game.favorite_team, game.spread, game.favorite_side) == (
            "Philadelphia Eagles",
            3.5,
            "home",
        )
        game = store.get_game(away_favored.id)
        assert (game.favorite_team, game.underdog_team, game.spread, game.favorite_side) == (
            "Buffalo Bills",
            "New York Jets",
            6.5,
            "away",
        )
        assert "Game not found for spread update" in caplog.text

    def test_refresh_is_repeatable(self, store, add_game):
        add_game(favorite="New York Jets", underdog="Buffalo Bills")
        events = [odds_event("New York Jets", "Buffalo Bills", 6.5, -6.5)]
        service, _ = make_service(store, events)

        service.update_game_spreads(2025, 1)
        service.update_game_spreads(2025, 1)

        game = store.get_games_by_week(2025, 1)[0]
        assert (game.favorite_team, game.spread) == ("Buffalo Bills", 6.5)

    def test_without_api_key_nothing_is_fetched(self, store, caplog):
        service, session = make_service(store, config={**CONFIG, "THEODDSAPI_API_KEY": ""})

        assert service.update_game_spreads(2025, 1) == 0
        session.get.assert_not_called()
        assert "THEODDSAPI_API_KEY not set" in caplog.text
