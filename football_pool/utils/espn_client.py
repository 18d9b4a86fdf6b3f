"""
ESPN scoreboard client

Typed, tolerant view over the ESPN site API scoreboard endpoint. Every field
of the payload is optional; missing data surfaces as None rather than an
exception. The client never retries, the sync service decides what to do
with a failed week.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import requests

from football_pool.errors import EmptyPayload, RemoteStatusError, TransportError

logger = logging.getLogger(__name__)

REGULAR_SEASON = 2  # ESPN seasontype for the NFL regular season

# ESPN mixes full RFC 3339 timestamps with a seconds-less variant
ESPN_DATETIME_FORMATS = ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%MZ")


def parse_espn_datetime(value):
    """
    Parse an ESPN timestamp into an aware UTC datetime.

    Accepts "2025-09-05T00:20:00Z", "2025-09-05T00:20Z" and RFC 3339 strings
    with an explicit offset. Raises ValueError when nothing matches.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    text = str(value).strip()
    for fmt in ESPN_DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_espn_datetime(value):
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(ESPN_DATETIME_FORMATS[0])


def _optional_datetime(value, context):
    try:
        return parse_espn_datetime(value)
    except ValueError:
        logger.warning(f"Ignoring unparseable date {value!r} on {context}")
        return None


def _optional_str(value):
    return None if value is None else str(value)


def _drop_none(data):
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Team:
    id: Optional[str] = None
    display_name: Optional[str] = None
    abbreviation: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            return None
        return cls(
            id=_optional_str(data.get("id")),
            display_name=data.get("displayName"),
            abbreviation=data.get("abbreviation"),
        )

    def to_dict(self):
        return _drop_none(
            {
                "id": self.id,
                "displayName": self.display_name,
                "abbreviation": self.abbreviation,
            }
        )


@dataclass
class Competitor:
    home_away: Optional[str] = None
    team: Optional[Team] = None
    score: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            return None
        return cls(
            home_away=data.get("homeAway"),
            team=Team.from_dict(data.get("team")),
            score=_optional_str(data.get("score")),
        )

    @property
    def is_home(self):
        return self.home_away == "home"

    @property
    def team_name(self):
        return self.team.display_name if self.team else None

    def to_dict(self):
        return _drop_none(
            {
                "homeAway": self.home_away,
                "team": self.team.to_dict() if self.team else None,
                "score": self.score,
            }
        )


@dataclass
class Competition:
    id: Optional[str] = None
    date: Optional[datetime] = None
    competitors: Optional[List[Competitor]] = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            return None
        competitors = data.get("competitors")
        return cls(
            id=_optional_str(data.get("id")),
            date=_optional_datetime(data.get("date"), "competition"),
            competitors=(
                [c for c in map(Competitor.from_dict, competitors) if c]
                if isinstance(competitors, list)
                else None
            ),
        )

    def to_dict(self):
        return _drop_none(
            {
                "id": self.id,
                "date": format_espn_datetime(self.date),
                "competitors": (
                    [c.to_dict() for c in self.competitors]
                    if self.competitors is not None
                    else None
                ),
            }
        )


@dataclass
class Event:
    id: Optional[str] = None
    name: Optional[str] = None
    date: Optional[datetime] = None
    competitions: Optional[List[Competition]] = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            return None
        competitions = data.get("competitions")
        return cls(
            id=_optional_str(data.get("id")),
            name=data.get("name"),
            date=_optional_datetime(data.get("date"), f"event {data.get('id')}"),
            competitions=(
                [c for c in map(Competition.from_dict, competitions) if c]
                if isinstance(competitions, list)
                else None
            ),
        )

    def to_dict(self):
        return _drop_none(
            {
                "id": self.id,
                "name": self.name,
                "date": format_espn_datetime(self.date),
                "competitions": (
                    [c.to_dict() for c in self.competitions]
                    if self.competitions is not None
                    else None
                ),
            }
        )


@dataclass
class Scoreboard:
    events: List[Event] = field(default_factory=list)
    season_year: Optional[int] = None
    week_number: Optional[int] = None

    @classmethod
    def from_dict(cls, data):
        events = data.get("events")
        season = data.get("season") if isinstance(data.get("season"), dict) else {}
        week = data.get("week") if isinstance(data.get("week"), dict) else {}
        return cls(
            events=(
                [e for e in map(Event.from_dict, events) if e]
                if isinstance(events, list)
                else []
            ),
            season_year=season.get("year"),
            week_number=week.get("number"),
        )


class ScoreboardClient:
    """Fetches the NFL scoreboard from the ESPN site API"""

    def __init__(
        self, base_url, session=None, timeout=30, min_request_interval=0.5, stop_event=None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "Football-Pool/1.0"})

        # Be polite to the public API during backfills
        self.min_request_interval = min_request_interval
        self.last_request_time = 0
        self.request_count = 0

        # Set by the owner to cut the rate-limit wait short
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def _enforce_rate_limit(self):
        """Enforce a minimum interval between requests; a set stop_event cancels"""
        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.min_request_interval:
            if self.stop_event.wait(self.min_request_interval - time_since_last):
                raise TransportError("Request cancelled, client is stopping")

        self.last_request_time = time.time()
        self.request_count += 1

    def get_scoreboard(self, week, season_type=REGULAR_SEASON):
        """
        GET {base_url}/scoreboard?week={week}&seasontype={season_type}

        Raises:
            TransportError: connection failure, timeout or invalid request
            RemoteStatusError: any status other than 200
            EmptyPayload: empty body or a body that is not a JSON object
        """
        url = f"{self.base_url}/scoreboard"
        params = {"week": week, "seasontype": season_type}

        self._enforce_rate_limit()

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Request failed for {url} week {week}: {e}")
            raise TransportError(f"Request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise RemoteStatusError(
                response.status_code,
                f"ESPN API returned status {response.status_code}: {response.reason}",
            )

        if not response.content:
            raise EmptyPayload("ESPN API returned empty response")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(
                f"ESPN API returned undecodable body (status {response.status_code}): "
                f"{response.text[:200]}"
            )
            raise EmptyPayload("ESPN API returned empty response") from e

        if not isinstance(data, dict):
            raise EmptyPayload("ESPN API returned empty response")

        scoreboard = Scoreboard.from_dict(data)
        logger.debug(f"Fetched scoreboard week {week}: {len(scoreboard.events)} events")
        return scoreboard

    def close(self):
        self.session.close()
