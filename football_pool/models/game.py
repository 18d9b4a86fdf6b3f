from datetime import datetime, timezone

from football_pool import db
from football_pool.utils.timezone_utils import REGULAR_SEASON_WEEKS

FAVORITE_SIDES = ("home", "away")


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Natural key: (season, week, favorite_team, underdog_team)
    season = db.Column(db.Integer, nullable=False)
    week = db.Column(db.Integer, nullable=False)
    favorite_team = db.Column(db.String(100), nullable=False)
    underdog_team = db.Column(db.String(100), nullable=False)

    # Points the favorite is giving; 0 is a pick'em
    spread = db.Column(db.Float, nullable=False, default=0.0)

    # Which side the odds feed says is favored (FAVORITE_SIDES), if known
    favorite_side = db.Column(db.String(4))

    start_time = db.Column(db.DateTime, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    result = db.relationship(
        "Result", backref="game", uselist=False, cascade="all, delete-orphan"
    )
    picks = db.relationship("Pick", backref="game", lazy="dynamic")

    # Indexes
    __table_args__ = (
        db.UniqueConstraint(
            "season",
            "week",
            "favorite_team",
            "underdog_team",
            name="unique_game_natural_key",
        ),
        db.Index("idx_game_season_week", "season", "week"),
        db.CheckConstraint("favorite_team != underdog_team", name="different_teams"),
        db.CheckConstraint("spread >= 0", name="non_negative_spread"),
        db.CheckConstraint(
            f"week >= 1 AND week <= {REGULAR_SEASON_WEEKS}", name="valid_week"
        ),
    )

    def __repr__(self):
        return (
            f"<Game {self.underdog_team} @ {self.favorite_team} "
            f"({self.spread}) Week {self.week} {self.season}>"
        )

    @property
    def natural_key(self):
        return (self.season, self.week, self.favorite_team, self.underdog_team)

    @property
    def start_time_utc(self):
        """Start time as an aware UTC datetime"""
        start_time = self.start_time
        # If start_time is timezone-naive, assume it's in UTC
        if start_time is not None and start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        return start_time

    @property
    def is_pick_em(self):
        return self.spread == 0

    def has_started(self, now=None):
        """Check if game has started"""
        if not self.start_time:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.start_time_utc

    def to_dict(self, include_result=False):
        data = {
            "id": self.id,
            "season": self.season,
            "week": self.week,
            "favorite_team": self.favorite_team,
            "underdog_team": self.underdog_team,
            "spread": self.spread,
            "favorite_side": self.favorite_side,
            "start_time": (
                self.start_time_utc.isoformat() if self.start_time else None
            ),
        }
        if include_result:
            data["result"] = self.result.to_dict() if self.result else None
        return data
