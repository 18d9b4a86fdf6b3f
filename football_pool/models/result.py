from datetime import datetime, timezone

from football_pool import db
from football_pool.utils.scoring import OUTCOMES, outcome_for


class Result(db.Model):
    __tablename__ = "results"

    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(
        db.Integer, db.ForeignKey("games.id"), unique=True, nullable=False
    )

    favorite_score = db.Column(db.Integer, nullable=False, default=0)
    underdog_score = db.Column(db.Integer, nullable=False, default=0)

    # Always derived from the scores and the game's spread, see grade()
    outcome = db.Column(db.String(10), nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "favorite_score >= 0 AND underdog_score >= 0", name="non_negative_scores"
        ),
        db.CheckConstraint(
            "outcome IN ({})".format(", ".join(f"'{o}'" for o in OUTCOMES)),
            name="valid_outcome",
        ),
    )

    def __repr__(self):
        return (
            f"<Result game_id={self.game_id} "
            f"{self.favorite_score}-{self.underdog_score} {self.outcome}>"
        )

    def grade(self, spread):
        """Recompute the outcome against a spread and return it"""
        self.outcome = outcome_for(self.favorite_score, self.underdog_score, spread)
        return self.outcome

    def to_dict(self):
        return {
            "id": self.id,
            "game_id": self.game_id,
            "favorite_score": self.favorite_score,
            "underdog_score": self.underdog_score,
            "outcome": self.outcome,
        }
