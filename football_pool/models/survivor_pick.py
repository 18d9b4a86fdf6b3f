from datetime import datetime, timezone

from football_pool import db


class SurvivorPick(db.Model):
    """One team per user per week; reusing a team across weeks is allowed"""

    __tablename__ = "survivor_picks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    team = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("user_id", "week", name="unique_user_week_survivor"),
    )

    def __repr__(self):
        return f"<SurvivorPick user_id={self.user_id} week={self.week} {self.team}>"

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "week": self.week,
            "team": self.team,
        }
