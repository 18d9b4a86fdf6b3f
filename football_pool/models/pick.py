from datetime import datetime, timezone

from football_pool import db

PICK_SIDES = ("favorite", "underdog")


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)

    # Pick details
    picked = db.Column(db.String(10), nullable=False)
    rank = db.Column(db.Integer, nullable=False)  # higher = more confident
    quick_pick = db.Column(db.Boolean, nullable=False, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", backref=db.backref("picks", lazy="dynamic"))

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "game_id", name="unique_user_game_pick"),
        db.Index("idx_pick_game", "game_id"),
        db.CheckConstraint("rank >= 1", name="positive_rank"),
        db.CheckConstraint("picked IN ('favorite', 'underdog')", name="valid_side"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} game_id={self.game_id} {self.picked} rank={self.rank}>"

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "game_id": self.game_id,
            "picked": self.picked,
            "rank": self.rank,
            "quick_pick": self.quick_pick,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
