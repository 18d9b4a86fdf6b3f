from datetime import datetime, timezone

from football_pool import db


class Week(db.Model):
    __tablename__ = "weeks"

    id = db.Column(db.Integer, primary_key=True)
    week_number = db.Column(db.Integer, nullable=False)
    season = db.Column(db.Integer, nullable=False)
    week_start_time = db.Column(db.DateTime, nullable=False)
    week_end_time = db.Column(db.DateTime, nullable=False)

    # At most one week is active; see Store.activate_week()
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("week_number", "season", name="unique_week_season"),
        db.Index("idx_week_active", "is_active"),
        db.CheckConstraint("week_end_time >= week_start_time", name="ordered_week"),
    )

    def __repr__(self):
        return f"<Week {self.week_number} {self.season}{' active' if self.is_active else ''}>"

    def to_dict(self):
        return {
            "id": self.id,
            "week_number": self.week_number,
            "season": self.season,
            "week_start_time": (
                self.week_start_time.isoformat() if self.week_start_time else None
            ),
            "week_end_time": (
                self.week_end_time.isoformat() if self.week_end_time else None
            ),
            "is_active": self.is_active,
        }
