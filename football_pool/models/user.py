from datetime import datetime, timezone

from football_pool import db

ROLES = ("user", "admin")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    # Hashing is owned by the auth collaborator; the core never sees plaintext
    password_hash = db.Column(db.String(255), nullable=False, default="")
    role = db.Column(db.String(10), nullable=False, default="user")

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    player = db.relationship(
        "Player", backref="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'admin')", name="valid_role"),
    )

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "player": self.player.to_dict() if self.player else None,
        }


class Player(db.Model):
    """Profile card; at most one per user"""

    __tablename__ = "players"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False
    )
    name = db.Column(db.String(100))
    address = db.Column(db.String(255))

    def __repr__(self):
        return f"<Player user_id={self.user_id} {self.name}>"

    def to_dict(self):
        return {"id": self.id, "name": self.name, "address": self.address}
