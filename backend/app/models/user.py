# app/models/user.py
"""
Database model for players.
Represents a player account (identity comes from the external auth service)
together with the progress aggregate that is updated when a round completes.
"""
import uuid
from tortoise import fields, models

class User(models.Model):
    """
    User database model.

    Relationships:
    - Has many GameRounds (one-to-many, via related_name="rounds")

    Progress fields are mutated only on round completion:
    - current_streak counts consecutive wins and resets to 0 on any loss
    - best_streak never decreases
    - the level is derived from total_xp (app.services.xp), never stored
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)  # Primary key: same id as the auth service's subject
    username = fields.CharField(
        max_length=256,
        unique=True,
        index=True
    )  # Display name (must be unique)
    email = fields.CharField(max_length=256, null=True)  # Optional contact email
    role = fields.CharField(max_length=16, default="user")  # "user" (default) or "admin"
    created_at = fields.DatetimeField(auto_now_add=True)

    # ----- progress aggregate -----
    total_xp = fields.BigIntField(default=0)
    total_rounds = fields.IntField(default=0)
    total_wins = fields.IntField(default=0)
    total_losses = fields.IntField(default=0)
    current_streak = fields.IntField(default=0)
    best_streak = fields.IntField(default=0)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"  # Database table name
