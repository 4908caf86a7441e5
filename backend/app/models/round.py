# app/models/round.py
"""
Database model for conversation rounds.
One round is one practice chat between a player and a persona, scored by the
Success Meter until it is won or lost.
"""
import uuid
from tortoise import fields, models

class GameRound(models.Model):
    """
    Round database model.

    Relationships:
    - Belongs to a User (many-to-one)
    - Optionally references a PersonaProfile from the reusable pool; the persona
      fields are copied onto the round so history survives pool cleanup
    - Has many Messages (one-to-many, via related_name in Message model)
    - Has at most one Reward (one-to-one)

    Invariant: once `result` is set ("win" | "lose") the round is immutable to
    further scoring. Writes of the terminal result go through a conditional
    update on `result IS NULL` (see app.services.round_store).
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)  # Primary key: unique round identifier
    user = fields.ForeignKeyField(
        "models.User",
        related_name="rounds",
        on_delete=fields.CASCADE
    )  # Cascade delete (if the player is deleted, their rounds are deleted)
    persona = fields.ForeignKeyField(
        "models.PersonaProfile",
        related_name="rounds",
        null=True,
        on_delete=fields.SET_NULL
    )  # Pool entry the round was started from (null for inline personas or after cleanup)

    # Persona snapshot
    persona_name = fields.CharField(max_length=64)
    persona_image_url = fields.CharField(max_length=1024, null=True)
    persona_description = fields.TextField(null=True)  # Appearance prompt (<girl-description> substitution)
    persona_style = fields.CharField(max_length=64, default="playful")

    # Live state
    initial_meter = fields.IntField(default=20)
    meter = fields.IntField(default=20)  # Success Meter, 0-100
    combo = fields.IntField(default=0)  # Current combo level, 0-5
    highest_combo = fields.IntField(default=0)
    message_count = fields.IntField(default=0)  # Number of scored user messages
    result = fields.CharField(max_length=8, null=True)  # null while active, then "win" | "lose"

    # XP bookkeeping (filled on completion)
    message_xp_sum = fields.IntField(default=0)
    win_xp = fields.IntField(default=0)
    streak_multiplier = fields.FloatField(default=1.0)
    xp_gained = fields.IntField(default=0)
    xp_before = fields.BigIntField(null=True)
    xp_after = fields.BigIntField(null=True)

    started_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "game_rounds"
