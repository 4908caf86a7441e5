# app/models/reward.py
"""
Database model for win rewards.
A reward bundles a short flirtatious text, an optional voice line and an
optional portrait, generated once per won round.
"""
import uuid
from tortoise import fields, models

class Reward(models.Model):
    """
    Reward database model.

    Relationships:
    - Belongs to exactly one GameRound; the one-to-one field carries a unique
      constraint, which is what makes "at most one Reward per round" hold
      even when two generations race

    `from_cache` marks rewards copied from the persona reward cache instead of
    being generated for this round.
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    round = fields.OneToOneField(
        "models.GameRound",
        related_name="reward",
        on_delete=fields.CASCADE
    )
    text = fields.TextField()
    voice_url = fields.CharField(max_length=1024, null=True)
    image_url = fields.CharField(max_length=1024, null=True)
    generation_time_ms = fields.IntField(default=0)
    breakdown = fields.JSONField(null=True)  # {"textMs": ..., "voiceMs": ..., "imageMs": ...}
    from_cache = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "rewards"
