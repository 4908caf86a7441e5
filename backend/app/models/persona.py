# app/models/persona.py
"""
Database model for the reusable persona pool.
Each entry is a persona (name, portrait, appearance description, style) that
can be served in many rounds, plus the cached reward that is replayed for
later wins against the same persona.
"""
import uuid
from tortoise import fields, models

class PersonaProfile(models.Model):
    """
    Persona pool entry.

    Relationships:
    - Has many GameRounds (one-to-many, via related_name="rounds")

    Cache fields are written only after a reward whose image succeeded;
    `rewards_generated` is the flag the orchestrator checks on its fast path.
    Shared across all rounds; writes are last-writer-wins.
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    name = fields.CharField(max_length=64)
    image_url = fields.CharField(max_length=1024)
    description = fields.TextField()  # Appearance description used in image prompts
    persona_style = fields.CharField(max_length=64, default="playful")
    attributes = fields.JSONField(null=True)  # Free-form traits (hair, style, setting ...)
    source = fields.CharField(max_length=16, default="generated")  # "generated" | "placeholder" | "manual"
    use_count = fields.IntField(default=0)
    last_used_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    # ----- persona reward cache -----
    rewards_generated = fields.BooleanField(default=False)
    reward_text = fields.TextField(null=True)
    reward_voice_url = fields.CharField(max_length=1024, null=True)
    reward_image_url = fields.CharField(max_length=1024, null=True)
    reward_generated_at = fields.DatetimeField(null=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "persona_profiles"
