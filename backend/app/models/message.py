# app/models/message.py
import uuid
from tortoise import fields, models

class Message(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    round = fields.ForeignKeyField("models.GameRound", related_name="messages", on_delete=fields.CASCADE)
    seq = fields.IntField()  # Order within the round, starting at 1
    role = fields.CharField(max_length=16)  # "user" | "assistant"
    content = fields.TextField()

    # Scoring projection (user turns only; null on persona turns)
    delta = fields.IntField(null=True)        # Delta actually applied to the meter (after combo)
    raw_delta = fields.IntField(null=True)    # Evaluator delta before combo amplification
    meter_after = fields.IntField(null=True)
    category = fields.CharField(max_length=16, null=True)
    reasoning = fields.TextField(null=True)
    combo_after = fields.IntField(null=True)
    xp_earned = fields.IntField(default=0)

    # Instant fail
    is_instant_fail = fields.BooleanField(default=False)
    fail_reason = fields.CharField(max_length=32, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "messages"
        ordering = ["seq"]
        unique_together = (("round", "seq"),)
