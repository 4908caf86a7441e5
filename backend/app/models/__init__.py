# app/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- User: Player account and progress aggregate
- PersonaProfile: Reusable persona pool entry (with cached reward)
- GameRound: One practice conversation scored by the Success Meter
- Message: User or persona turn belonging to a round
- Reward: Text/voice/image bundle unlocked on a win
"""
from .user import User
from .persona import PersonaProfile
from .round import GameRound
from .message import Message
from .reward import Reward
