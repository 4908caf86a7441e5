# app/schemas/persona.py
"""
Pydantic schemas for the persona pool endpoints.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict


class PersonaCreateIn(BaseModel):
    """
    Request model for adding a persona to the pool (admin only).
    The portrait is generated from `attributes`; a placeholder is used when
    generation fails.
    """
    name: str = Field(min_length=1, max_length=64)  # Display name
    personaStyle: str = "playful"  # Personality type
    description: Optional[str] = None  # Appearance text (derived from attributes when omitted)
    attributes: Dict[str, str] = {}  # setting, ethnicity, hairstyle, haircolor, eyecolor, bodytype


class PersonaOut(BaseModel):
    """
    Persona pool entry as returned to clients.
    """
    id: str
    name: str
    imageUrl: str
    description: Optional[str] = None
    personaStyle: str
    source: str  # "generated" | "placeholder" | "manual"
    useCount: int
    rewardsGenerated: bool


__all__ = ["PersonaCreateIn", "PersonaOut"]
