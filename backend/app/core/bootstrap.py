# app/core/bootstrap.py
"""
Bootstrap module for application initialization.
Seeds the persona pool on first startup so rounds can be started before an
admin has generated any personas.
"""
import os
import logging
from app.config import settings
from app.models.persona import PersonaProfile
from app.services.persona_pool import describe_appearance

logger = logging.getLogger("uvicorn.error")

SEED_PERSONAS = [
    ("Emma", "playful", {
        "ethnicity": "Caucasian", "hairstyle": "wavy shoulder-length", "haircolor": "honey blonde",
        "eyecolor": "green", "bodytype": "athletic", "setting": "on a hiking trail at sunset",
    }),
    ("Mia", "confident", {
        "ethnicity": "Hispanic", "hairstyle": "long curly", "haircolor": "dark brown",
        "eyecolor": "brown", "bodytype": "curvy", "setting": "at a rooftop bar in the city",
    }),
    ("Yuna", "shy", {
        "ethnicity": "Korean", "hairstyle": "straight with bangs", "haircolor": "black",
        "eyecolor": "dark brown", "bodytype": "petite", "setting": "in a cozy bookstore",
    }),
    ("Zara", "witty", {
        "ethnicity": "Black", "hairstyle": "box braids", "haircolor": "black",
        "eyecolor": "hazel", "bodytype": "tall and slim", "setting": "at an outdoor food market",
    }),
]

async def ensure_persona_pool() -> None:
    """
    If the persona pool is empty, insert the seed personas with the placeholder
    portrait. Only takes effect under the following conditions:
      - Currently no PersonaProfile rows
      - And SEED_PERSONAS is not disabled ("false" / "0")
    """
    if os.getenv("SEED_PERSONAS", "true").strip().lower() in ("false", "0", "no"):
        return
    if await PersonaProfile.all().exists():
        return  # Pool already populated

    for name, style, attributes in SEED_PERSONAS:
        await PersonaProfile.create(
            name=name,
            image_url=settings.placeholder_portrait_url,
            description=describe_appearance(attributes),
            persona_style=style,
            attributes=attributes,
            source="manual",
        )
    logger.warning("[bootstrap] Persona pool was empty -> seeded %d personas", len(SEED_PERSONAS))
