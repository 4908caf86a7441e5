"""
Persona Pool

Reusable personas served at round start. Operations:
- sample(count): random distinct entries
- mark_used(persona_id)
- add(...): builds the appearance description, generates a portrait through
  the image capability under the shared retry utility, falls back to the
  placeholder portrait when every attempt fails
- remove(persona_id): deletes the entry and its stored assets
"""
import asyncio
import logging
import random
from typing import Dict, List, Optional

from tortoise.expressions import F

from ..config import settings
from ..core.retry import BackoffPolicy, with_retry
from ..models import PersonaProfile
from .ai_base import AssetStorage, ImageService
from .round_store import RoundStore, utcnow
from .storage_local import generate_asset_key

logger = logging.getLogger(__name__)

PORTRAIT_POLICY = BackoffPolicy.ladder(1.0, 2.0)

PORTRAIT_PROMPT = (
    "Candid smartphone photo for a dating profile: a <bodytype> <ethnicity> woman in her twenties "
    "with <haircolor> <hairstyle> hair and <eyecolor> eyes, <setting>. Natural light, "
    "relaxed genuine smile, fully clothed, casual everyday outfit, photorealistic, portrait 3:4."
)

_DEFAULT_ATTRIBUTES = {
    "setting": "at a sunny outdoor cafe",
    "ethnicity": "",
    "hairstyle": "long",
    "haircolor": "brown",
    "eyecolor": "brown",
    "bodytype": "slim",
}


def _normalize_attributes(attributes: Optional[Dict]) -> Dict[str, str]:
    attrs = dict(_DEFAULT_ATTRIBUTES)
    for k, v in (attributes or {}).items():
        key = k.lower().replace("_", "")
        if key in attrs and v:
            attrs[key] = str(v)
    return attrs


def substitute_prompt(template: str, attributes: Optional[Dict]) -> str:
    prompt = template
    for key, value in _normalize_attributes(attributes).items():
        prompt = prompt.replace(f"<{key}>", value)
    return " ".join(prompt.split())


def describe_appearance(attributes: Optional[Dict]) -> str:
    """Short appearance text stored on the persona (used as <girl-description>)."""
    a = _normalize_attributes(attributes)
    parts = [p for p in (a["bodytype"], a["ethnicity"]) if p]
    return (
        f"A {' '.join(parts)} woman with {a['haircolor']} {a['hairstyle']} hair "
        f"and {a['eyecolor']} eyes, {a['setting']}"
    )


class PersonaPool:
    def __init__(
        self,
        images: ImageService | None,
        storage: AssetStorage,
        store: RoundStore | None = None,
        sleep=asyncio.sleep,
    ):
        self.images = images
        self.storage = storage
        self.store = store or RoundStore(storage)
        self.sleep = sleep

    async def size(self) -> int:
        return await PersonaProfile.all().count()

    async def sample(self, count: int = 3) -> List[PersonaProfile]:
        ids = await PersonaProfile.all().values_list("id", flat=True)
        if not ids:
            return []
        picked = random.sample(list(ids), min(count, len(ids)))
        rows = await PersonaProfile.filter(id__in=picked)
        random.shuffle(rows)
        return rows

    async def get(self, persona_id) -> Optional[PersonaProfile]:
        return await PersonaProfile.get_or_none(id=persona_id)

    async def mark_used(self, persona_id) -> None:
        await PersonaProfile.filter(id=persona_id).update(
            use_count=F("use_count") + 1,
            last_used_at=utcnow(),
        )

    async def generate_portrait(self, name: str, prompt: str) -> tuple[str, bool]:
        """
        Returns (image_url, used_placeholder).
        """
        if self.images is None or not self.images.is_available():
            logger.warning("[Pool] image service unavailable, using placeholder for %s", name)
            return settings.placeholder_portrait_url, True

        try:
            data = await with_retry(
                lambda attempt: self.images.synthesize(prompt),
                policy=PORTRAIT_POLICY,
                sleep=self.sleep,
                label=f"portrait:{name}",
            )
        except Exception as e:
            logger.error("[Pool] portrait generation failed for %s, falling back to placeholder: %s", name, e)
            return settings.placeholder_portrait_url, True

        url = await self.storage.save(generate_asset_key("portraits", name), data, "image/png")
        return url, False

    async def add(
        self,
        name: str,
        attributes: Optional[Dict] = None,
        persona_style: str = "playful",
        description: Optional[str] = None,
    ) -> PersonaProfile:
        description = description or describe_appearance(attributes)
        prompt = substitute_prompt(PORTRAIT_PROMPT, attributes)
        image_url, placeholder = await self.generate_portrait(name, prompt)
        persona = await PersonaProfile.create(
            name=name,
            image_url=image_url,
            description=description,
            persona_style=persona_style,
            attributes=attributes or {},
            source="placeholder" if placeholder else "generated",
        )
        logger.info("[Pool] added %s (%s)%s", name, persona.id, " with placeholder" if placeholder else "")
        return persona

    async def remove(self, persona_id) -> bool:
        return await self.store.delete_persona_assets(persona_id)
