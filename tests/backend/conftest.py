import os
import tempfile
import uuid
from types import SimpleNamespace

# Settings are read at import time: point media at a scratch dir before app imports
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="charm-dojo-media-"))
os.environ["SEED_PERSONAS"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from app.core import db as db_module
from app.core.reward_status import RewardStatusRegistry
from app.core.security import create_access_token
from app.main import app
from app.models.persona import PersonaProfile
from app.models.round import GameRound
from app.models.user import User
from app.services.ai_base import (
    AssetStorage,
    ChatService,
    ImageService,
    ModerationResult,
    ModerationService,
    VoiceService,
)
from app.services.game_service import RoundLocks
from app.services.provider_factory import (
    get_asset_storage,
    get_chat_service,
    get_image_service,
    get_moderation_service,
    get_voice_service,
)
from app.services.reward_service import RewardFlights


TEST_DB_URL = "sqlite://:memory:?cache=shared"
os.environ["DATABASE_URL"] = TEST_DB_URL
db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=db_module.TORTOISE_ORM)
    await Tortoise.generate_schemas()


# ===== Fake capabilities =====

def _next(queue: list):
    """Pop responses in order; the last one repeats."""
    item = queue.pop(0) if len(queue) > 1 else queue[0]
    if isinstance(item, BaseException):
        raise item
    return item


class FakeChat(ChatService):
    """
    Scripted chat capability.
    json_responses feed the evaluator, text_responses feed replies and reward text.
    """

    name = "fake-chat"

    def __init__(self, json_responses=None, text_responses=None):
        self.json_responses = list(json_responses or [{"delta": 0, "category": "neutral", "reasoning": "Plain but fine message"}])
        self.text_responses = list(text_responses or ["Haha, tell me more about that!"])
        self.json_calls = []
        self.text_calls = []

    def is_available(self) -> bool:
        return True

    async def complete_json(self, messages, *, model=None, temperature=0.7, max_tokens=200, timeout=None) -> dict:
        self.json_calls.append(messages)
        return _next(self.json_responses)

    async def complete_text(self, messages, *, model=None, temperature=0.8, max_tokens=200, timeout=None) -> str:
        self.text_calls.append(messages)
        return _next(self.text_responses)


class FakeModeration(ModerationService):
    def __init__(self, result: ModerationResult | None = None, error: Exception | None = None):
        self.result = result or ModerationResult(flagged=False, categories={})
        self.error = error
        self.calls = []

    async def moderate(self, text: str) -> ModerationResult:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.result


class FakeVoice(VoiceService):
    def __init__(self, error: Exception | None = None, available: bool = True):
        self.error = error
        self.available = available
        self.calls = []

    def is_available(self) -> bool:
        return self.available

    async def synthesize(self, text: str) -> bytes:
        self.calls.append(text)
        if self.error:
            raise self.error
        return b"ID3-fake-audio"


class FakeImage(ImageService):
    def __init__(self, outcomes=None, available: bool = True):
        self.outcomes = list(outcomes or [b"\x89PNG-fake"])
        self.available = available
        self.prompts = []

    def is_available(self) -> bool:
        return self.available

    async def synthesize(self, prompt: str) -> bytes:
        self.prompts.append(prompt)
        return _next(self.outcomes)


class MemoryStorage(AssetStorage):
    def __init__(self):
        self.files = {}
        self.deleted = []

    async def save(self, key: str, data: bytes, content_type: str) -> str:
        url = f"/media/{key}"
        self.files[url] = data
        return url

    async def delete(self, url: str) -> bool:
        self.deleted.append(url)
        return self.files.pop(url, None) is not None


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def fake():
    """
    Fake capability classes (and a no-op sleep) for wiring services by hand.
    """
    return SimpleNamespace(
        Chat=FakeChat,
        Moderation=FakeModeration,
        Voice=FakeVoice,
        Image=FakeImage,
        Storage=MemoryStorage,
        no_sleep=no_sleep,
    )


# ===== Database / app fixtures =====

@pytest_asyncio.fixture
async def db():
    """
    Fresh in-memory database for service-level tests (no HTTP client).
    """
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def fakes():
    """
    One set of fake providers; the client fixture wires them into the app.
    """
    return {
        "chat": FakeChat(),
        "moderation": FakeModeration(),
        "voice": FakeVoice(),
        "image": FakeImage(),
        "storage": MemoryStorage(),
    }


@pytest_asyncio.fixture
async def client(fakes):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB
    and fake AI providers.
    """
    await _init_test_db()
    app.dependency_overrides[get_chat_service] = lambda: fakes["chat"]
    app.dependency_overrides[get_moderation_service] = lambda: fakes["moderation"]
    app.dependency_overrides[get_voice_service] = lambda: fakes["voice"]
    app.dependency_overrides[get_image_service] = lambda: fakes["image"]
    app.dependency_overrides[get_asset_storage] = lambda: fakes["storage"]
    app.state.reward_status = RewardStatusRegistry()
    app.state.round_locks = RoundLocks()
    app.state.reward_flights = RewardFlights()

    # Use ASGITransport without lifespan parameter (not supported in all httpx versions)
    try:
        transport = ASGITransport(app=app, lifespan="off")
    except TypeError:
        # Fallback for httpx versions that don't support lifespan parameter
        transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    app.dependency_overrides.clear()
    await Tortoise.close_connections()


# ===== Factories =====

@pytest_asyncio.fixture
async def create_admin():
    """
    Factory fixture to create admin users directly via ORM for privileged endpoints.
    """

    async def _create_admin() -> User:
        return await User.create(
            username=f"admin_{uuid.uuid4().hex[:6]}",
            email="admin@example.com",
            role="admin",
        )

    return _create_admin


@pytest_asyncio.fixture
async def create_user():
    """
    Factory fixture to create regular players directly.
    """

    async def _create_user(**fields) -> User:
        fields.setdefault("username", f"user_{uuid.uuid4().hex[:6]}")
        fields.setdefault("email", f"{uuid.uuid4().hex[:6]}@example.com")
        fields.setdefault("role", "user")
        return await User.create(**fields)

    return _create_user


@pytest.fixture
def auth_headers():
    """
    Authorization headers for a user, signed like the auth service does.
    """

    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(str(user.id), user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def create_persona():
    async def _create_persona(name: str = "Luna", **fields) -> PersonaProfile:
        fields.setdefault("image_url", "/media/portraits/luna.png")
        fields.setdefault("description", "A slim woman with long brown hair and green eyes, at a beach bar")
        fields.setdefault("persona_style", "playful")
        return await PersonaProfile.create(name=name, **fields)

    return _create_persona


@pytest_asyncio.fixture
async def create_round():
    """
    Factory for rounds; pass persona=PersonaProfile to link a pool entry.
    """

    async def _create_round(user: User, persona: PersonaProfile | None = None, **fields) -> GameRound:
        snapshot = {
            "persona_name": persona.name if persona else "Luna",
            "persona_image_url": persona.image_url if persona else None,
            "persona_description": persona.description if persona else "A woman with curly red hair, in a park",
            "persona_style": persona.persona_style if persona else "playful",
        }
        snapshot.update(fields)
        snapshot.setdefault("meter", 20)
        return await GameRound.create(user=user, persona=persona, **snapshot)

    return _create_round
