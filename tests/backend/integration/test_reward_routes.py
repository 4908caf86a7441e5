import uuid

import pytest

from app.models.persona import PersonaProfile


pytestmark = pytest.mark.asyncio

GOOD_TEXT = "I honestly did not expect you to make me smile this much tonight, so let's get coffee soon"


async def test_generate_reward_then_conflict(client, fakes, create_user, create_persona, create_round, auth_headers):
    user = await create_user()
    headers = auth_headers(user)
    persona = await create_persona()
    r = await create_round(user, persona, result="win", meter=100)
    fakes["chat"].text_responses = [GOOD_TEXT]

    status_before = await client.get(f"/api/v1/reward/status?roundId={r.id}", headers=headers)
    assert status_before.json()["data"] == {"status": "unknown"}

    missing = await client.get(f"/api/v1/reward/rounds/{r.id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "REWARD_NOT_FOUND"

    resp = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(r.id)})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["roundId"] == str(r.id)
    assert data["rewardText"] == GOOD_TEXT
    assert data["rewardVoiceUrl"].startswith("/media/rewards/audio/")
    assert data["rewardImageUrl"].startswith("/media/rewards/images/")
    assert data["fromCache"] is False

    again = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(r.id)})
    assert again.status_code == 409
    body = again.json()
    assert body["detail"] == "REWARD_ALREADY_EXISTS"
    assert body["data"]["id"] == data["id"]

    status_after = await client.get(f"/api/v1/reward/status?roundId={r.id}", headers=headers)
    assert status_after.json()["data"]["status"] == "completed"

    stored = await client.get(f"/api/v1/reward/rounds/{r.id}", headers=headers)
    assert stored.status_code == 200
    assert stored.json()["data"]["id"] == data["id"]

    cached = await PersonaProfile.get(id=persona.id)
    assert cached.rewards_generated is True


async def test_second_win_against_persona_uses_cache(client, fakes, create_user, create_persona, create_round, auth_headers):
    user = await create_user()
    headers = auth_headers(user)
    persona = await create_persona()
    first = await create_round(user, persona, result="win", meter=100)
    second = await create_round(user, persona, result="win", meter=100)
    fakes["chat"].text_responses = [GOOD_TEXT]

    await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(first.id)})
    calls = len(fakes["chat"].text_calls)
    resp = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(second.id)})

    assert resp.status_code == 200
    assert resp.json()["data"]["fromCache"] is True
    assert len(fakes["chat"].text_calls) == calls


async def test_generate_reward_errors(client, create_user, create_round, auth_headers):
    owner = await create_user()
    headers = auth_headers(owner)
    active = await create_round(owner)

    not_won = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(active.id)})
    assert not_won.status_code == 409
    assert not_won.json()["detail"] == "ROUND_NOT_WON"

    won = await create_round(owner, result="win", meter=100)
    stranger = auth_headers(await create_user())
    forbidden = await client.post("/api/v1/reward/generate", headers=stranger, json={"roundId": str(won.id)})
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "FORBIDDEN"

    unknown = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": str(uuid.uuid4())})
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "ROUND_NOT_FOUND"

    invalid = await client.post("/api/v1/reward/generate", headers=headers, json={"roundId": "not-a-uuid"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "INVALID_ROUND_ID"

    bad_status = await client.get("/api/v1/reward/status?roundId=xyz", headers=headers)
    assert bad_status.status_code == 400

    foreign_status = await client.get(f"/api/v1/reward/status?roundId={won.id}", headers=stranger)
    assert foreign_status.status_code == 403
    assert foreign_status.json()["detail"] == "FORBIDDEN"

    unknown_status = await client.get(f"/api/v1/reward/status?roundId={uuid.uuid4()}", headers=headers)
    assert unknown_status.status_code == 404
    assert unknown_status.json()["detail"] == "ROUND_NOT_FOUND"


async def test_persona_routes(client, create_user, create_admin, create_persona, auth_headers):
    player = auth_headers(await create_user())
    admin = auth_headers(await create_admin())
    for name in ("Ana", "Bea", "Cleo"):
        await create_persona(name)

    sample = await client.get("/api/v1/personas/random?count=2", headers=player)
    assert sample.status_code == 200
    assert len(sample.json()["data"]["items"]) == 2
    assert sample.json()["data"]["poolSize"] == 3

    payload = {"name": "Nina", "personaStyle": "witty", "attributes": {"haircolor": "black"}}
    denied = await client.post("/api/v1/personas", headers=player, json=payload)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "FORBIDDEN_ADMIN_ONLY"

    created = await client.post("/api/v1/personas", headers=admin, json=payload)
    assert created.status_code == 200
    item = created.json()["data"]
    assert item["source"] == "generated"
    assert item["imageUrl"].startswith("/media/portraits/nina_")
    assert "black" in item["description"]

    removed = await client.delete(f"/api/v1/personas/{item['id']}", headers=admin)
    assert removed.status_code == 200
    gone = await client.delete(f"/api/v1/personas/{item['id']}", headers=admin)
    assert gone.status_code == 404
    assert gone.json()["detail"] == "PERSONA_NOT_FOUND"


async def test_progress_for_new_player(client, create_user, auth_headers):
    user = await create_user()

    resp = await client.get("/api/v1/progress/me", headers=auth_headers(user))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["userId"] == str(user.id)
    assert (data["level"], data["totalXp"], data["progress"]) == (1, 0, 0.0)
    assert data["totalXpFormatted"] == "0"
    assert (data["totalRounds"], data["winRate"]) == (0, 0.0)
