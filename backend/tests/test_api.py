"""
HTTP-level tests: FastAPI app driven through httpx's ASGI transport, with
the Gemini service mocked and the ledger stored in a temporary SQLite file.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from veggie_muse.db.database import Base, get_db
from veggie_muse.errors import GenerationFailedError, SafetyBlockedError
from veggie_muse.main import (
    CANCELLED_MESSAGE,
    OVERLOADED_MESSAGE,
    _run_generator,
    app,
    get_ai_service,
    get_recipe_finder,
)
from veggie_muse.models.preferences import INGREDIENT_SIGNAL_MESSAGE
from veggie_muse.pipeline.state import GeneratorKind, GeneratorStage
from veggie_muse.services.client_context import ClientContext
from veggie_muse.services.history_ledger import HistoryLedger
from veggie_muse.services.recipe_finder import RecipeFinder
from veggie_muse.services.session_manager import session_manager

CLIENT_ID = "browser-123"
HEADERS = {"X-Client-Id": CLIENT_ID, "X-Api-Key": "user-key"}
RECIPE_BODY = {"mood": 1, "available_ingredients": ["Rice", "Spinach"]}


@pytest.fixture
async def client(tmp_path, ai_service):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def _get_test_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_ai_service] = lambda: ai_service
    app.dependency_overrides[get_recipe_finder] = lambda: RecipeFinder(table="")

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
    await engine.dispose()


async def _verify(client: httpx.AsyncClient, client_id: str = CLIENT_ID):
    headers = {"X-Client-Id": client_id}
    await client.post("/api/verification/challenge", headers=headers)
    answer = session_manager.get_or_create(client_id).pending_challenge.answer
    resp = await client.post("/api/verification/answer", json={"answer": answer}, headers=headers)
    assert resp.json() == {"verified": True}


# ---------------------------------------------------------------------------
# Basics
# ---------------------------------------------------------------------------


class TestBasics:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200

    async def test_options(self, client):
        data = (await client.get("/api/options")).json()
        assert data["moods"][1] == "Cozy"
        assert len(data["common_ingredients"]) == 49
        assert {"value": "15", "label": "Under 15 minutes"} in data["time_budgets"]

    async def test_client_id_required(self, client):
        resp = await client.get("/api/verification")
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerification:
    async def test_flow(self, client):
        assert (await client.get("/api/verification", headers=HEADERS)).json() == {"verified": False}
        await _verify(client)
        assert (await client.get("/api/verification", headers=HEADERS)).json() == {"verified": True}

    async def test_wrong_answer_issues_new_challenge(self, client):
        await client.post("/api/verification/challenge", headers=HEADERS)
        resp = await client.post("/api/verification/answer", json={"answer": "not a number"}, headers=HEADERS)
        data = resp.json()
        assert data["verified"] is False
        assert data["error"] == "Incorrect. Please try again."
        assert data["question"].startswith("What is ")

    async def test_answer_without_challenge(self, client):
        resp = await client.post("/api/verification/answer", json={"answer": "4"}, headers=HEADERS)
        assert resp.status_code == 400

    async def test_generation_requires_verification(self, client, ai_service):
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert resp.status_code == 403
        ai_service.generate_recipe_options.assert_not_awaited()


# ---------------------------------------------------------------------------
# Recipes
# ---------------------------------------------------------------------------


class TestRecipes:
    async def test_generate_and_fetch(self, client):
        await _verify(client)
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert resp.status_code == 200
        recipe = resp.json()
        assert recipe["recipe_name"] == "Spinach Rice Pilaf"
        assert recipe["missing_ingredients"] == ["Onion"]

        current = (await client.get("/api/recipes/current", headers=HEADERS)).json()
        assert current["stage"] == "success"
        assert current["result"]["recipe_name"] == "Spinach Rice Pilaf"

    async def test_history_persisted_between_requests(self, client):
        await _verify(client)
        await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        second = (await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)).json()
        assert second["recipe_name"] == "Creamy Spinach Risotto"

        history = (await client.get("/api/history", headers=HEADERS)).json()
        assert history["recipe_titles"] == ["Creamy Spinach Risotto", "Spinach Rice Pilaf"]
        assert history["quotes"] == ["Quote B", "Quote A"]

    async def test_no_ingredients_is_field_error(self, client, ai_service):
        await _verify(client)
        resp = await client.post("/api/recipes", json={"mood": 1}, headers=HEADERS)
        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert detail[0]["loc"][-1] == "available_ingredients"
        assert INGREDIENT_SIGNAL_MESSAGE in detail[0]["msg"]
        ai_service.generate_recipe_options.assert_not_awaited()

    async def test_missing_api_key(self, client):
        await _verify(client)
        del app.dependency_overrides[get_ai_service]
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers={"X-Client-Id": CLIENT_ID})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "API Key is missing."

    async def test_unsafe_ingredients(self, client, ai_service):
        await _verify(client)
        ai_service.generate_recipe_options.side_effect = SafetyBlockedError("blocked")
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert resp.status_code == 422
        assert "safe and edible" in resp.json()["detail"]
        current = (await client.get("/api/recipes/current", headers=HEADERS)).json()
        assert current["stage"] == "failed"

    async def test_overloaded(self, client, ai_service):
        await _verify(client)
        ai_service.generate_recipe_options.side_effect = GenerationFailedError("503")
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert resp.status_code == 503
        assert resp.json()["detail"] == OVERLOADED_MESSAGE
        assert (await client.get("/api/history", headers=HEADERS)).json()["recipe_titles"] == []

    async def test_busy_generator_rejected(self, client):
        await _verify(client)
        session_manager.get_or_create(CLIENT_ID).slot("recipe").begin()
        resp = await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert resp.status_code == 409

    async def test_generate_another_resets(self, client):
        await _verify(client)
        await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        assert (await client.delete("/api/recipes/current", headers=HEADERS)).status_code == 204
        current = (await client.get("/api/recipes/current", headers=HEADERS)).json()
        assert current == {"stage": "idle", "error": None, "result": None}

    async def test_shopping_list_download(self, client):
        await _verify(client)
        await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        resp = await client.get("/api/recipes/current/shopping-list.txt", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.text == "Onion"
        assert resp.headers["content-type"].startswith("text/plain")
        assert 'filename="shopping-list.txt"' in resp.headers["content-disposition"]

    async def test_download_without_recipe(self, client):
        resp = await client.get("/api/recipes/current/shopping-list.txt", headers=HEADERS)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Weekly plans and passports
# ---------------------------------------------------------------------------


class TestWeeklyPlans:
    async def test_generate_and_download(self, client):
        await _verify(client)
        resp = await client.post("/api/weekly-plans", json={"cuisine_preference": "Indian"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["consolidated_shopping_list"] == ["onions", "paneer", "rice"]

        download = await client.get("/api/weekly-plans/current/shopping-list.txt", headers=HEADERS)
        assert download.text == "onions\npaneer\nrice"
        assert 'filename="weekly-shopping-list.txt"' in download.headers["content-disposition"]

    async def test_retries_exhausted(self, client, ai_service):
        await _verify(client)
        ai_service.generate_weekly_plan.side_effect = GenerationFailedError("503")
        resp = await client.post("/api/weekly-plans", json={"cuisine_preference": "Thai"}, headers=HEADERS)
        assert resp.status_code == 503
        assert ai_service.generate_weekly_plan.await_count == 3


class TestPassports:
    async def test_generate(self, client):
        await _verify(client)
        resp = await client.post("/api/passports", json={"destination": "Florence"}, headers=HEADERS)
        assert resp.status_code == 200
        data = resp.json()
        assert len(data["recommendations"]) == 3
        assert data["chef_card_audio_uri"].startswith("data:audio/wav;base64,")

        history = (await client.get("/api/history", headers=HEADERS)).json()
        assert history["passport_dishes"][0] == "Florence|Ribollita"

    async def test_fallback_is_success_response(self, client, ai_service):
        await _verify(client)
        ai_service.generate_passport_text.side_effect = GenerationFailedError("503")
        resp = await client.post("/api/passports", json={"destination": "Florence"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["is_fallback"] is True

    async def test_short_destination_rejected(self, client):
        await _verify(client)
        resp = await client.post("/api/passports", json={"destination": "NY"}, headers=HEADERS)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Chat, history, ad-hoc downloads
# ---------------------------------------------------------------------------


class TestChat:
    async def test_reply(self, client, ai_service):
        resp = await client.post(
            "/api/chat",
            json={"message": "How do I crisp tofu?", "history": [{"role": "user", "content": "hi"}]},
            headers=HEADERS,
        )
        assert resp.json() == {"message": "Press it, then roast it at 220C.", "blocked": False}
        message, history = ai_service.chat.await_args.args
        assert message == "How do I crisp tofu?"
        assert history[0].content == "hi"

    async def test_safety_gets_canned_reply(self, client, ai_service):
        ai_service.chat.side_effect = SafetyBlockedError("blocked")
        data = (await client.post("/api/chat", json={"message": "..."}, headers=HEADERS)).json()
        assert data["blocked"] is True
        assert "safety guidelines" in data["message"]

    async def test_failure_is_bad_gateway(self, client, ai_service):
        ai_service.chat.side_effect = GenerationFailedError("down")
        resp = await client.post("/api/chat", json={"message": "hello"}, headers=HEADERS)
        assert resp.status_code == 502


class TestHistory:
    async def test_clear_one_category(self, client):
        await _verify(client)
        await client.post("/api/recipes", json=RECIPE_BODY, headers=HEADERS)
        resp = await client.delete("/api/history", params={"category": "quotes"}, headers=HEADERS)
        assert resp.json()["quotes"] == []
        assert resp.json()["recipe_titles"] == ["Spinach Rice Pilaf"]

        assert (await client.get("/api/history", headers=HEADERS)).json()["quotes"] == []

    async def test_unknown_category_rejected(self, client):
        resp = await client.delete("/api/history", params={"category": "colours"}, headers=HEADERS)
        assert resp.status_code == 422


class TestAdHocShoppingList:
    async def test_dedupes(self, client):
        resp = await client.post("/api/shopping-list", json={"items": ["kale", "oats", "kale"]})
        assert resp.text == "kale\noats"

    async def test_filename_must_be_plain(self, client):
        resp = await client.post("/api/shopping-list", json={"items": ["kale"], "filename": "../x\".txt"})
        assert resp.status_code == 422


class TestGeneratorSlotRelease:
    async def test_cancelled_run_does_not_lock_generator(self):
        session = session_manager.get_or_create(CLIENT_ID)
        ctx = ClientContext(session=session, ledger=HistoryLedger(), db=AsyncMock())
        run = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await _run_generator(ctx, GeneratorKind.RECIPE, run)

        slot = session.slot(GeneratorKind.RECIPE)
        assert slot.stage == GeneratorStage.FAILED
        assert slot.error == CANCELLED_MESSAGE
        slot.begin()
        assert slot.stage == GeneratorStage.SUBMITTING
