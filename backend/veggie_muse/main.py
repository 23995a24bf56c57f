from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from veggie_muse.db.database import engine, get_db
from veggie_muse.errors import GenerationFailedError, GeneratorBusyError, MissingApiKeyError, SafetyBlockedError
from veggie_muse.models.chat import ChatRequest, ChatResponse
from veggie_muse.models.passport import CulinaryPassport
from veggie_muse.models.preferences import (
    COMMON_INGREDIENTS,
    MOODS_BY_INDEX,
    PassportPreferences,
    RecipePreferences,
    TimeBudget,
    WeeklyPlanPreferences,
)
from veggie_muse.models.recipe import GeneratedRecipe
from veggie_muse.models.shopping import (
    RECIPE_SHOPPING_LIST_FILENAME,
    WEEKLY_SHOPPING_LIST_FILENAME,
    ShoppingList,
)
from veggie_muse.models.weekly_plan import WeeklyPlan
from veggie_muse.pipeline.passport import generate_passport
from veggie_muse.pipeline.recipe import generate_recipe
from veggie_muse.pipeline.state import GeneratorKind, GeneratorResult
from veggie_muse.pipeline.weekly_plan import generate_weekly_plan
from veggie_muse.services.ai_service import GeminiService
from veggie_muse.services.captcha import check_answer, generate_challenge
from veggie_muse.services.client_context import ClientContext
from veggie_muse.services.history_ledger import LedgerCategory
from veggie_muse.services.ledger_repository import ledger_repository
from veggie_muse.services.recipe_finder import RecipeFinder, recipe_finder
from veggie_muse.services.session_manager import ClientSession, session_manager

# Load environment variables (override=True ensures .env wins over any shell env vars)
load_dotenv(override=True)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API Key is missing."
NOT_VERIFIED_MESSAGE = "Please verify you are human before generating."
OVERLOADED_MESSAGE = "The AI model seems to be overloaded. Please try again in a few minutes."
INCORRECT_ANSWER_MESSAGE = "Incorrect. Please try again."
CHAT_SAFETY_REPLY = (
    "I'm sorry, but I can't respond to that due to safety guidelines. "
    "Let's talk about something else related to vegetarian cooking!"
)
CANCELLED_MESSAGE = "The request was interrupted before it finished. Please try again."
CHAT_FAILED_MESSAGE = "Sorry, I couldn't get a response. Your API key might be invalid or the service is down."

UNSAFE_MESSAGES = {
    GeneratorKind.RECIPE: (
        "I'm sorry, but I can't create a recipe with those ingredients. Let's stick to safe and edible items!"
    ),
    GeneratorKind.WEEKLY_PLAN: (
        "I'm sorry, but I can't create a plan with those preferences due to safety concerns. "
        "Please adjust your request."
    ),
    GeneratorKind.PASSPORT: (
        "I'm sorry, but I can't create a culinary passport with those preferences due to safety concerns. "
        "Please adjust your request."
    ),
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle context manager"""
    logger.info("Application starting up")
    yield
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(
    title="Veggie Muse",
    description="AI-powered vegetarian recipe, meal-plan and travel food assistant",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Dependencies
# ============================================================================


def get_client_id(x_client_id: Optional[str] = Header(None)) -> str:
    if not x_client_id or not x_client_id.strip():
        raise HTTPException(status_code=400, detail="X-Client-Id header is required")
    return x_client_id.strip()


def get_client_session(client_id: str = Depends(get_client_id)) -> ClientSession:
    """Every request counts as activity; expiry is evaluated before the clock is reset."""
    session = session_manager.get_or_create(client_id)
    session.check_verification()
    session.touch()
    return session


def require_verified(session: ClientSession = Depends(get_client_session)) -> ClientSession:
    if not session.verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_VERIFIED_MESSAGE)
    return session


def get_ai_service(x_api_key: Optional[str] = Header(None)) -> GeminiService:
    try:
        return GeminiService(x_api_key)
    except MissingApiKeyError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=MISSING_KEY_MESSAGE)


def get_recipe_finder() -> RecipeFinder:
    return recipe_finder


async def get_client_context(
    session: ClientSession = Depends(get_client_session),
    db: AsyncSession = Depends(get_db),
) -> ClientContext:
    ledger = await ledger_repository.load(session.client_id, db)
    return ClientContext(session=session, ledger=ledger, db=db)


# ============================================================================
# Shared helpers
# ============================================================================


async def _run_generator(
    ctx: ClientContext,
    kind: GeneratorKind,
    run: Callable[[], Awaitable[GeneratorResult]],
) -> GeneratorResult:
    """Drive one generator slot through submitting → success | failed."""
    slot = ctx.session.slot(kind)
    try:
        slot.begin()
    except GeneratorBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    try:
        result = await run()
        await ctx.save_history()
    except SafetyBlockedError as e:
        logger.warning("%s blocked for client %s: %s", kind.value, ctx.client_id, e)
        slot.fail(UNSAFE_MESSAGES[kind])
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=UNSAFE_MESSAGES[kind])
    except GenerationFailedError as e:
        logger.error("%s failed for client %s: %s", kind.value, ctx.client_id, e)
        slot.fail(OVERLOADED_MESSAGE)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=OVERLOADED_MESSAGE)
    except Exception as e:
        logger.exception("%s crashed for client %s", kind.value, ctx.client_id)
        slot.fail(str(e))
        raise
    except BaseException:
        # Cancellation (client gone, shutdown) must not leave the slot submitting.
        logger.warning("%s cancelled for client %s", kind.value, ctx.client_id)
        slot.fail(CANCELLED_MESSAGE)
        raise

    slot.succeed(result)
    return result


def _current_result(session: ClientSession, kind: GeneratorKind):
    slot = session.slot(kind)
    if slot.result is None:
        raise HTTPException(status_code=404, detail=f"No current {kind.value.replace('_', ' ')}")
    return slot.result


def _download(shopping_list: ShoppingList) -> Response:
    return Response(
        content=shopping_list.to_text(),
        media_type="text/plain",
        headers={"Content-Disposition": shopping_list.content_disposition},
    )


def _slot_payload(session: ClientSession, kind: GeneratorKind) -> dict:
    slot = session.slot(kind)
    return {
        "stage": slot.stage,
        "error": slot.error,
        "result": slot.result.model_dump() if slot.result is not None else None,
    }


# ============================================================================
# Health / options
# ============================================================================


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/api/options")
async def get_options():
    """Static form vocabulary: moods by slider position, time budgets, checklist."""
    return {
        "moods": [mood.value for mood in MOODS_BY_INDEX],
        "time_budgets": [{"value": budget.value, "label": budget.label} for budget in TimeBudget],
        "common_ingredients": COMMON_INGREDIENTS,
    }


# ============================================================================
# Human verification
# ============================================================================


class VerificationAnswer(BaseModel):
    answer: str


@app.get("/api/verification")
async def get_verification(session: ClientSession = Depends(get_client_session)):
    return {"verified": session.verified}


@app.post("/api/verification/challenge")
async def new_challenge(session: ClientSession = Depends(get_client_session)):
    session.pending_challenge = generate_challenge()
    return {"question": session.pending_challenge.question}


@app.post("/api/verification/answer")
async def answer_challenge(body: VerificationAnswer, session: ClientSession = Depends(get_client_session)):
    if session.pending_challenge is None:
        raise HTTPException(status_code=400, detail="No verification challenge is pending")

    if check_answer(session.pending_challenge, body.answer):
        session.set_verified()
        logger.info("Client %s verified", session.client_id)
        return {"verified": True}

    session.pending_challenge = generate_challenge()
    return {
        "verified": False,
        "error": INCORRECT_ANSWER_MESSAGE,
        "question": session.pending_challenge.question,
    }


# ============================================================================
# Single recipe
# ============================================================================


@app.post("/api/recipes", response_model=GeneratedRecipe)
async def create_recipe(
    prefs: RecipePreferences,
    _: ClientSession = Depends(require_verified),
    ai_service: GeminiService = Depends(get_ai_service),
    ctx: ClientContext = Depends(get_client_context),
):
    return await _run_generator(ctx, GeneratorKind.RECIPE, lambda: generate_recipe(prefs, ctx.ledger, ai_service))


@app.get("/api/recipes/current")
async def get_current_recipe(session: ClientSession = Depends(get_client_session)):
    return _slot_payload(session, GeneratorKind.RECIPE)


@app.delete("/api/recipes/current", status_code=status.HTTP_204_NO_CONTENT)
async def reset_recipe(session: ClientSession = Depends(get_client_session)):
    session.slot(GeneratorKind.RECIPE).reset()


@app.get("/api/recipes/current/shopping-list.txt")
async def download_recipe_shopping_list(session: ClientSession = Depends(get_client_session)):
    recipe: GeneratedRecipe = _current_result(session, GeneratorKind.RECIPE)
    return _download(ShoppingList.from_items(recipe.missing_ingredients, RECIPE_SHOPPING_LIST_FILENAME))


# ============================================================================
# Weekly plan
# ============================================================================


@app.post("/api/weekly-plans", response_model=WeeklyPlan)
async def create_weekly_plan(
    prefs: WeeklyPlanPreferences,
    _: ClientSession = Depends(require_verified),
    ai_service: GeminiService = Depends(get_ai_service),
    ctx: ClientContext = Depends(get_client_context),
    finder: RecipeFinder = Depends(get_recipe_finder),
):
    return await _run_generator(
        ctx, GeneratorKind.WEEKLY_PLAN, lambda: generate_weekly_plan(prefs, ctx.ledger, ai_service, finder)
    )


@app.get("/api/weekly-plans/current")
async def get_current_weekly_plan(session: ClientSession = Depends(get_client_session)):
    return _slot_payload(session, GeneratorKind.WEEKLY_PLAN)


@app.delete("/api/weekly-plans/current", status_code=status.HTTP_204_NO_CONTENT)
async def reset_weekly_plan(session: ClientSession = Depends(get_client_session)):
    session.slot(GeneratorKind.WEEKLY_PLAN).reset()


@app.get("/api/weekly-plans/current/shopping-list.txt")
async def download_weekly_shopping_list(session: ClientSession = Depends(get_client_session)):
    plan: WeeklyPlan = _current_result(session, GeneratorKind.WEEKLY_PLAN)
    return _download(ShoppingList.from_items(plan.consolidated_shopping_list, WEEKLY_SHOPPING_LIST_FILENAME))


# ============================================================================
# Culinary passport
# ============================================================================


@app.post("/api/passports", response_model=CulinaryPassport)
async def create_passport(
    prefs: PassportPreferences,
    _: ClientSession = Depends(require_verified),
    ai_service: GeminiService = Depends(get_ai_service),
    ctx: ClientContext = Depends(get_client_context),
):
    return await _run_generator(ctx, GeneratorKind.PASSPORT, lambda: generate_passport(prefs, ctx.ledger, ai_service))


@app.get("/api/passports/current")
async def get_current_passport(session: ClientSession = Depends(get_client_session)):
    return _slot_payload(session, GeneratorKind.PASSPORT)


@app.delete("/api/passports/current", status_code=status.HTTP_204_NO_CONTENT)
async def reset_passport(session: ClientSession = Depends(get_client_session)):
    session.slot(GeneratorKind.PASSPORT).reset()


# ============================================================================
# Chef chat
# ============================================================================


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    _: ClientSession = Depends(get_client_session),
    ai_service: GeminiService = Depends(get_ai_service),
) -> ChatResponse:
    try:
        reply = await ai_service.chat(request.message, request.history)
    except SafetyBlockedError:
        return ChatResponse(message=CHAT_SAFETY_REPLY, blocked=True)
    except GenerationFailedError as e:
        logger.error("Chat failed: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=CHAT_FAILED_MESSAGE)
    return ChatResponse(message=reply)


# ============================================================================
# History ledger
# ============================================================================


@app.get("/api/history")
async def get_history(ctx: ClientContext = Depends(get_client_context)):
    return ctx.ledger.to_dict()


@app.delete("/api/history")
async def clear_history(
    category: Optional[LedgerCategory] = None,
    ctx: ClientContext = Depends(get_client_context),
):
    ctx.ledger.clear(category)
    await ctx.save_history()
    logger.info("Cleared %s history for client %s", category.value if category else "all", ctx.client_id)
    return ctx.ledger.to_dict()


# ============================================================================
# Ad-hoc shopping list download
# ============================================================================


class ShoppingListRequest(BaseModel):
    items: list[str] = Field(default_factory=list)
    filename: str = Field(RECIPE_SHOPPING_LIST_FILENAME, pattern=r"^[\w.-]+\.txt$")


@app.post("/api/shopping-list")
async def download_shopping_list(body: ShoppingListRequest):
    return _download(ShoppingList.from_items(body.items, body.filename))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
