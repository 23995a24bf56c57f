"""
Shared fixtures for all test modules.
"""

from unittest.mock import AsyncMock

import pytest

from veggie_muse.models.passport import DishRecommendation, PassportText
from veggie_muse.models.preferences import PassportPreferences, RecipePreferences, WeeklyPlanPreferences
from veggie_muse.models.recipe import QuoteOption, RecipeOption, RecipeOptions, RecipeSelection
from veggie_muse.models.weekly_plan import DailyRecipe, WeeklyPlan
from veggie_muse.services.ai_service import GeminiService
from veggie_muse.services.history_ledger import HistoryLedger
from veggie_muse.services.session_manager import ClientSession, session_manager


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_recipe_options(
    names=("Spinach Rice Pilaf", "Creamy Spinach Risotto", "Garlic Fried Rice", "Rice Stuffed Peppers", "Palak Rice"),
    quotes=("Quote A", "Quote B", "Quote C", "Quote D", "Quote E"),
) -> RecipeOptions:
    return RecipeOptions(
        recipe_options=[
            RecipeOption(
                recipe_name=name,
                description=f"A cozy bowl of {name.lower()}.",
                instructions="Cook the rice. Wilt the spinach. Combine.",
                ingredient_list=["Rice", "Spinach", "Onion", "Onion"],
                missing_ingredients=["Onion", "Onion"],
                nutritional_information="About 400 kcal per serving.",
            )
            for name in names
        ],
        quote_options=[QuoteOption(quote=q, quote_author=f"Author of {q}") for q in quotes],
    )


def make_weekly_plan(title: str = "Spice Route Prep Week", shopping=None) -> WeeklyPlan:
    return WeeklyPlan(
        plan_title=title,
        plan_description="Five fresh Indian dinners from one weekend of prep.",
        prep_plan="Make the masala base. Chop onions. Cook a pot of dal.",
        daily_recipes=[
            DailyRecipe(recipe_name=f"Day {i} Curry", ingredients=["masala base", "paneer"], instructions="Heat, stir.")
            for i in range(1, 6)
        ],
        consolidated_shopping_list=shopping if shopping is not None else ["onions", "paneer", "onions", "rice"],
    )


def make_passport_text(dishes=("Ribollita", "Pappa al Pomodoro", "Panzanella")) -> PassportText:
    return PassportText(
        recommendations=[
            DishRecommendation(dish_name_english=d, dish_name_local=d, description=f"Traditional {d}.")
            for d in dishes
        ],
        chef_card_message="Sono vegetariano. Niente carne o pesce, per favore.",
    )


# ---------------------------------------------------------------------------
# Preference fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def recipe_prefs() -> RecipePreferences:
    """Cozy, 30 minutes, rice and spinach from the checklist."""
    return RecipePreferences(mood=1, available_ingredients=["Rice", "Spinach"])


@pytest.fixture
def weekly_prefs() -> WeeklyPlanPreferences:
    return WeeklyPlanPreferences(cuisine_preference="Indian", dietary_restrictions=["mushrooms"])


@pytest.fixture
def passport_prefs() -> PassportPreferences:
    return PassportPreferences(destination="Florence", dietary_needs="Vegetarian, no nuts")


# ---------------------------------------------------------------------------
# Service / state fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger() -> HistoryLedger:
    return HistoryLedger()


@pytest.fixture
def ai_service() -> AsyncMock:
    """A GeminiService stand-in whose happy path returns canned output."""
    service = AsyncMock(spec=GeminiService)
    service.generate_recipe_options.return_value = make_recipe_options()
    service.select_unseen_options.return_value = RecipeSelection(recipe_index=0, quote_index=0)
    service.generate_weekly_plan.return_value = make_weekly_plan()
    service.generate_passport_text.return_value = make_passport_text()
    service.generate_image.return_value = "data:image/png;base64,aW1n"
    service.generate_speech.return_value = b"\x00\x01" * 240
    service.embed_text.return_value = [0.1, 0.2, 0.3]
    service.chat.return_value = "Press it, then roast it at 220C."
    return service


@pytest.fixture
def client_session() -> ClientSession:
    return ClientSession("test-client")


@pytest.fixture(autouse=True)
def _reset_sessions():
    """session_manager is a process-wide singleton; keep tests isolated."""
    session_manager._sessions.clear()
    yield
    session_manager._sessions.clear()
