"""
Single-recipe pipeline: candidates → selection → photo → ledger.

Rules:
- Stage 1 (candidates) is attempted once. SafetyBlockedError and
  GenerationFailedError propagate to the HTTP layer.
- Stage 2 (selection) never fails the request: any error falls back to
  candidate 0 for both the recipe and the quote.
- The ledger is only written after a recipe has been composed.
"""

import logging
from typing import TYPE_CHECKING

from veggie_muse.models.preferences import RecipePreferences
from veggie_muse.models.recipe import GeneratedRecipe, QuoteOption, RecipeOption, RecipeOptions
from veggie_muse.pipeline.media import render_recipe_photo
from veggie_muse.services.history_ledger import HistoryLedger, LedgerCategory
from veggie_muse.services.selection import Selection, first_candidate, guard_selection

if TYPE_CHECKING:
    from veggie_muse.services.ai_service import GeminiService

logger = logging.getLogger(__name__)


def _recipe_key(option: RecipeOption) -> str:
    return option.recipe_name


def _quote_key(option: QuoteOption) -> str:
    return option.quote


async def generate_candidates(prefs: RecipePreferences, ai_service: "GeminiService") -> RecipeOptions:
    logger.info("[RECIPE] Stage 1: generating candidates")
    return await ai_service.generate_recipe_options(prefs)


async def choose_candidates(
    options: RecipeOptions,
    ledger: HistoryLedger,
    ai_service: "GeminiService",
) -> tuple[Selection[RecipeOption], Selection[QuoteOption]]:
    seen_titles = ledger.list(LedgerCategory.RECIPE_TITLES)
    seen_quotes = ledger.list(LedgerCategory.QUOTES)
    logger.info("[RECIPE] Stage 2: selecting against %d titles, %d quotes", len(seen_titles), len(seen_quotes))

    try:
        proposal = await ai_service.select_unseen_options(options, seen_titles, seen_quotes)
    except Exception as exc:
        logger.error("[RECIPE] Selection failed, falling back to the first candidates: %s", exc)
        return (
            first_candidate(options.recipe_options, error=str(exc)),
            first_candidate(options.quote_options, error=str(exc)),
        )

    recipe = guard_selection(options.recipe_options, proposal.recipe_index, seen_titles, key=_recipe_key)
    quote = guard_selection(options.quote_options, proposal.quote_index, seen_quotes, key=_quote_key)
    if recipe.index != proposal.recipe_index or quote.index != proposal.quote_index:
        logger.warning(
            "[RECIPE] Model proposed recipe=%d quote=%d, guard chose recipe=%d quote=%d",
            proposal.recipe_index,
            proposal.quote_index,
            recipe.index,
            quote.index,
        )
    return recipe, quote


async def generate_recipe(
    prefs: RecipePreferences,
    ledger: HistoryLedger,
    ai_service: "GeminiService",
) -> GeneratedRecipe:
    options = await generate_candidates(prefs, ai_service)
    recipe, quote = await choose_candidates(options, ledger, ai_service)

    logger.info("[RECIPE] Stage 3: photo for '%s'", recipe.item.recipe_name)
    photo = await render_recipe_photo(ai_service, recipe.item.recipe_name)

    result = GeneratedRecipe.compose(recipe.item, quote.item, photo)
    ledger.record(LedgerCategory.QUOTES, result.quote)
    ledger.record(LedgerCategory.RECIPE_TITLES, result.recipe_name)
    logger.info("[RECIPE] Done: '%s' (fallback=%s)", result.recipe_name, recipe.fallback)
    return result
