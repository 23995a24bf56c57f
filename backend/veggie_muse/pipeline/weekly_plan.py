"""
Weekly plan pipeline: vector search → plan generation (with retries) → ledger.

Generic failures are retried up to MAX_PLAN_ATTEMPTS times. A safety
rejection is final and propagates on the first occurrence.
"""

import logging
from typing import TYPE_CHECKING

from veggie_muse.errors import GenerationFailedError
from veggie_muse.models.preferences import WeeklyPlanPreferences
from veggie_muse.models.shopping import dedupe_preserving_order
from veggie_muse.models.weekly_plan import WeeklyPlan
from veggie_muse.services.history_ledger import HistoryLedger, LedgerCategory

if TYPE_CHECKING:
    from veggie_muse.services.ai_service import GeminiService
    from veggie_muse.services.recipe_finder import RecipeFinder

logger = logging.getLogger(__name__)

MAX_PLAN_ATTEMPTS = 3


async def generate_weekly_plan(
    prefs: WeeklyPlanPreferences,
    ledger: HistoryLedger,
    ai_service: "GeminiService",
    finder: "RecipeFinder",
) -> WeeklyPlan:
    logger.info("[WEEKLY PLAN] Searching recipes for '%s'", prefs.cuisine_preference)
    found = await finder.find(ai_service, prefs.cuisine_preference, prefs.dietary_restrictions)
    seen_titles = ledger.list(LedgerCategory.WEEKLY_PLAN_TITLES)

    plan = None
    last_error = None
    for attempt in range(1, MAX_PLAN_ATTEMPTS + 1):
        try:
            plan = await ai_service.generate_weekly_plan(prefs, seen_titles, found)
            break
        except GenerationFailedError as exc:
            last_error = exc
            logger.error("[WEEKLY PLAN] Attempt %d/%d failed: %s", attempt, MAX_PLAN_ATTEMPTS, exc)

    if plan is None:
        raise GenerationFailedError(
            f"Failed to generate a weekly plan after {MAX_PLAN_ATTEMPTS} attempts"
        ) from last_error

    plan.consolidated_shopping_list = dedupe_preserving_order(plan.consolidated_shopping_list)
    ledger.record(LedgerCategory.WEEKLY_PLAN_TITLES, plan.plan_title)
    logger.info("[WEEKLY PLAN] Done: '%s' (%d shopping items)", plan.plan_title, len(plan.consolidated_shopping_list))
    return plan
