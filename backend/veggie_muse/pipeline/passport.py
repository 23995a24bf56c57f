"""
Culinary passport pipeline.

1. Text (recommendations + Chef Card), up to MAX_TEXT_ATTEMPTS tries. A
   safety rejection propagates at once; exhausting the attempts returns the
   fallback passport instead of raising.
2. Photos for every recommendation and the Chef Card audio, all at once.
3. Record every recommended dish under its destination.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from veggie_muse.errors import GenerationFailedError
from veggie_muse.models.passport import CulinaryPassport, PassportText, RecommendationWithPhoto
from veggie_muse.models.preferences import PassportPreferences
from veggie_muse.pipeline.media import render_chef_card_audio, render_dish_photo
from veggie_muse.services.history_ledger import HistoryLedger, LedgerCategory, passport_dish_key

if TYPE_CHECKING:
    from veggie_muse.services.ai_service import GeminiService

logger = logging.getLogger(__name__)

MAX_TEXT_ATTEMPTS = 3

EXHAUSTED_NOTICE = "We've shown you all available recommendations for this destination. Try a different place!"


async def _generate_text(prefs: PassportPreferences, ledger: HistoryLedger, ai_service: "GeminiService"):
    seen = ledger.for_destination(prefs.destination)
    for attempt in range(1, MAX_TEXT_ATTEMPTS + 1):
        try:
            return await ai_service.generate_passport_text(prefs, seen)
        except GenerationFailedError as exc:
            logger.error("[PASSPORT] Text attempt %d/%d failed: %s", attempt, MAX_TEXT_ATTEMPTS, exc)
    return None


async def _add_media(prefs: PassportPreferences, text: PassportText, ai_service: "GeminiService"):
    photos, audio = await asyncio.gather(
        asyncio.gather(
            *(render_dish_photo(ai_service, rec.dish_name_english, prefs.destination) for rec in text.recommendations)
        ),
        render_chef_card_audio(ai_service, text.chef_card_message),
    )
    recommendations = [
        RecommendationWithPhoto(**rec.model_dump(), photo_data_uri=photo)
        for rec, photo in zip(text.recommendations, photos)
    ]
    return recommendations, audio


async def generate_passport(
    prefs: PassportPreferences,
    ledger: HistoryLedger,
    ai_service: "GeminiService",
) -> CulinaryPassport:
    logger.info("[PASSPORT] Generating text for '%s'", prefs.destination)
    text = await _generate_text(prefs, ledger, ai_service)
    if text is None:
        logger.error("[PASSPORT] Text failed after %d attempts; returning fallback", MAX_TEXT_ATTEMPTS)
        return CulinaryPassport.fallback(prefs.destination)

    logger.info("[PASSPORT] Rendering media for %d recommendations", len(text.recommendations))
    recommendations, audio = await _add_media(prefs, text, ai_service)

    passport = CulinaryPassport(
        recommendations=recommendations,
        chef_card_message=text.chef_card_message,
        chef_card_audio_uri=audio,
    )
    if not recommendations:
        passport.notice = EXHAUSTED_NOTICE

    ledger.record_many(
        LedgerCategory.PASSPORT_DISHES,
        [passport_dish_key(prefs.destination, rec.dish_name_english) for rec in recommendations],
    )
    logger.info("[PASSPORT] Done: %s", [rec.dish_name_english for rec in recommendations])
    return passport
