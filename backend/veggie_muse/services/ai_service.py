import base64
import json
import logging
import os
from typing import Optional, Sequence

from google import genai
from google.genai import types
from pydantic import BaseModel, ValidationError

from veggie_muse.errors import GenerationFailedError, MissingApiKeyError, SafetyBlockedError
from veggie_muse.models.chat import ChatMessage
from veggie_muse.models.passport import PassportText
from veggie_muse.models.preferences import PassportPreferences, RecipePreferences, WeeklyPlanPreferences
from veggie_muse.models.recipe import CANDIDATE_COUNT, RecipeOptions, RecipeSelection
from veggie_muse.models.weekly_plan import FoundRecipe, WeeklyPlan

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema helper for Gemini API compatibility
# ---------------------------------------------------------------------------


def _strip_additional_properties(schema: dict) -> dict:
    """
    Recursively remove 'additionalProperties' from a JSON schema dict.
    The Gemini API doesn't support this OpenAPI 3.1 field that Pydantic v2 adds.
    """
    if isinstance(schema, dict):
        schema.pop("additionalProperties", None)
        for value in schema.values():
            if isinstance(value, dict):
                _strip_additional_properties(value)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, dict):
                        _strip_additional_properties(item)
    return schema


# ---------------------------------------------------------------------------
# Safety handling
# ---------------------------------------------------------------------------

SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_ONLY_HIGH"),
]

_SAFETY_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}

TTS_VOICE = "Algenib"

CHAT_SYSTEM_PROMPT = """You are a friendly and knowledgeable vegetarian cooking assistant named "Veggie.ai".
Your purpose is to help users with their cooking questions, provide tips, suggest ingredient substitutions, and explain cooking techniques.
You specialize in vegetarian cuisine.
Keep your answers concise, helpful, and encouraging.
Always maintain a warm and conversational tone.
If you don't know the answer to something, it's okay to say so.
Do not answer questions that are not related to cooking, food, or recipes."""


def _raise_if_blocked(response, call_name: str) -> None:
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None and getattr(feedback, "block_reason", None):
        logger.warning("%s blocked by prompt feedback: %s", call_name, feedback.block_reason)
        raise SafetyBlockedError(f"{call_name}: prompt blocked ({feedback.block_reason})")
    for candidate in getattr(response, "candidates", None) or []:
        reason = getattr(candidate, "finish_reason", None)
        reason_name = getattr(reason, "name", reason)
        if reason_name in _SAFETY_FINISH_REASONS:
            logger.warning("%s blocked with finish reason %s", call_name, reason_name)
            raise SafetyBlockedError(f"{call_name}: response blocked ({reason_name})")


def _translate_provider_error(exc: Exception, call_name: str) -> Exception:
    """Provider exceptions mentioning SAFETY become SafetyBlockedError, all else GenerationFailedError."""
    if "SAFETY" in str(exc).upper():
        return SafetyBlockedError(f"{call_name}: {exc}")
    return GenerationFailedError(f"{call_name}: {exc}")


def _bullets(items: Sequence[str], empty: str = "None") -> str:
    if not items:
        return empty
    return "\n".join(f"- {item}" for item in items)


def _part_from_data_uri(data_uri: str) -> types.Part:
    header, _, payload = data_uri.partition(",")
    mime_type = header[len("data:"):].split(";")[0] or "image/jpeg"
    return types.Part.from_bytes(data=base64.b64decode(payload), mime_type=mime_type)


def _first_inline_data(response):
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                return inline
    return None


class GeminiService:
    """Service for interacting with Google Gemini API using the caller's own key"""

    def __init__(self, api_key: Optional[str]):
        if not api_key:
            raise MissingApiKeyError("API Key is missing.")

        self.client = genai.Client(api_key=api_key)
        self.model_name = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.fast_model_name = os.getenv("GEMINI_FAST_MODEL", "gemini-2.0-flash")
        self.image_model_name = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.0-flash-preview-image-generation")
        self.tts_model_name = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
        self.embedding_model_name = os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004")

    # -----------------------------------------------------------------------
    # Private helpers
    # -----------------------------------------------------------------------

    async def _generate(self, call_name: str, *, model: str, contents, config: types.GenerateContentConfig):
        try:
            response = await self.client.aio.models.generate_content(model=model, contents=contents, config=config)
        except Exception as exc:
            logger.error("%s failed: %s", call_name, exc)
            raise _translate_provider_error(exc, call_name) from exc
        _raise_if_blocked(response, call_name)
        return response

    async def _async_json_call(
        self,
        call_name: str,
        contents,
        schema,
        *,
        temperature: float | None = None,
        model: str | None = None,
    ):
        """Call Gemini async in JSON mode and return the parsed response object."""
        schema_class = None
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            schema_class = schema
            schema = _strip_additional_properties(schema.model_json_schema())

        config_kwargs: dict = {
            "response_mime_type": "application/json",
            "response_schema": schema,
            "safety_settings": SAFETY_SETTINGS,
        }
        if temperature is not None:
            config_kwargs["temperature"] = temperature
        response = await self._generate(
            call_name,
            model=model or self.model_name,
            contents=contents,
            config=types.GenerateContentConfig(**config_kwargs),
        )

        if response.parsed is None:
            raise GenerationFailedError(f"{call_name}: model returned no structured output")
        if schema_class:
            try:
                return schema_class.model_validate(response.parsed)
            except ValidationError as exc:
                logger.error("%s returned output that does not match %s: %s", call_name, schema_class.__name__, exc)
                raise GenerationFailedError(f"{call_name}: malformed output") from exc
        return response.parsed

    # -----------------------------------------------------------------------
    # Recipe: two-stage generation
    # -----------------------------------------------------------------------

    async def generate_recipe_options(self, prefs: RecipePreferences) -> RecipeOptions:
        """Stage 1: five recipe candidates and five mood-matched quotes."""
        duration_line = f"Maximum cooking time: {prefs.duration.value} minutes ({prefs.duration.label})"
        prompt = f"""You are a world-class chef, a master of culinary creativity, and a source of inspiration.

                    Your task is to generate {CANDIDATE_COUNT} distinct recipe ideas and {CANDIDATE_COUNT} distinct inspirational quotes based on the user's request.

                    Tailor your language to the user's mood. If the mood is 'Cozy', use warm and comforting language.
                    If it's 'Adventurous', use exciting and bold language.

                    If a photo of ingredients is attached, use it as the primary source for available ingredients.
                    Also consider the checklist and any additional ingredients the user has typed.

                    Mood: {prefs.mood.value}
                    Vegetarian: true
                    {duration_line}
                    Disliked Ingredients: {", ".join(prefs.disliked) or "None"}
                    Available Ingredients (from checklist): {", ".join(prefs.available_ingredients) or "None"}
                    Additional Ingredients (typed in): {", ".join(prefs.additional) or "None"}

                    Rules:
                    - Each recipe option needs a unique name, a mood-based description, instructions,
                      a complete ingredient list and nutritional information.
                    - Determine missing_ingredients by comparing the full ingredient list with the user's
                      available ingredients. If nothing is missing, return an empty list. Never omit the field.
                    - Never use a disliked ingredient.
                    - Find {CANDIDATE_COUNT} famous quotes from films, books, or well-known leaders that match the mood.
                      They MUST be positive, uplifting, and motivational. Do NOT wrap the quote text in quotation marks.
                    """
        contents: list = [types.Part(text=prompt)]
        if prefs.photo_data_uri:
            contents.append(_part_from_data_uri(prefs.photo_data_uri))

        logger.info(
            "🤖 AI CALL: generate_recipe_options (mood=%s, duration=%s, photo=%s)",
            prefs.mood.value,
            prefs.duration.value,
            bool(prefs.photo_data_uri),
        )
        result: RecipeOptions = await self._async_json_call(
            "generate_recipe_options", contents, RecipeOptions, temperature=0.9
        )
        logger.info(
            "✅ AI RESPONSE: generate_recipe_options → %s",
            [option.recipe_name for option in result.recipe_options],
        )
        return result

    async def select_unseen_options(
        self,
        options: RecipeOptions,
        seen_titles: Sequence[str],
        seen_quotes: Sequence[str],
    ) -> RecipeSelection:
        """Stage 2: ask the model for the first recipe and quote the user has not seen."""
        recipes_json = json.dumps(
            [{"index": i, "recipe_name": o.recipe_name} for i, o in enumerate(options.recipe_options)], indent=2
        )
        quotes_json = json.dumps(
            [{"index": i, "quote": q.quote} for i, q in enumerate(options.quote_options)], indent=2
        )
        prompt = f"""You are a strict editor. Select one recipe and one quote that have not been seen before.

                    From the recipe options, select the FIRST one whose title is semantically different from
                    every title in Seen Recipe Titles. For example, "Spinach and Paneer Curry" is semantically
                    the same as "Paneer with Spinach in Curry".

                    From the quote options, select the FIRST one whose text is not in Seen Quotes.

                    If every recipe is similar to a seen title, select index 0. Do the same for quotes.
                    Return the zero-based indices.

                    Recipe Options:
                    {recipes_json}

                    Seen Recipe Titles:
                    {_bullets(seen_titles)}

                    Quote Options:
                    {quotes_json}

                    Seen Quotes:
                    {_bullets(seen_quotes)}
                    """
        logger.info(
            "🤖 AI CALL: select_unseen_options (seen_titles=%d, seen_quotes=%d)",
            len(seen_titles),
            len(seen_quotes),
        )
        result: RecipeSelection = await self._async_json_call(
            "select_unseen_options", prompt, RecipeSelection, temperature=0.2, model=self.fast_model_name
        )
        logger.info(
            "✅ AI RESPONSE: select_unseen_options → recipe=%d, quote=%d", result.recipe_index, result.quote_index
        )
        return result

    # -----------------------------------------------------------------------
    # Weekly plan
    # -----------------------------------------------------------------------

    async def generate_weekly_plan(
        self,
        prefs: WeeklyPlanPreferences,
        seen_titles: Sequence[str],
        found_recipes: Sequence[FoundRecipe],
    ) -> WeeklyPlan:
        if found_recipes:
            found_json = json.dumps([r.model_dump() for r in found_recipes], indent=2)
            found_block = f"""Recipes retrieved from the recipe database by vector search:
                    {found_json}

                    Examine their ingredients and directions and validate whether they truly match the
                    user's cuisine preference and dietary restrictions. Use the good matches as the primary
                    inspiration. If none fit, use your own culinary knowledge instead. Do not fail."""
        else:
            found_block = "No database recipes are available. Use your own extensive culinary knowledge."

        seen_block = ""
        if seen_titles:
            seen_block = (
                "CRITICAL INSTRUCTION: You have already shown the user these meal plan titles. "
                f"You MUST NOT use any of them again:\n{_bullets(seen_titles)}"
            )

        prompt = f"""You are an expert meal planner who specializes in weekly vegetarian meal plans built on
                    "component prep", so that every meal is cooked fresh daily. Create a 5-day plan.

                    {found_block}

                    The plan must include:
                    - A Weekend Prep Plan: a consolidated list of tasks done over the weekend
                      (base sauces, chopped vegetables, spice mixes, and so on).
                    - Five Daily Recipes, each cookable in 15-20 minutes once prep is done.
                    - A Consolidated Shopping List: every ingredient from the prep plan and all five daily
                      recipes, combined into a single de-duplicated list.

                    User's Requirements:
                    - Cuisine/Preference: {prefs.cuisine_preference}
                    - Dietary Restrictions/Dislikes: {", ".join(prefs.dietary_restrictions) or "None"}

                    {seen_block}
                    """
        logger.info(
            "🤖 AI CALL: generate_weekly_plan (cuisine=%s, found=%d, seen=%d)",
            prefs.cuisine_preference,
            len(found_recipes),
            len(seen_titles),
        )
        result: WeeklyPlan = await self._async_json_call("generate_weekly_plan", prompt, WeeklyPlan)
        logger.info("✅ AI RESPONSE: generate_weekly_plan → %s", result.plan_title)
        return result

    # -----------------------------------------------------------------------
    # Culinary passport
    # -----------------------------------------------------------------------

    async def generate_passport_text(self, prefs: PassportPreferences, seen_dishes: Sequence[str]) -> PassportText:
        seen_block = ""
        if seen_dishes:
            seen_block = (
                "You have already recommended the following dishes for this destination. "
                f"Do not recommend them again:\n{_bullets(seen_dishes)}"
            )
        prompt = f"""You are a culinary travel expert for vegetarians with dietary restrictions.
                    Create a "Culinary Passport" for a traveler going to {prefs.destination}.

                    Their critical dietary needs are: {prefs.dietary_needs}.
                    Their optional preferences are: {prefs.preferences or "None"}.

                    1. Recommend up to 3 local dishes that are naturally vegetarian or easily made vegetarian
                       and that will not contain their allergens. Give the dish name in English and in the
                       local language, and a short description.
                    2. Write a "Chef Card": a polite, concise message in the local language that clearly states
                       the traveler's dietary needs so they can show it to a waiter.

                    {seen_block}
                    """
        logger.info(
            "🤖 AI CALL: generate_passport_text (destination=%s, seen=%d)", prefs.destination, len(seen_dishes)
        )
        result: PassportText = await self._async_json_call("generate_passport_text", prompt, PassportText)
        logger.info(
            "✅ AI RESPONSE: generate_passport_text → %s",
            [r.dish_name_english for r in result.recommendations],
        )
        return result

    # -----------------------------------------------------------------------
    # Media
    # -----------------------------------------------------------------------

    async def generate_image(self, prompt: str) -> str:
        """Return the first generated image as a data URI."""
        logger.info("🤖 AI CALL: generate_image (%s)", prompt[:80])
        response = await self._generate(
            "generate_image",
            model=self.image_model_name,
            contents=prompt,
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )
        inline = _first_inline_data(response)
        if inline is None:
            raise GenerationFailedError("generate_image: response contained no image")
        encoded = base64.b64encode(inline.data).decode("ascii")
        logger.info("✅ AI RESPONSE: generate_image → %d bytes", len(inline.data))
        return f"data:{inline.mime_type or 'image/png'};base64,{encoded}"

    async def generate_speech(self, text: str) -> bytes:
        """Return raw 16-bit mono PCM at 24 kHz for ``text``."""
        logger.info("🤖 AI CALL: generate_speech (chars=%d)", len(text))
        response = await self._generate(
            "generate_speech",
            model=self.tts_model_name,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=TTS_VOICE)
                    )
                ),
            ),
        )
        inline = _first_inline_data(response)
        if inline is None:
            raise GenerationFailedError("generate_speech: response contained no audio")
        logger.info("✅ AI RESPONSE: generate_speech → %d bytes", len(inline.data))
        return inline.data

    async def embed_text(self, text: str) -> list[float]:
        logger.info("🤖 AI CALL: embed_text (%s)", text[:80])
        try:
            result = await self.client.aio.models.embed_content(model=self.embedding_model_name, contents=text)
        except Exception as exc:
            logger.error("embed_text failed: %s", exc)
            raise _translate_provider_error(exc, "embed_text") from exc
        if not result.embeddings or not result.embeddings[0].values:
            raise GenerationFailedError("embed_text: no embedding returned")
        values = list(result.embeddings[0].values)
        logger.info("✅ AI RESPONSE: embed_text → %d dims", len(values))
        return values

    # -----------------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------------

    async def chat(self, message: str, history: Sequence[ChatMessage]) -> str:
        contents = [
            types.Content(role=msg.role.value, parts=[types.Part(text=msg.content)]) for msg in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
        logger.info("🤖 AI CALL: chat (history_len=%d)", len(history))
        response = await self._generate(
            "chat",
            model=self.model_name,
            contents=contents,
            config=types.GenerateContentConfig(system_instruction=CHAT_SYSTEM_PROMPT, safety_settings=SAFETY_SETTINGS),
        )
        text = response.text
        if not text:
            raise GenerationFailedError("chat: empty response")
        logger.info("✅ AI RESPONSE: chat → %d chars", len(text))
        return text
