"""
Media augmentation: photos and Chef Card audio.

Rules:
- Every call gets up to MAX_MEDIA_ATTEMPTS tries.
- Nothing here raises. An exhausted call yields "" and the artifact is
  shown without that media.
"""

import base64
import io
import logging
import wave
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from veggie_muse.services.ai_service import GeminiService

logger = logging.getLogger(__name__)

MAX_MEDIA_ATTEMPTS = 3

TTS_SAMPLE_RATE = 24000
TTS_CHANNELS = 1
TTS_SAMPLE_WIDTH = 2  # bytes, i.e. 16-bit


async def with_retries(label: str, call: Callable[[], Awaitable[str]], attempts: int = MAX_MEDIA_ATTEMPTS) -> str:
    for attempt in range(1, attempts + 1):
        try:
            result = await call()
        except Exception as exc:
            logger.error("%s attempt %d failed: %s", label, attempt, exc)
            continue
        if result:
            return result
        logger.warning("%s attempt %d returned nothing", label, attempt)
    logger.error("%s failed after %d attempts; continuing without it", label, attempts)
    return ""


def pcm_to_wav_data_uri(
    pcm: bytes,
    sample_rate: int = TTS_SAMPLE_RATE,
    channels: int = TTS_CHANNELS,
    sample_width: int = TTS_SAMPLE_WIDTH,
) -> str:
    """Wrap raw little-endian PCM in a WAV container and return it as a data URI."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(channels)
        writer.setsampwidth(sample_width)
        writer.setframerate(sample_rate)
        writer.writeframes(pcm)
    return "data:audio/wav;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


async def render_recipe_photo(ai_service: "GeminiService", recipe_name: str) -> str:
    return await with_retries(
        f"Recipe image for '{recipe_name}'",
        lambda: ai_service.generate_image(f"Generate a photorealistic image of {recipe_name}"),
    )


async def render_dish_photo(ai_service: "GeminiService", dish_name: str, destination: str) -> str:
    return await with_retries(
        f"Dish image for '{dish_name}'",
        lambda: ai_service.generate_image(
            f"A photorealistic, appetizing photo of {dish_name}, a popular dish from {destination}."
        ),
    )


async def render_chef_card_audio(ai_service: "GeminiService", message: str) -> str:
    if not message:
        return ""

    async def _speak() -> str:
        pcm = await ai_service.generate_speech(message)
        return pcm_to_wav_data_uri(pcm) if pcm else ""

    return await with_retries("Chef Card audio", _speak)
