from typing import List, Optional

from pydantic import BaseModel, Field

MAX_RECOMMENDATIONS = 3


class DishRecommendation(BaseModel):
    dish_name_english: str = Field(description="The name of the recommended dish in English.")
    dish_name_local: str = Field(description="The name of the recommended dish in the local language.")
    description: str = Field(description="A brief, appetizing description of the dish.")


class PassportText(BaseModel):
    """Text-only half of the passport, produced before any media calls."""

    recommendations: List[DishRecommendation] = Field(max_length=MAX_RECOMMENDATIONS)
    chef_card_message: str = Field(
        description="A polite message to a chef or waiter in the local language, clearly stating dietary needs."
    )


class RecommendationWithPhoto(DishRecommendation):
    photo_data_uri: str = ""


class CulinaryPassport(BaseModel):
    recommendations: List[RecommendationWithPhoto] = Field(default_factory=list)
    chef_card_message: str
    chef_card_audio_uri: str = ""
    is_fallback: bool = False
    notice: Optional[str] = None

    @classmethod
    def fallback(cls, destination: str) -> "CulinaryPassport":
        """Returned when the text stage fails on every attempt."""
        return cls(
            recommendations=[],
            chef_card_message=(
                f"We're sorry, we couldn't generate a culinary passport for {destination} at this "
                "moment due to high demand. Please try again in a few minutes."
            ),
            chef_card_audio_uri="",
            is_fallback=True,
        )
