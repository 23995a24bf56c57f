from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class Mood(str, Enum):
    COMFORTING = "Comforting"
    COZY = "Cozy"
    HAPPY = "Happy"
    ADVENTUROUS = "Adventurous"
    ENERGIZED = "Energized"
    ROMANTIC = "Romantic"
    CELEBRATORY = "Celebratory"
    HEALTHY = "Healthy"


# Slider position → mood. The browser sends either the index or the label.
MOODS_BY_INDEX: List[Mood] = list(Mood)


class TimeBudget(str, Enum):
    UNDER_15 = "15"
    UP_TO_30 = "30"
    UP_TO_60 = "60"
    OVER_60 = "120"

    @property
    def label(self) -> str:
        return TIME_BUDGET_LABELS[self]


TIME_BUDGET_LABELS = {
    TimeBudget.UNDER_15: "Under 15 minutes",
    TimeBudget.UP_TO_30: "15-30 minutes",
    TimeBudget.UP_TO_60: "30-60 minutes",
    TimeBudget.OVER_60: "Over 60 minutes",
}

COMMON_INGREDIENTS = [
    "Almonds", "Avocado", "Bell Peppers", "Black Beans", "Black Pepper", "Broccoli", "Butter",
    "Carrots", "Cauliflower", "Celery", "Cheese", "Chia Seeds", "Chickpeas", "Cilantro",
    "Coconut Milk", "Coconut Oil", "Corn", "Cumin", "Cucumber", "Eggs", "Eggplant", "Flour",
    "Garlic", "Ginger", "Honey", "Kale", "Lemon", "Lentils", "Lime", "Maple Syrup", "Milk",
    "Mushrooms", "Oats", "Olive Oil", "Onion", "Paprika", "Pasta", "Peas", "Potatoes", "Quinoa",
    "Rice", "Salt", "Spinach", "Sweet Potato", "Tofu", "Tomatoes", "Turmeric", "Walnuts", "Zucchini",
]

INGREDIENT_SIGNAL_MESSAGE = "Please provide at least one ingredient via photo, checklist, or text input."


def split_comma_list(text: Optional[str]) -> List[str]:
    """'a, b,,c ' → ['a', 'b', 'c']"""
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


class RecipePreferences(BaseModel):
    """Single-recipe form. Vegetarian is implied for every recipe."""

    mood: Mood = Field(default=Mood.COZY, description="Label or slider index 0-7")
    duration: TimeBudget = TimeBudget.UP_TO_30
    disliked_ingredients: Optional[str] = Field(None, description="Comma-separated")
    additional_ingredients: Optional[str] = Field(None, description="Comma-separated, typed in")
    photo_data_uri: Optional[str] = Field(None, description="data:<mime>;base64,<payload>")

    # Declared last: its validator needs the other ingredient sources in info.data.
    available_ingredients: List[str] = Field(
        default_factory=list,
        validate_default=True,
        description="Checked items from COMMON_INGREDIENTS",
    )

    @field_validator("mood", mode="before")
    @classmethod
    def _mood_from_index(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            if not 0 <= value < len(MOODS_BY_INDEX):
                raise ValueError(f"mood index must be between 0 and {len(MOODS_BY_INDEX) - 1}")
            return MOODS_BY_INDEX[value]
        return value

    @field_validator("photo_data_uri")
    @classmethod
    def _check_photo(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if not value.startswith("data:") or ";base64," not in value:
            raise ValueError("photo must be a base64 data URI")
        return value

    @field_validator("available_ingredients")
    @classmethod
    def _check_ingredient_signal(cls, value: List[str], info: ValidationInfo) -> List[str]:
        unknown = [item for item in value if item not in COMMON_INGREDIENTS]
        if unknown:
            raise ValueError(f"Unknown checklist ingredients: {', '.join(unknown)}")
        checked = list(dict.fromkeys(value))

        typed = split_comma_list(info.data.get("additional_ingredients"))
        photo = info.data.get("photo_data_uri")
        if not checked and not typed and not photo:
            raise ValueError(INGREDIENT_SIGNAL_MESSAGE)
        return checked

    @property
    def disliked(self) -> List[str]:
        return split_comma_list(self.disliked_ingredients)

    @property
    def additional(self) -> List[str]:
        return split_comma_list(self.additional_ingredients)


class WeeklyPlanPreferences(BaseModel):
    cuisine_preference: str = Field(
        "Indian",
        min_length=1,
        description="e.g. 'Indian', 'Italian and Mexican fusion', 'Quick lunches'",
    )
    dietary_restrictions: List[str] = Field(default_factory=list)

    @field_validator("cuisine_preference")
    @classmethod
    def _strip_cuisine(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please describe a cuisine or meal preference.")
        return value

    @field_validator("dietary_restrictions")
    @classmethod
    def _drop_blank_restrictions(cls, value: List[str]) -> List[str]:
        return [item.strip() for item in value if item.strip()]


class PassportPreferences(BaseModel):
    destination: str = Field(..., description="City or country being visited")
    dietary_needs: str = "Vegetarian"
    preferences: Optional[str] = None

    @field_validator("destination")
    @classmethod
    def _check_destination(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Please enter a destination.")
        return value

    @field_validator("dietary_needs")
    @classmethod
    def _check_dietary_needs(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 5:
            raise ValueError("Please describe your dietary needs.")
        return value
