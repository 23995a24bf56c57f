from typing import List

from pydantic import BaseModel, Field

CANDIDATE_COUNT = 5


class RecipeOption(BaseModel):
    """One stage-1 recipe candidate."""

    recipe_name: str = Field(description="The name of the recipe.")
    description: str = Field(description="A short, one-sentence, mood-based description for the recipe.")
    instructions: str = Field(description="The cooking instructions for the recipe.")
    ingredient_list: List[str] = Field(description="All ingredients required for the recipe.")
    missing_ingredients: List[str] = Field(
        default_factory=list,
        description="Required ingredients the user does not have. Empty list when nothing is missing.",
    )
    nutritional_information: str = Field(description="Nutritional information for the recipe.")


class QuoteOption(BaseModel):
    quote: str = Field(description="An uplifting quote matching the mood, without surrounding quotation marks.")
    quote_author: str = Field(description="The author or source (e.g. film title).")


class RecipeOptions(BaseModel):
    """Stage-1 response: the candidate batch."""

    recipe_options: List[RecipeOption] = Field(min_length=CANDIDATE_COUNT, max_length=CANDIDATE_COUNT)
    quote_options: List[QuoteOption] = Field(min_length=CANDIDATE_COUNT, max_length=CANDIDATE_COUNT)


class RecipeSelection(BaseModel):
    """Stage-2 response: zero-based positions of the chosen candidates."""

    recipe_index: int
    quote_index: int


class GeneratedRecipe(BaseModel):
    """The artifact handed to the client. photo_data_uri is '' when no image could be made."""

    recipe_name: str
    description: str
    instructions: str
    ingredient_list: List[str]
    missing_ingredients: List[str] = Field(default_factory=list)
    nutritional_information: str
    quote: str
    quote_author: str
    photo_data_uri: str = ""

    @classmethod
    def compose(cls, recipe: RecipeOption, quote: QuoteOption, photo_data_uri: str = "") -> "GeneratedRecipe":
        return cls(
            recipe_name=recipe.recipe_name,
            description=recipe.description,
            instructions=recipe.instructions,
            ingredient_list=recipe.ingredient_list,
            missing_ingredients=list(dict.fromkeys(recipe.missing_ingredients)),
            nutritional_information=recipe.nutritional_information,
            quote=quote.quote,
            quote_author=quote.quote_author,
            photo_data_uri=photo_data_uri,
        )
