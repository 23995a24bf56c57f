from typing import List, Optional, Union

from pydantic import BaseModel, Field

PLAN_DAYS = 5


class DailyRecipe(BaseModel):
    recipe_name: str = Field(description="The name of the day's recipe.")
    ingredients: List[str] = Field(description="Ingredients needed for the final cooking, assuming prep is done.")
    instructions: str = Field(description="The quick cooking instructions for the day's meal.")


class WeeklyPlan(BaseModel):
    plan_title: str = Field(description="A creative title for the weekly meal plan.")
    plan_description: str = Field(description="A short, inspiring description of the weekly plan.")
    prep_plan: str = Field(
        description=(
            "A consolidated list of weekend component-prep tasks: base sauces, chopped vegetables, "
            "spice mixes, etc."
        )
    )
    daily_recipes: List[DailyRecipe] = Field(min_length=PLAN_DAYS, max_length=PLAN_DAYS)
    consolidated_shopping_list: List[str] = Field(
        description="Every unique ingredient needed for the prep plan and all 5 daily recipes."
    )


class FoundRecipe(BaseModel):
    """A row returned by the warehouse vector search."""

    title: str
    ingredients: Optional[Union[str, List[str]]] = None
    directions: Optional[Union[str, List[str]]] = None
