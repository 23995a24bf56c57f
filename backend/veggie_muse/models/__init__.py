from .chat import ChatMessage, ChatRequest, ChatResponse
from .passport import CulinaryPassport
from .preferences import Mood, PassportPreferences, RecipePreferences, WeeklyPlanPreferences
from .recipe import GeneratedRecipe
from .shopping import ShoppingList
from .weekly_plan import WeeklyPlan
