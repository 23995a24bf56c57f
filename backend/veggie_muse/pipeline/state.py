"""
GeneratorSlot: per-client, per-generator submission state.

Design notes:
- One slot per generator (recipe, weekly plan, passport) lives on the
  client's in-memory session.
- Lifecycle: idle → submitting → success | failed → (next submit or reset).
  ``failed`` never locks the form; a new submission may start right away.
- A second submission while one is in flight is refused. This plays the role
  of the browser's disabled submit button.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from veggie_muse.errors import GeneratorBusyError
from veggie_muse.models.passport import CulinaryPassport
from veggie_muse.models.recipe import GeneratedRecipe
from veggie_muse.models.weekly_plan import WeeklyPlan


class GeneratorStage(str):
    """String constants for a generator's submission stage."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


class GeneratorKind(str, Enum):
    RECIPE = "recipe"
    WEEKLY_PLAN = "weekly_plan"
    PASSPORT = "passport"


GeneratorResult = Union[GeneratedRecipe, WeeklyPlan, CulinaryPassport]


class GeneratorSlot(BaseModel):
    kind: GeneratorKind
    stage: str = GeneratorStage.IDLE
    error: Optional[str] = None
    result: Optional[GeneratorResult] = None

    def begin(self) -> None:
        if self.stage == GeneratorStage.SUBMITTING:
            raise GeneratorBusyError(f"A {self.kind.value} generation is already running")
        self.stage = GeneratorStage.SUBMITTING
        self.error = None
        self.result = None

    def succeed(self, result: GeneratorResult) -> None:
        self.stage = GeneratorStage.SUCCESS
        self.result = result
        self.error = None

    def fail(self, message: str) -> None:
        self.stage = GeneratorStage.FAILED
        self.error = message
        self.result = None

    def reset(self) -> None:
        """'Generate another': discard the artifact and return to the form."""
        self.stage = GeneratorStage.IDLE
        self.error = None
        self.result = None
