"""
Eval harness for AI output quality.

Runs against the live Gemini API and requires GEMINI_API_KEY.
NOT part of the pytest test suite. Run it by hand after prompt changes.

Usage:
    cd backend
    python -m evals.run_evals
    python -m evals.run_evals --only recipe
    python -m evals.run_evals --only weekly_plan
    python -m evals.run_evals --only chat
"""

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

DATASETS_DIR = Path(__file__).parent / "datasets"
CASE_PASS_SCORE = 0.8
CATEGORY_PASS_RATE = 0.70


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class EvalResult:
    case_id: str
    passed: bool
    score: float  # 0.0-1.0
    details: str
    errors: list[str] = field(default_factory=list)


@dataclass
class CheckTally:
    """Counts boolean checks for one case and keeps the messages of failed ones."""

    total: int = 0
    ok: int = 0
    errors: list[str] = field(default_factory=list)

    def expect(self, condition: bool, error: str) -> None:
        self.total += 1
        if condition:
            self.ok += 1
        else:
            self.errors.append(error)

    def result(self, case_id: str) -> EvalResult:
        score = self.ok / self.total if self.total else 0.0
        return EvalResult(case_id, score >= CASE_PASS_SCORE, score, f"{self.ok}/{self.total} checks", self.errors)


@dataclass
class EvalSummary:
    category: str
    results: list[EvalResult]

    @property
    def passed(self) -> int:
        return sum(r.passed for r in self.results)

    @property
    def pass_rate(self) -> float:
        return self.passed / len(self.results) if self.results else 0.0

    @property
    def mean_score(self) -> float:
        return sum(r.score for r in self.results) / len(self.results) if self.results else 0.0


def _load_cases(name: str) -> list[dict]:
    return json.loads((DATASETS_DIR / name).read_text())


def _mentions(haystack: list[str], needle: str) -> bool:
    needle = needle.lower()
    return any(needle in item.lower() for item in haystack)


# ---------------------------------------------------------------------------
# Recipe eval: repeated generation against one ledger must not repeat
# ---------------------------------------------------------------------------


async def run_recipe_evals(ai_service) -> EvalSummary:
    from veggie_muse.models.preferences import RecipePreferences
    from veggie_muse.pipeline.recipe import generate_recipe
    from veggie_muse.services.history_ledger import HistoryLedger
    from veggie_muse.services.selection import normalize_key

    results = []
    for case in _load_cases("recipe_cases.json"):
        try:
            prefs = RecipePreferences.model_validate(case["preferences"])
            ledger = HistoryLedger()
            tally = CheckTally()
            titles = []

            for _ in range(case.get("runs", 3)):
                recipe = await generate_recipe(prefs, ledger, ai_service)
                titles.append(recipe.recipe_name)

                stray = [m for m in recipe.missing_ingredients if m not in recipe.ingredient_list]
                tally.expect(not stray, f"{recipe.recipe_name}: missing items not in ingredient list: {stray}")
                for disliked in prefs.disliked:
                    tally.expect(
                        not _mentions(recipe.ingredient_list, disliked),
                        f"{recipe.recipe_name}: uses disliked '{disliked}'",
                    )

            tally.expect(len({normalize_key(t) for t in titles}) == len(titles), f"Repeated titles across runs: {titles}")
            results.append(tally.result(case["id"]))
        except Exception as e:
            results.append(EvalResult(case["id"], False, 0.0, "crashed", [repr(e)]))

    return EvalSummary("recipe", results)


# ---------------------------------------------------------------------------
# Weekly plan eval: shape and shopping-list coverage
# ---------------------------------------------------------------------------


async def run_weekly_plan_evals(ai_service) -> EvalSummary:
    from veggie_muse.models.preferences import WeeklyPlanPreferences
    from veggie_muse.pipeline.weekly_plan import generate_weekly_plan
    from veggie_muse.services.history_ledger import HistoryLedger, LedgerCategory
    from veggie_muse.services.recipe_finder import RecipeFinder

    finder = RecipeFinder()
    results = []
    for case in _load_cases("weekly_plan_cases.json"):
        try:
            prefs = WeeklyPlanPreferences.model_validate(case["preferences"])
            seen_titles = case.get("seen_titles", [])
            ledger = HistoryLedger({LedgerCategory.WEEKLY_PLAN_TITLES: seen_titles})
            plan = await generate_weekly_plan(prefs, ledger, ai_service, finder)

            tally = CheckTally()
            tally.expect(plan.plan_title not in seen_titles, f"Reused a seen title: {plan.plan_title}")
            for day in plan.daily_recipes:
                for ingredient in day.ingredients:
                    tally.expect(
                        _mentions(plan.consolidated_shopping_list, ingredient.split(",")[0].strip()),
                        f"'{ingredient}' ({day.recipe_name}) not on shopping list",
                    )
            for restricted in prefs.dietary_restrictions:
                tally.expect(
                    not _mentions(plan.consolidated_shopping_list, restricted),
                    f"Shopping list contains restricted '{restricted}'",
                )
            results.append(tally.result(case["id"]))
        except Exception as e:
            results.append(EvalResult(case["id"], False, 0.0, "crashed", [repr(e)]))

    return EvalSummary("weekly_plan", results)


# ---------------------------------------------------------------------------
# Chat eval: LLM-as-judge
# ---------------------------------------------------------------------------

JUDGE_PROMPT = """You are grading a vegetarian cooking assistant.

Scale:
5 = accurate, vegetarian, concise, answers the question asked
4 = helpful with small gaps
3 = on-topic but generic
2 = partly relevant, or suggests meat or fish
1 = off-topic, or answers a non-cooking question it should have declined

Case-specific expectations:
{rubric}

Question: {user_message}

Reply being graded:
{response}

Give one sentence of reasoning, then a final line of the form "SCORE: <1-5>".
"""

_SCORE_LINE = re.compile(r"SCORE:\s*([1-5])")
NEUTRAL_SCORE = 3


async def judge_reply(ai_service, user_message: str, response: str, rubric: str) -> int:
    """Ask the fast model to grade a chat reply on the 1-5 scale above."""
    from google.genai import types

    prompt = JUDGE_PROMPT.format(rubric=rubric, user_message=user_message, response=response)
    verdict = await ai_service.client.aio.models.generate_content(
        model=ai_service.fast_model_name,
        contents=prompt,
        config=types.GenerateContentConfig(temperature=0.0),
    )
    matches = _SCORE_LINE.findall(verdict.text or "")
    if not matches:
        logger.warning("Judge gave no parseable score; using %d", NEUTRAL_SCORE)
        return NEUTRAL_SCORE
    return int(matches[-1])


async def run_chat_evals(ai_service) -> EvalSummary:
    from veggie_muse.models.chat import ChatMessage

    results = []
    for case in _load_cases("chat_cases.json"):
        try:
            history = [ChatMessage.model_validate(m) for m in case.get("history", [])]
            reply = await ai_service.chat(case["user_message"], history)
            score = await judge_reply(ai_service, case["user_message"], reply, case["rubric"])
            results.append(EvalResult(case["id"], score >= NEUTRAL_SCORE, score / 5.0, f"judge {score}/5"))
        except Exception as e:
            results.append(EvalResult(case["id"], False, 0.0, "crashed", [repr(e)]))

    return EvalSummary("chat", results)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def report(summary: EvalSummary) -> None:
    header = f"{summary.category} ({summary.passed}/{len(summary.results)} passed, mean {summary.mean_score:.2f})"
    print(f"\n{header}\n{'-' * len(header)}")
    for r in summary.results:
        print(f"  {'PASS' if r.passed else 'FAIL'}  {r.case_id}: {r.details}")
        for err in r.errors:
            print(f"        - {err}")


RUNNERS = {
    "recipe": run_recipe_evals,
    "weekly_plan": run_weekly_plan_evals,
    "chat": run_chat_evals,
}


async def main(only: str | None = None) -> int:
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        print("GEMINI_API_KEY is not set; evals call the live Gemini API.", file=sys.stderr)
        return 1

    from veggie_muse.services.ai_service import GeminiService

    ai_service = GeminiService(api_key)
    selected = [name for name in RUNNERS if only in (None, name)]
    summaries = [await RUNNERS[name](ai_service) for name in selected]
    for summary in summaries:
        report(summary)

    below = [s.category for s in summaries if s.pass_rate < CATEGORY_PASS_RATE]
    if below:
        print(f"\nBelow {CATEGORY_PASS_RATE:.0%} pass rate: {', '.join(below)}")
        return 1
    print("\nAll categories passed.")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Live quality evals for the Gemini-backed generators")
    parser.add_argument("--only", choices=sorted(RUNNERS), help="Run a single category")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(only=args.only)))
