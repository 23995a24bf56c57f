import random
from dataclasses import dataclass
from typing import Optional

_OPERATIONS = ("+", "-", "*")


@dataclass(frozen=True)
class CaptchaChallenge:
    question: str
    answer: str


def generate_challenge(rng: Optional[random.Random] = None) -> CaptchaChallenge:
    """Arithmetic on two numbers in 1-10. Subtraction never goes negative."""
    rng = rng or random.Random()
    a = rng.randint(1, 10)
    b = rng.randint(1, 10)
    op = rng.choice(_OPERATIONS)

    if op == "+":
        return CaptchaChallenge(f"What is {a} + {b}?", str(a + b))
    if op == "-":
        high, low = max(a, b), min(a, b)
        return CaptchaChallenge(f"What is {high} - {low}?", str(high - low))
    return CaptchaChallenge(f"What is {a} * {b}?", str(a * b))


def check_answer(challenge: CaptchaChallenge, given: str) -> bool:
    """Case-insensitive, whitespace-trimmed comparison."""
    return given.strip().lower() == challenge.answer.strip().lower()
