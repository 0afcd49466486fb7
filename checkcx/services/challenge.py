"""
Arithmetic challenges that prove an endpoint is running a real model.

A fixed canned reply cannot answer a freshly generated sum, so every check
sends a new one and looks for the answer in the streamed text.
"""
import random
import re
from typing import Optional

from checkcx.schemas.check import Challenge


_NUMBER_PATTERN = re.compile(r"-?\d+")


def generate_challenge(rng: Optional[random.Random] = None) -> Challenge:
    """Build an addition or subtraction question with operands in [1, 50].

    Subtraction always takes the smaller operand from the larger one, so the
    answer is never negative.
    """
    rng = rng or random
    a = rng.randint(1, 50)
    b = rng.randint(1, 50)

    if rng.random() < 0.5:
        return Challenge(prompt=f"{a} + {b} = ?", expected_answer=str(a + b))

    larger, smaller = max(a, b), min(a, b)
    return Challenge(prompt=f"{larger} - {smaller} = ?", expected_answer=str(larger - smaller))


def validate_response(response: str, expected_answer: str) -> bool:
    """Check whether any integer in ``response`` equals ``expected_answer``.

    Token based on purpose: conversational filler around the number is fine.
    An echo of the operands can match by accident; that is accepted.
    """
    if not response or not expected_answer:
        return False

    return expected_answer in _NUMBER_PATTERN.findall(response)
