"""Token estimation for context budgets."""

from __future__ import annotations

import math


class TokenEstimator:
    """``ceil(len(text) / chars_per_token)``.

    Monotonic in text length and deterministic, which is all the budget
    check needs; it does not try to match any tokenizer exactly.
    """

    def __init__(self, chars_per_token: int = 4) -> None:
        if chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be positive, got {chars_per_token}")
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def fits(self, text: str, budget: int) -> bool:
        return self.estimate(text) <= budget
