"""Payload templating for the workflow under test.

String values of the form ``$RANDOM(n)`` are replaced by ``n`` random
letters and ``$RANDOM_NORM(mu,sigma)`` by a random string whose length is
drawn from a normal distribution. Expansion runs for every started
execution, so each one gets a fresh payload.
"""

import random
import re
import string
from typing import Any, Optional, Tuple

RANDOM_PATTERN = re.compile(r"\$RANDOM\(\s*([0-9]+)\s*\)")
RANDOM_NORM_PATTERN = re.compile(r"\$RANDOM_NORM\(\s*([0-9]+)\s*,\s*([0-9]+)\s*\)")

LETTERS = string.ascii_letters


def build_payload(params: Any, rng: Optional[random.Random] = None) -> Any:
    """Return a copy of ``params`` with every template string expanded.

    Dicts and lists are walked recursively; other values are returned as is.
    """
    rng = rng or random
    if isinstance(params, dict):
        return {key: build_payload(value, rng) for key, value in params.items()}
    if isinstance(params, list):
        return [build_payload(value, rng) for value in params]
    if isinstance(params, str):
        expanded, _ = expand(params, rng)
        return expanded
    return params


def expand(value: str, rng: Optional[random.Random] = None) -> Tuple[str, bool]:
    """Expand a single template string.

    Returns the new value and whether a substitution happened. A sampled
    length of zero or less leaves the original string untouched.
    """
    rng = rng or random
    length = 0

    match = RANDOM_NORM_PATTERN.search(value)
    if match:
        mu, sigma = int(match.group(1)), int(match.group(2))
        length = int(round(rng.gauss(mu, sigma)))

    match = RANDOM_PATTERN.search(value)
    if match:
        length = int(match.group(1))

    if length > 0:
        return random_string(length, rng), True
    return value, False


def random_string(length: int, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return "".join(rng.choices(LETTERS, k=length))
