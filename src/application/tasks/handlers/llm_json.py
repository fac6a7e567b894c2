"""
Helpers for reading JSON answers from the LLM.

Chat models often wrap JSON in Markdown code fences or add a sentence
around it; parse_llm_json strips both before decoding.
"""

import json
import re
from typing import Any

from src.domain.shared.exceptions import RetryableJobError

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_llm_json(text: str) -> Any:
    """
    Decode the JSON object or array in an LLM answer.

    Raises:
        RetryableJobError: No decodable JSON in the answer (a new
            completion may well be valid)

    Examples:
        >>> parse_llm_json('```json\\n{"skills": ["Python"]}\\n```')
        {'skills': ['Python']}
    """
    candidate = text.strip()
    fenced = _FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        return json.loads(candidate)
    except ValueError:
        pass

    # Fall back to the outermost {...} or [...] span
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = candidate.find(opener), candidate.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start : end + 1])
            except ValueError:
                continue

    raise RetryableJobError(f"LLM returned invalid JSON: {text[:200]!r}")
