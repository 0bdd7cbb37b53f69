"""Tolerant JSON extraction from generated text.

The inference service is asked for "JSON only" but routinely wraps the object
in prose or markdown fences. The grammar accepted here is deliberately small:
the answer is the first balanced ``{...}`` substring, where braces inside JSON
string literals do not count toward the balance.
"""

import json
import math
from typing import Optional

from pydantic import ValidationError

from .errors import ResponseParseError
from .models import Goals, NutrientRecord


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index just past the brace that closes the one at ``start``, or None."""
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == "\"":
                in_str = False
            continue

        if ch == "\"":
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_object(text: Optional[str]) -> Optional[str]:
    """Locate the first balanced top-level JSON object in free text.

    Args:
        text: Generated text, possibly surrounded by prose

    Returns:
        The ``{...}`` substring, or None if no opening brace is ever closed
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            return text[start:end]
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: Optional[str]) -> dict:
    """Extract and decode the first JSON object in ``text``.

    Raises:
        ResponseParseError: No object found, malformed JSON, or not an object
    """
    candidate = extract_json_object(text)
    if candidate is None:
        raise ResponseParseError("No JSON object found in response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Malformed JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise ResponseParseError("JSON value in response is not an object")
    return data


def parse_nutrient_record(text: Optional[str]) -> NutrientRecord:
    """Parse an estimator response into a NutrientRecord.

    The record carries no identifier or timestamp; the store assigns both when
    the estimate is logged.

    Raises:
        ResponseParseError: The response held no valid nutrient object
    """
    data = parse_json_object(text)
    data.pop("id", None)
    data.pop("logged_at", None)
    try:
        return NutrientRecord(**data)
    except ValidationError as e:
        raise ResponseParseError(f"Invalid nutrient values in response: {e}") from e


def parse_goals(text: Optional[str]) -> Goals:
    """Parse a goal-generator response, rounding each target to an integer.

    Negative recommendations are clamped to zero.

    Raises:
        ResponseParseError: Missing or non-numeric calories/protein/carbs/fat
    """
    data = parse_json_object(text)
    rounded = {}
    for name in ("calories", "protein", "carbs", "fat"):
        value = data.get(name)
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ResponseParseError(f"Missing or invalid '{name}' in goals response") from e
        if not math.isfinite(number):
            raise ResponseParseError(f"Non-finite '{name}' in goals response")
        rounded[name] = max(0, math.floor(number + 0.5))
    return Goals(**rounded)
