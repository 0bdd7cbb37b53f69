"""Estimator and goal generator - inference calls plus response parsing.

Each function makes exactly one request. Errors are raised as typed
exceptions; the session converts them into user-facing messages.
"""

import logging

from ..core.extraction import parse_goals, parse_nutrient_record
from ..core.models import ChatMessage, Goals, NutrientRecord, Profile
from ..core.prompts import goals_prompt, nutrition_prompt
from .gemini_client import GeminiClient


logger = logging.getLogger(__name__)


async def estimate_nutrition(client: GeminiClient, api_key: str, food_description: str) -> NutrientRecord:
    """Estimate the nutrient breakdown of a free-text food description.

    Raises:
        InferenceError: Network failure, non-2xx status or missing text
        ResponseParseError: Text held no valid nutrient object
    """
    logger.info("Requesting nutrition estimate")
    text = await client.generate(api_key, nutrition_prompt(food_description))
    record = parse_nutrient_record(text)
    logger.debug("Estimate parsed: %s (%s kcal)", record.food_name, record.calories)
    return record


async def recommend_goals(client: GeminiClient, api_key: str, profile: Profile) -> Goals:
    """Ask for daily macro targets for the profile, rounded to integers.

    Raises:
        InferenceError: Network failure, non-2xx status or missing text
        ResponseParseError: Text held no valid goals object
    """
    logger.info("Requesting goal recommendation")
    text = await client.generate(api_key, goals_prompt(profile))
    return parse_goals(text)


async def coach_reply(
    client: GeminiClient,
    api_key: str,
    history: tuple[ChatMessage, ...],
    message: str,
    system_prompt: str,
) -> str:
    """Get the coach's next turn given the conversation so far.

    Raises:
        InferenceError: Network failure, non-2xx status or missing text
    """
    return await client.chat(api_key, history, message, system_prompt)
