"""Prompt text sent to the inference service."""

from typing import Optional

from .models import Profile


NUTRITION_PROMPT_TEMPLATE = """Analyze the nutrition content of: "{food}".

Please provide a detailed breakdown in the following JSON format only (no other text):
{{
  "food_name": "name of the food",
  "portion_size": "portion size",
  "calories": number,
  "protein": number,
  "carbohydrates": number,
  "fat": number,
  "fiber": number,
  "sugar": number,
  "sodium": number,
  "vitamin_c": number,
  "calcium": number,
  "iron": number
}}

All nutrients should be in grams except calories (kcal), sodium (mg), vitamin_c (mg), calcium (mg), and iron (mg). Provide realistic estimates based on standard nutrition databases."""


GOALS_PROMPT_TEMPLATE = """Act as an expert nutritionist. Based on the following user data, calculate their daily nutritional needs.
User Data:
- Age: {age}
- Gender: {gender}
- Height: {height} cm
- Weight: {weight} kg
- Activity Level: {activity} (options: sedentary, light, moderate, active, very_active)
- Primary Goal: {goal} weight (options: maintain, lose, gain)

Please provide a recommended daily intake for calories, protein (g), carbs (g), and fat (g).
Return the response ONLY in the following strict JSON format. Do not include any other text, explanations, or markdown formatting.

{{
  "calories": number,
  "protein": number,
  "carbs": number,
  "fat": number
}}"""


COACH_SYSTEM_TEMPLATE = """You are an expert AI Health Coach. Your ONLY purpose is to provide workout and diet plans.
You MUST strictly refuse to answer any questions not related to fitness, workouts, diet, nutrition, or health.
If the user asks about anything else (e.g., coding, history, opinions), you MUST politely decline by saying something like, "I'm sorry, but I can only assist with creating workout and diet plans."

Here is the user's data for context. Use it to personalize your recommendations:
- Age: {age}
- Gender: {gender}
- Height: {height} cm
- Weight: {weight} kg
- Calculated BMI: {bmi}
- Stated Goal: {goal} weight

Based on this context and the conversation history, respond to the user's latest message.

IMPORTANT: Do not use any Markdown formatting, especially no asterisks for bolding (like **word**), no hashes for headings (like # Title), and no dashes for lists."""


def _fmt(value, missing: str = "Not provided") -> str:
    if value is None or value == "":
        return missing
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(getattr(value, "value", value))


def nutrition_prompt(food_description: str) -> str:
    return NUTRITION_PROMPT_TEMPLATE.format(food=food_description.strip())


def goals_prompt(profile: Profile) -> str:
    return GOALS_PROMPT_TEMPLATE.format(
        age=_fmt(profile.age),
        gender=_fmt(profile.gender),
        height=_fmt(profile.height_cm),
        weight=_fmt(profile.weight_kg),
        activity=_fmt(profile.activity_level),
        goal=_fmt(profile.goal),
    )


def coach_system_prompt(profile: Profile, bmi: Optional[float]) -> str:
    return COACH_SYSTEM_TEMPLATE.format(
        age=_fmt(profile.age),
        gender=_fmt(profile.gender),
        height=_fmt(profile.height_cm),
        weight=_fmt(profile.weight_kg),
        bmi=_fmt(bmi),
        goal=_fmt(profile.goal),
    )


def coach_greeting(bmi: Optional[float]) -> str:
    if bmi is not None:
        return (
            f"Hello! I'm your AI Health Coach. Based on your current BMI of {bmi}, "
            "I can help you generate a personalized workout or diet plan. "
            "What would you like to focus on?"
        )
    return (
        "Hello! I'm your AI Health Coach. Once you've entered your details in the settings, "
        "I can generate personalized workout and diet plans for you. How can I help today?"
    )
