"""Macro Calculations - Pure functions for nutrition math.

All functions are pure: same input always produces same output, no side effects.
"""

from typing import Iterable, Optional

from .models import Goals, MacroProgress, NutrientRecord, NutrientTotals, Profile


def calculate_daily_totals(log: Iterable[NutrientRecord]) -> NutrientTotals:
    """Calculate total macros from the daily log.

    Missing nutrient values are already zero on the record, so this is a
    plain field-wise sum. ``carbs`` is the sum of ``carbohydrates``.

    Args:
        log: Records currently in the log

    Returns:
        NutrientTotals (all zero for an empty log)
    """
    calories = protein = carbs = fat = 0.0
    for record in log:
        calories += record.calories
        protein += record.protein
        carbs += record.carbohydrates
        fat += record.fat

    return NutrientTotals(calories=calories, protein=protein, carbs=carbs, fat=fat)


def progress_ratio(total: float, target: Optional[float]) -> float:
    """Fraction of a target reached, capped at 1.0.

    Args:
        total: Amount consumed
        target: Daily target (may be missing)

    Returns:
        min(total / target, 1.0), or 0.0 when the target is missing or not positive
    """
    if target is None or target <= 0:
        return 0.0
    return max(0.0, min(total / target, 1.0))


def calculate_progress(totals: NutrientTotals, goals: Goals) -> list[MacroProgress]:
    """Build the four progress bars shown on the overview.

    Args:
        totals: Current daily totals
        goals: User's macro targets

    Returns:
        One MacroProgress per macro, in display order
    """
    rows = [
        ("Calories", totals.calories, goals.calories, "kcal"),
        ("Protein", totals.protein, goals.protein, "g"),
        ("Carbs", totals.carbs, goals.carbs, "g"),
        ("Fat", totals.fat, goals.fat, "g"),
    ]
    return [
        MacroProgress(
            name=name,
            current=current,
            target=target,
            unit=unit,
            ratio=progress_ratio(current, target),
        )
        for name, current, target, unit in rows
    ]


def calculate_bmi(profile: Profile) -> Optional[float]:
    """Body-mass index from the profile's height and weight.

    Args:
        profile: User profile

    Returns:
        BMI rounded to one decimal, or None if height or weight is missing or not positive
    """
    height_cm = profile.height_cm
    weight_kg = profile.weight_kg
    if height_cm is None or weight_kg is None:
        return None
    if height_cm <= 0 or weight_kg <= 0:
        return None

    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)
