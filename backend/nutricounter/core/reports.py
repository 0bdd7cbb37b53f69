"""Report Generation - Pure functions for the exported overview.

All functions are pure: same input always produces same output, no side effects.
"""

import csv
import io
from typing import Iterable, Optional

from .macros import calculate_daily_totals, calculate_progress
from .models import Goals, NutrientRecord


EXPORT_COLUMNS = [
    ("category", "Category"),
    ("item", "Item"),
    ("value", "Value"),
    ("unit", "Unit/Target"),
]
EXPORT_FILENAME = "nutricounter_overview.csv"


def _display_number(value: float):
    return int(value) if float(value).is_integer() else value


def build_export_rows(
    bmi: Optional[float],
    goals: Goals,
    log: Iterable[NutrientRecord],
) -> list[dict]:
    """Build the flat overview table.

    Args:
        bmi: Current BMI, or None if it cannot be computed
        goals: User's macro targets
        log: Records currently in the log

    Returns:
        Rows keyed by category/item/value/unit: one BMI row, a header row,
        one row per macro, a header row, then one row per food (or a
        placeholder row when the log is empty)
    """
    log = list(log)
    progress = calculate_progress(calculate_daily_totals(log), goals)

    rows: list[dict] = [
        {"category": "User Profile", "item": "BMI", "value": bmi if bmi is not None else "N/A", "unit": ""},
        {"category": "Daily Totals", "item": "Nutrient", "value": "Consumed", "unit": "Goal"},
    ]
    for stat in progress:
        rows.append({
            "category": "Daily Totals",
            "item": stat.name,
            "value": round(stat.current),
            "unit": f"{_display_number(stat.target)} {stat.unit}",
        })

    rows.append({"category": "Logged Foods", "item": "Food Name", "value": "Calories", "unit": "Portion"})
    if log:
        for record in log:
            rows.append({
                "category": "Logged Foods",
                "item": record.food_name,
                "value": _display_number(record.calories),
                "unit": record.portion_size,
            })
    else:
        rows.append({"category": "Logged Foods", "item": "No foods logged yet.", "value": "", "unit": ""})

    return rows


def render_csv(rows: list[dict]) -> str:
    """Render export rows as CSV text with a labelled header line."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for row in rows:
        writer.writerow([row.get(key, "") for key, _ in EXPORT_COLUMNS])
    return buffer.getvalue()
