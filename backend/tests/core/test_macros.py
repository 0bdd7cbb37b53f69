"""Unit tests for macro calculations - pure functions, no mocks needed."""

from nutricounter.core.models import Goals, NutrientRecord, NutrientTotals, Profile
from nutricounter.core.macros import (
    calculate_bmi,
    calculate_daily_totals,
    calculate_progress,
    progress_ratio,
)


class TestCalculateDailyTotals:
    """Tests for calculate_daily_totals."""

    def test_empty_log(self):
        """Empty log returns zeros."""
        assert calculate_daily_totals([]) == NutrientTotals(calories=0, protein=0, carbs=0, fat=0)

    def test_single_record(self):
        """Single record returns its values, carbs from carbohydrates."""
        record = NutrientRecord(food_name="Coffee", calories=65, protein=4.0, carbohydrates=6.5, fat=2.5)
        totals = calculate_daily_totals([record])
        assert totals == NutrientTotals(calories=65, protein=4.0, carbs=6.5, fat=2.5)

    def test_multiple_records(self):
        """Multiple records are summed field by field."""
        log = [
            NutrientRecord(food_name="Coffee", calories=65, protein=4, carbohydrates=6.5, fat=2.5),
            NutrientRecord(food_name="Eggs", calories=140, protein=12, carbohydrates=0, fat=10),
            NutrientRecord(food_name="Bread", calories=120, protein=3, carbohydrates=20, fat=3),
        ]
        totals = calculate_daily_totals(log)
        assert totals == NutrientTotals(calories=325, protein=19.0, carbs=26.5, fat=15.5)

    def test_missing_fields_count_as_zero(self):
        """Records without some nutrients still sum."""
        log = [
            NutrientRecord(food_name="Water"),
            NutrientRecord(food_name="Apple", calories=95, carbohydrates=25),
        ]
        totals = calculate_daily_totals(log)
        assert totals.calories == 95
        assert totals.protein == 0
        assert totals.carbs == 25
        assert totals.fat == 0

    def test_accepts_tuple(self):
        """Works on the tuple held in session state."""
        log = (NutrientRecord(food_name="A", calories=10),)
        assert calculate_daily_totals(log).calories == 10


class TestProgressRatio:
    """Tests for progress_ratio."""

    def test_partial(self):
        """1500 of 2000 is 75%."""
        assert progress_ratio(1500, 2000) == 0.75

    def test_capped_at_one(self):
        """Going over target caps at 1."""
        assert progress_ratio(3000, 2000) == 1.0

    def test_zero_target(self):
        """Zero target never divides by zero."""
        assert progress_ratio(500, 0) == 0.0

    def test_negative_target(self):
        """Negative target is treated like no target."""
        assert progress_ratio(500, -10) == 0.0

    def test_missing_target(self):
        """Missing target is tolerated."""
        assert progress_ratio(500, None) == 0.0

    def test_always_within_bounds(self):
        """Ratio stays in [0, 1] for positive targets."""
        for total in (0, 1, 50, 99.9, 100, 250, 10_000):
            for target in (1, 10, 100, 2000):
                assert 0.0 <= progress_ratio(total, target) <= 1.0


class TestCalculateProgress:
    """Tests for calculate_progress."""

    def test_calories_bar_at_75_percent(self):
        """1500 kcal against a 2000 kcal goal renders at 75%."""
        goals = Goals(calories=2000, protein=100, carbs=250, fat=60)
        totals = NutrientTotals(calories=1500, protein=50, carbs=100, fat=30)
        progress = calculate_progress(totals, goals)

        calories = progress[0]
        assert calories.name == "Calories"
        assert calories.unit == "kcal"
        assert calories.target == 2000
        assert calories.percent == 75.0

    def test_display_order(self):
        """Bars are calories, protein, carbs, fat."""
        progress = calculate_progress(NutrientTotals(), Goals())
        assert [p.name for p in progress] == ["Calories", "Protein", "Carbs", "Fat"]

    def test_zero_goal_gives_zero_ratio(self):
        """A zero goal shows an empty bar instead of failing."""
        goals = Goals(calories=0, protein=0, carbs=0, fat=0)
        progress = calculate_progress(NutrientTotals(calories=100), goals)
        assert all(p.ratio == 0.0 for p in progress)


class TestCalculateBmi:
    """Tests for calculate_bmi."""

    def test_known_value(self):
        """180 cm / 81 kg is a BMI of 25.0."""
        assert calculate_bmi(Profile(height_cm=180, weight_kg=81)) == 25.0

    def test_rounded_to_one_decimal(self):
        """Result has one decimal place."""
        # 70 / 1.75^2 = 22.857...
        assert calculate_bmi(Profile(height_cm=175, weight_kg=70)) == 22.9

    def test_missing_height(self):
        """No height, no BMI."""
        assert calculate_bmi(Profile(weight_kg=81)) is None

    def test_missing_weight(self):
        """No weight, no BMI."""
        assert calculate_bmi(Profile(height_cm=180)) is None

    def test_zero_height(self):
        """Zero height gives None, not a division error."""
        assert calculate_bmi(Profile(height_cm=0, weight_kg=81)) is None

    def test_negative_weight(self):
        """Non-positive weight gives None."""
        assert calculate_bmi(Profile(height_cm=180, weight_kg=-5)) is None
