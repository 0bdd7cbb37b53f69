"""Unit tests for the overview export - pure functions, no mocks needed."""

from nutricounter.core.models import Goals, NutrientRecord
from nutricounter.core.reports import EXPORT_COLUMNS, build_export_rows, render_csv


class TestBuildExportRows:
    """Tests for build_export_rows."""

    def test_empty_log(self):
        """Empty log exports a placeholder food row."""
        rows = build_export_rows(None, Goals(), [])

        assert rows[0] == {"category": "User Profile", "item": "BMI", "value": "N/A", "unit": ""}
        assert rows[-1]["item"] == "No foods logged yet."
        assert len(rows) == 8

    def test_bmi_value(self):
        """Known BMI is exported as a number."""
        rows = build_export_rows(25.0, Goals(), [])
        assert rows[0]["value"] == 25.0

    def test_macro_rows(self):
        """Each macro row shows consumed amount and goal with unit."""
        goals = Goals(calories=2000, protein=100, carbs=250, fat=60)
        log = [
            NutrientRecord(id="a", food_name="Rice", calories=206, protein=4.3, carbohydrates=44.5, fat=0.4),
            NutrientRecord(id="b", food_name="Egg", calories=78, protein=6.3, carbohydrates=0.6, fat=5.3),
        ]
        rows = build_export_rows(None, goals, log)
        macro_rows = [r for r in rows if r["category"] == "Daily Totals"][1:]

        assert [r["item"] for r in macro_rows] == ["Calories", "Protein", "Carbs", "Fat"]
        assert macro_rows[0]["value"] == 284
        assert macro_rows[0]["unit"] == "2000 kcal"
        assert macro_rows[1]["value"] == 11
        assert macro_rows[3]["unit"] == "60 g"

    def test_food_rows_in_log_order(self):
        """Foods are exported in log order with calories and portion."""
        log = [
            NutrientRecord(id="a", food_name="Rice", portion_size="1 cup", calories=206),
            NutrientRecord(id="b", food_name="Egg", portion_size="1 large", calories=77.5),
        ]
        rows = build_export_rows(None, Goals(), log)
        food_rows = [r for r in rows if r["category"] == "Logged Foods"][1:]

        assert food_rows == [
            {"category": "Logged Foods", "item": "Rice", "value": 206, "unit": "1 cup"},
            {"category": "Logged Foods", "item": "Egg", "value": 77.5, "unit": "1 large"},
        ]


class TestRenderCsv:
    """Tests for render_csv."""

    def test_header_line(self):
        """First line holds the column labels."""
        text = render_csv(build_export_rows(None, Goals(), []))
        assert text.splitlines()[0] == ",".join(label for _, label in EXPORT_COLUMNS)

    def test_full_document(self):
        """Empty-log export renders the expected lines."""
        goals = Goals(calories=2000, protein=100, carbs=250, fat=60)
        text = render_csv(build_export_rows(22.9, goals, []))

        assert text.splitlines() == [
            "Category,Item,Value,Unit/Target",
            "User Profile,BMI,22.9,",
            "Daily Totals,Nutrient,Consumed,Goal",
            "Daily Totals,Calories,0,2000 kcal",
            "Daily Totals,Protein,0,100 g",
            "Daily Totals,Carbs,0,250 g",
            "Daily Totals,Fat,0,60 g",
            "Logged Foods,Food Name,Calories,Portion",
            "Logged Foods,No foods logged yet.,,",
        ]

    def test_commas_are_quoted(self):
        """Food names containing commas stay in one cell."""
        log = [NutrientRecord(id="a", food_name="Rice, cooked", portion_size="1 cup", calories=206)]
        text = render_csv(build_export_rows(None, Goals(), log))
        assert 'Logged Foods,"Rice, cooked",206,1 cup' in text.splitlines()
