"""Core Data Models - Pydantic models for type safety.

All models are immutable value objects with no behavior beyond validation.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


NUMERIC_NUTRIENTS = (
    "calories",
    "protein",
    "carbohydrates",
    "fat",
    "fiber",
    "sugar",
    "sodium",
    "vitamin_c",
    "calcium",
    "iron",
)
TEXT_FIELDS = ("food_name", "portion_size")


class Gender(str, Enum):
    FEMALE = "female"
    MALE = "male"


class ActivityLevel(str, Enum):
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


class GoalType(str, Enum):
    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


class Section(str, Enum):
    OVERVIEW = "overview"
    CALCULATOR = "calculator"
    SETTINGS = "settings"


class NutrientRecord(BaseModel):
    """A single logged food with its nutrient breakdown."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = Field(default=None, description="Document ID assigned by the store")
    food_name: str = Field(default="", description="Name of the food")
    portion_size: str = Field(default="", description="Portion as described by the estimate")
    calories: float = Field(default=0, description="Energy in kcal")
    protein: float = Field(default=0, description="Protein in grams")
    carbohydrates: float = Field(default=0, description="Carbohydrates in grams")
    fat: float = Field(default=0, description="Fat in grams")
    fiber: float = Field(default=0, description="Fiber in grams")
    sugar: float = Field(default=0, description="Sugar in grams")
    sodium: float = Field(default=0, description="Sodium in mg")
    vitamin_c: float = Field(default=0, description="Vitamin C in mg")
    calcium: float = Field(default=0, description="Calcium in mg")
    iron: float = Field(default=0, description="Iron in mg")
    logged_at: Optional[datetime] = Field(default=None, description="Server timestamp")

    @field_validator(*NUMERIC_NUTRIENTS, mode="before")
    @classmethod
    def _none_is_zero(cls, value):
        return 0 if value is None else value

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def _none_is_blank(cls, value):
        return "" if value is None else str(value)

    def to_document(self) -> dict:
        """Firestore payload for this record. The identifier is never stored in the body."""
        return self.model_dump(exclude={"id"})


class Profile(BaseModel):
    """Body metrics and preferences used for BMI and goal generation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    age: Optional[int] = Field(default=None, ge=0)
    gender: Gender = Gender.FEMALE
    height_cm: Optional[float] = Field(default=None, description="Height in centimetres")
    weight_kg: Optional[float] = Field(default=None, description="Weight in kilograms")
    activity_level: ActivityLevel = ActivityLevel.SEDENTARY
    goal: GoalType = GoalType.MAINTAIN

    @field_validator("age", "height_cm", "weight_kg", mode="before")
    @classmethod
    def _blank_is_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Goals(BaseModel):
    """Daily macro targets."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    calories: int = Field(default=2200, ge=0, description="Daily calorie target")
    protein: int = Field(default=120, ge=0, description="Daily protein target in grams")
    carbs: int = Field(default=200, ge=0, description="Daily carbohydrate target in grams")
    fat: int = Field(default=75, ge=0, description="Daily fat target in grams")


class NutrientTotals(BaseModel):
    """Running totals over the daily log."""

    model_config = ConfigDict(frozen=True)

    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0


class MacroProgress(BaseModel):
    """One progress bar: consumed vs. target for a single macro."""

    model_config = ConfigDict(frozen=True)

    name: str
    current: float
    target: float
    unit: str
    ratio: float = Field(ge=0, le=1)

    @property
    def percent(self) -> float:
        return self.ratio * 100


class ChatMessage(BaseModel):
    """A single turn in the coach conversation."""

    model_config = ConfigDict(frozen=True)

    sender: str = Field(description="'user' or 'ai'")
    text: str


class User(BaseModel):
    """User record stored in Firestore."""

    email: str
    api_key_hash: str = Field(description="SHA256 hash of API key - never store plaintext")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    profile: Profile = Field(default_factory=Profile)
    goals: Goals = Field(default_factory=Goals)
