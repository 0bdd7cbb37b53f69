"""Effects - descriptions of I/O requested by state transitions.

Transitions never touch the network or the store. They return effects, and
the session shell runs them and feeds the outcome back as new transitions.
"""

from dataclasses import dataclass
from typing import Union

from .models import ChatMessage, Goals, NutrientRecord, Profile


@dataclass(frozen=True)
class PersistProfileAndGoals:
    """Write profile and goals to the user document in one call."""

    profile: Profile
    goals: Goals


@dataclass(frozen=True)
class EstimateNutrition:
    """Ask the inference service for a nutrient breakdown."""

    token: int
    food_description: str
    api_key: str


@dataclass(frozen=True)
class GenerateGoals:
    """Ask the inference service for macro targets."""

    token: int
    profile: Profile
    api_key: str


@dataclass(frozen=True)
class AddRecord:
    """Append a confirmed estimate to the remote food log."""

    record: NutrientRecord


@dataclass(frozen=True)
class ReplaceRecord:
    """Overwrite an existing food log document with the draft."""

    record: NutrientRecord


@dataclass(frozen=True)
class DeleteRecord:
    record_id: str


@dataclass(frozen=True)
class RequestCoachReply:
    """Send the conversation so far plus the new message to the coach."""

    token: int
    history: tuple[ChatMessage, ...]
    message: str
    system_prompt: str
    api_key: str


@dataclass(frozen=True)
class CloseSubscription:
    pass


Effect = Union[
    PersistProfileAndGoals,
    EstimateNutrition,
    GenerateGoals,
    AddRecord,
    ReplaceRecord,
    DeleteRecord,
    RequestCoachReply,
    CloseSubscription,
]
