"""Session State - the explicit state object and its pure transitions.

Every transition takes the current AppState (plus the event's data) and
returns ``(new_state, effects)``. Nothing here performs I/O; effects are run
by the session shell, whose results come back in as further transitions.

Results of inference calls carry the token they were issued with. A result
whose token no longer matches the pending one is stale (the user navigated
away or logged out) and is dropped unchanged.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .effects import (
    AddRecord,
    CloseSubscription,
    DeleteRecord,
    Effect,
    EstimateNutrition,
    GenerateGoals,
    PersistProfileAndGoals,
    ReplaceRecord,
)
from .errors import (
    ANALYSIS_FAILED_MESSAGE,
    LOG_UNAVAILABLE_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    PROFILE_UNAVAILABLE_MESSAGE,
    SAVE_FAILED_MESSAGE,
)
from .macros import calculate_bmi, calculate_daily_totals
from .models import (
    ChatMessage,
    Goals,
    NUMERIC_NUTRIENTS,
    NutrientRecord,
    NutrientTotals,
    Profile,
    Section,
    TEXT_FIELDS,
)


Transition = tuple["AppState", list[Effect]]

PROFILE_FIELDS = ("age", "gender", "height_cm", "weight_kg", "activity_level", "goal")
GOAL_FIELDS = ("calories", "protein", "carbs", "fat")


class Editor(BaseModel):
    """Draft copy of a record open in the editor."""

    model_config = ConfigDict(frozen=True)

    draft: NutrientRecord
    confirming_delete: bool = False


class CoachState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_open: bool = False
    messages: tuple[ChatMessage, ...] = ()
    is_loading: bool = False
    pending: Optional[int] = None


class AppState(BaseModel):
    """Everything the counter view shows, for one signed-in user."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    api_key: str = ""
    section: Section = Section.OVERVIEW

    profile: Profile = Field(default_factory=Profile)
    goals: Goals = Field(default_factory=Goals)
    bmi: Optional[float] = None
    profile_unavailable: bool = False

    daily_log: tuple[NutrientRecord, ...] = ()
    totals: NutrientTotals = Field(default_factory=NutrientTotals)

    food_input: str = ""
    estimate: Optional[NutrientRecord] = None
    is_analyzing: bool = False
    is_generating_goals: bool = False
    pending_estimate: Optional[int] = None
    pending_goals: Optional[int] = None
    request_seq: int = 0

    editor: Optional[Editor] = None
    error: Optional[str] = None
    coach: CoachState = Field(default_factory=CoachState)

    def next_token(self) -> int:
        return self.request_seq + 1


def coerce_number(raw: Any) -> float:
    """Parse a numeric field edit, falling back to 0 for anything unparseable."""
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        try:
            number = float(str(raw).strip())
        except ValueError:
            return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def coerce_goal(raw: Any) -> int:
    """Parse a manual goal edit as a non-negative integer, 0 when unparseable."""
    return max(0, int(coerce_number(raw)))


def _optional_number(raw: Any) -> Optional[float]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return coerce_number(raw)


# ==================== Session lifecycle ====================


def start_session(user_id: str, api_key: str = "", request_seq: int = 0) -> AppState:
    """Fresh state for a newly signed-in user."""
    return AppState(user_id=user_id, api_key=api_key, request_seq=request_seq)


def profile_loaded(state: AppState, profile: Profile, goals: Goals) -> Transition:
    if state.user_id is None:
        return state, []
    update: dict[str, Any] = {
        "profile": profile,
        "goals": goals,
        "bmi": calculate_bmi(profile),
        "profile_unavailable": False,
    }
    if state.error == PROFILE_UNAVAILABLE_MESSAGE:
        update["error"] = None
    return state.model_copy(update=update), []


def profile_load_failed(state: AppState) -> Transition:
    """The stored profile could not be read.

    Profile and goals edits are refused until a later load succeeds, so that
    defaults never overwrite what is stored.
    """
    if state.user_id is None:
        return state, []
    return state.model_copy(
        update={"profile_unavailable": True, "error": PROFILE_UNAVAILABLE_MESSAGE}
    ), []


def _refuse_profile_write(state: AppState) -> Transition:
    return state.model_copy(update={"error": PROFILE_UNAVAILABLE_MESSAGE}), []


def logout(state: AppState) -> Transition:
    """Drop all user state and tear down the log subscription.

    The request counter survives so that results issued before logout can
    never match a token issued after it.
    """
    return AppState(request_seq=state.request_seq), [CloseSubscription()]


def set_api_key(state: AppState, api_key: str) -> Transition:
    return state.model_copy(update={"api_key": api_key.strip()}), []


def navigate(state: AppState, section: Section) -> Transition:
    """Switch sections. Leaving the calculator abandons an in-flight estimate."""
    update: dict[str, Any] = {"section": section}
    if state.section == Section.CALCULATOR and section != Section.CALCULATOR:
        update.update(pending_estimate=None, is_analyzing=False)
    return state.model_copy(update=update), []


# ==================== Remote log snapshots ====================


def apply_snapshot(state: AppState, records: list[NutrientRecord]) -> Transition:
    """Replace the log mirror with a full snapshot and recompute totals."""
    if state.user_id is None:
        return state, []

    log = tuple(records)
    update: dict[str, Any] = {"daily_log": log, "totals": calculate_daily_totals(log)}
    if state.error == LOG_UNAVAILABLE_MESSAGE:
        update["error"] = None
    return state.model_copy(update=update), []


def snapshot_failed(state: AppState) -> Transition:
    """The subscription could not be established: show an empty log."""
    if state.user_id is None:
        return state, []
    return state.model_copy(
        update={
            "daily_log": (),
            "totals": NutrientTotals(),
            "error": LOG_UNAVAILABLE_MESSAGE,
        }
    ), []


def store_write_failed(state: AppState, message: str = SAVE_FAILED_MESSAGE) -> Transition:
    if state.user_id is None:
        return state, []
    return state.model_copy(update={"error": message}), []


# ==================== Nutrition estimate ====================


def set_food_input(state: AppState, text: str) -> Transition:
    return state.model_copy(update={"food_input": text}), []


def start_estimate(state: AppState, food_description: Optional[str] = None) -> Transition:
    """Request a nutrient estimate for the food description.

    Empty input is a no-op. So is a second request while one is in flight.
    """
    text = state.food_input if food_description is None else food_description
    if not text.strip() or state.is_analyzing or state.user_id is None:
        return state, []

    if not state.api_key:
        return state.model_copy(
            update={"food_input": text, "estimate": None, "error": MISSING_API_KEY_MESSAGE}
        ), []

    token = state.next_token()
    new_state = state.model_copy(
        update={
            "food_input": text,
            "estimate": None,
            "error": None,
            "is_analyzing": True,
            "pending_estimate": token,
            "request_seq": token,
            "section": Section.CALCULATOR,
        }
    )
    return new_state, [EstimateNutrition(token=token, food_description=text, api_key=state.api_key)]


def estimate_succeeded(state: AppState, token: int, record: NutrientRecord) -> Transition:
    if state.pending_estimate != token:
        return state, []
    return state.model_copy(
        update={"estimate": record, "is_analyzing": False, "pending_estimate": None}
    ), []


def estimate_failed(state: AppState, token: int, message: str = ANALYSIS_FAILED_MESSAGE) -> Transition:
    if state.pending_estimate != token:
        return state, []
    return state.model_copy(
        update={
            "estimate": None,
            "error": message,
            "is_analyzing": False,
            "pending_estimate": None,
        }
    ), []


def discard_estimate(state: AppState) -> Transition:
    """Throw away the shown estimate and reset the input for another one."""
    return state.model_copy(update={"estimate": None, "food_input": ""}), []


def add_estimate_to_log(state: AppState) -> Transition:
    """Write the confirmed estimate to the remote log.

    The local log is not touched; the write comes back as a snapshot.
    """
    if state.estimate is None or state.user_id is None:
        return state, []
    record = state.estimate
    new_state = state.model_copy(
        update={"estimate": None, "food_input": "", "section": Section.OVERVIEW}
    )
    return new_state, [AddRecord(record=record)]


# ==================== Profile and goals ====================


def change_profile_field(state: AppState, field: str, value: Any) -> Transition:
    """Edit one profile field, recompute BMI and persist profile and goals.

    Raises:
        ValueError: Unknown field or a value outside the field's choices
    """
    if field not in PROFILE_FIELDS:
        raise ValueError(f"Unknown profile field: {field}")

    if field in ("height_cm", "weight_kg"):
        value = _optional_number(value)
    elif field == "age":
        number = _optional_number(value)
        value = int(number) if number is not None else None

    if state.profile_unavailable:
        return _refuse_profile_write(state)

    data = state.profile.model_dump()
    data[field] = value
    try:
        profile = Profile(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid value for {field}: {value!r}") from e

    new_state = state.model_copy(update={"profile": profile, "bmi": calculate_bmi(profile)})
    return new_state, [PersistProfileAndGoals(profile=profile, goals=state.goals)]


def change_goal_field(state: AppState, field: str, raw: Any) -> Transition:
    """Edit one goal by hand and persist profile and goals.

    Raises:
        ValueError: Unknown goal field
    """
    if field not in GOAL_FIELDS:
        raise ValueError(f"Unknown goal field: {field}")
    if state.profile_unavailable:
        return _refuse_profile_write(state)

    goals = state.goals.model_copy(update={field: coerce_goal(raw)})
    return state.model_copy(update={"goals": goals}), [
        PersistProfileAndGoals(profile=state.profile, goals=goals)
    ]


def can_generate_goals(profile: Profile) -> bool:
    return profile.age is not None and profile.height_cm is not None and profile.weight_kg is not None


def start_goal_generation(state: AppState) -> Transition:
    if state.is_generating_goals or state.user_id is None:
        return state, []
    if state.profile_unavailable:
        return _refuse_profile_write(state)
    if not can_generate_goals(state.profile):
        return state, []
    if not state.api_key:
        return state.model_copy(update={"error": MISSING_API_KEY_MESSAGE}), []

    token = state.next_token()
    new_state = state.model_copy(
        update={
            "error": None,
            "is_generating_goals": True,
            "pending_goals": token,
            "request_seq": token,
        }
    )
    return new_state, [GenerateGoals(token=token, profile=state.profile, api_key=state.api_key)]


def goals_generated(state: AppState, token: int, goals: Goals) -> Transition:
    """Replace goals wholesale with the recommendation and persist."""
    if state.pending_goals != token:
        return state, []
    new_state = state.model_copy(
        update={"goals": goals, "is_generating_goals": False, "pending_goals": None}
    )
    return new_state, [PersistProfileAndGoals(profile=state.profile, goals=goals)]


def goal_generation_failed(state: AppState, token: int, message: str) -> Transition:
    if state.pending_goals != token:
        return state, []
    return state.model_copy(
        update={"error": message, "is_generating_goals": False, "pending_goals": None}
    ), []


# ==================== Edit / delete ====================


def open_editor(state: AppState, record_id: str) -> Transition:
    record = next((r for r in state.daily_log if r.id == record_id), None)
    if record is None:
        return state, []
    return state.model_copy(update={"editor": Editor(draft=record)}), []


def close_editor(state: AppState) -> Transition:
    return state.model_copy(update={"editor": None}), []


def edit_draft_field(state: AppState, field: str, raw: Any) -> Transition:
    """Change one field of the draft. Numeric input never fails, it becomes 0.

    Raises:
        ValueError: Field is not editable
    """
    if state.editor is None:
        return state, []

    if field in NUMERIC_NUTRIENTS:
        value: Any = coerce_number(raw)
    elif field in TEXT_FIELDS:
        value = "" if raw is None else str(raw)
    else:
        raise ValueError(f"Field is not editable: {field}")

    draft = state.editor.draft.model_copy(update={field: value})
    editor = state.editor.model_copy(update={"draft": draft})
    return state.model_copy(update={"editor": editor}), []


def save_draft(state: AppState) -> Transition:
    """Persist the draft in full and close the editor."""
    if state.editor is None or state.editor.draft.id is None:
        return state, []
    draft = state.editor.draft
    return state.model_copy(update={"editor": None}), [ReplaceRecord(record=draft)]


def request_delete(state: AppState) -> Transition:
    if state.editor is None:
        return state, []
    editor = state.editor.model_copy(update={"confirming_delete": True})
    return state.model_copy(update={"editor": editor}), []


def confirm_delete(state: AppState, confirmed: bool) -> Transition:
    """Answer the delete confirmation.

    Confirming deletes the record and discards the draft. Declining leaves
    the draft open and deletes nothing.
    """
    editor = state.editor
    if editor is None or not editor.confirming_delete or editor.draft.id is None:
        return state, []
    if not confirmed:
        return state.model_copy(
            update={"editor": editor.model_copy(update={"confirming_delete": False})}
        ), []
    return state.model_copy(update={"editor": None}), [DeleteRecord(record_id=editor.draft.id)]
