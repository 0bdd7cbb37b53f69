"""MCP Server - Tool definitions for the nutrition counter.

Each tool is a thin adapter: it looks up the caller's session, dispatches one
or more state transitions, waits for the resulting effects and reports the
new state. Handles authentication via API key in Authorization header.
"""

import logging
from contextvars import ContextVar
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from ..core import coach as coach_transitions
from ..core import state as transitions
from ..core.errors import ANALYSIS_IN_PROGRESS_MESSAGE, PROFILE_UNAVAILABLE_MESSAGE
from ..core.macros import calculate_progress
from ..core.models import NutrientRecord, Section
from ..core.state import AppState, can_generate_goals
from .auth import AuthClient
from .firestore_client import FirestoreConfig, NutriCounterFirestoreClient
from .gemini_client import GeminiClient, GeminiConfig
from .session import NutritionSession, SessionRegistry


logger = logging.getLogger(__name__)

# Context variable to store current user_id per request
current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

mcp = FastMCP(
    "nutricounter",
    instructions="""NutriCounter - AI nutrition tracker.

Use these tools to estimate the nutrients in a described food, log it,
track today's totals against macro goals, and chat with the health coach.

Before analyzing food, make sure a Gemini API key is set with set_api_key.
Estimates are only logged after add_to_log is called.
Deleting a food requires confirm=true.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized clients
_firestore_client: NutriCounterFirestoreClient | None = None
_auth_client: AuthClient | None = None
_gemini_client: GeminiClient | None = None
_registry: SessionRegistry | None = None


def get_firestore_client() -> NutriCounterFirestoreClient:
    """Get or create Firestore client."""
    global _firestore_client
    if _firestore_client is None:
        _firestore_client = NutriCounterFirestoreClient(FirestoreConfig.from_env())
    return _firestore_client


def get_auth_client() -> AuthClient:
    """Get or create Auth client."""
    global _auth_client
    if _auth_client is None:
        _auth_client = AuthClient(get_firestore_client().client)
    return _auth_client


def get_gemini_client() -> GeminiClient:
    """Get or create the inference client."""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient.create(GeminiConfig.from_env())
    return _gemini_client


def get_registry() -> SessionRegistry:
    """Get or create the session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry(
            get_firestore_client,
            get_gemini_client,
            default_api_key=GeminiConfig.from_env().default_api_key,
            snapshot_timeout=FirestoreConfig.from_env().snapshot_timeout,
        )
    return _registry


def get_user_id() -> str:
    """Get current authenticated user ID.

    Raises:
        RuntimeError: If no user is authenticated
    """
    user_id = current_user_id.get()
    if user_id is None:
        raise RuntimeError("No authenticated user. Ensure API key is provided.")
    return user_id


async def get_session() -> NutritionSession:
    return await get_registry().get_or_start(get_user_id())


async def get_profile_session() -> NutritionSession:
    """The caller's session, retrying the profile read if it failed before."""
    session = await get_session()
    if session.state.profile_unavailable:
        await session.reload_profile()
    return session


async def close_clients() -> None:
    """Shut down sessions and network clients. Called when the app stops."""
    global _gemini_client
    if _registry is not None:
        ended = _registry.end_all()
        logger.info("Ended %d sessions on shutdown", ended)
    if _gemini_client is not None:
        await _gemini_client.close()
        _gemini_client = None


# ==================== Formatting ====================


def _record_dict(record: NutrientRecord) -> dict:
    return record.model_dump(mode="json")


def _overview(state: AppState) -> dict:
    progress = calculate_progress(state.totals, state.goals)
    return {
        "bmi": state.bmi,
        "goals": state.goals.model_dump(),
        "totals": state.totals.model_dump(),
        "progress": [
            {
                "name": p.name,
                "current": round(p.current, 1),
                "target": p.target,
                "unit": p.unit,
                "percent": round(p.percent, 1),
            }
            for p in progress
        ],
        "foods": [_record_dict(r) for r in state.daily_log],
        "error": state.error,
    }


def _result(state: AppState, **extra: Any) -> dict:
    result: dict[str, Any] = dict(extra)
    if state.error:
        result["error"] = state.error
    return result


# ==================== Settings Tools ====================


@mcp.tool()
async def set_api_key(api_key: str) -> str:
    """Set the Gemini API key used for this session's AI requests.

    The key is kept in memory only and sent nowhere but the Gemini endpoint.

    Args:
        api_key: Google AI Studio API key
    """
    session = await get_session()
    session.dispatch(transitions.set_api_key, api_key)
    return "API key set." if session.state.api_key else "API key cleared."


@mcp.tool()
async def update_profile(
    age: int | None = None,
    gender: str | None = None,
    height_cm: float | None = None,
    weight_kg: float | None = None,
    activity_level: str | None = None,
    goal: str | None = None,
) -> dict:
    """Update profile fields. Each change is saved immediately.

    Args:
        age: Age in years
        gender: female or male
        height_cm: Height in centimetres
        weight_kg: Weight in kilograms
        activity_level: sedentary, light, moderate, active or very_active
        goal: lose, maintain or gain

    Returns:
        Updated profile and BMI
    """
    session = await get_profile_session()
    changes = {
        "age": age,
        "gender": gender,
        "height_cm": height_cm,
        "weight_kg": weight_kg,
        "activity_level": activity_level,
        "goal": goal,
    }
    try:
        for field, value in changes.items():
            if value is not None:
                session.dispatch(transitions.change_profile_field, field, value)
    except ValueError as e:
        return {"error": str(e)}

    state = await session.drain()
    return _result(
        state,
        profile=state.profile.model_dump(mode="json"),
        bmi=state.bmi,
        can_generate_goals=can_generate_goals(state.profile),
    )


@mcp.tool()
async def set_goals(
    calories: int | None = None,
    protein: int | None = None,
    carbs: int | None = None,
    fat: int | None = None,
) -> dict:
    """Set daily macro targets by hand. Only provided fields change.

    Args:
        calories: Daily calorie target
        protein: Daily protein target in grams
        carbs: Daily carbohydrate target in grams
        fat: Daily fat target in grams

    Returns:
        The goals now in effect
    """
    session = await get_profile_session()
    for field, value in {"calories": calories, "protein": protein, "carbs": carbs, "fat": fat}.items():
        if value is not None:
            session.dispatch(transitions.change_goal_field, field, value)

    state = await session.drain()
    return _result(state, goals=state.goals.model_dump())


@mcp.tool()
async def generate_goals() -> dict:
    """Ask the AI for daily macro targets based on the saved profile.

    Requires age, height and weight in the profile.

    Returns:
        The new goals, or an error
    """
    session = await get_profile_session()
    if session.state.profile_unavailable:
        return {"error": PROFILE_UNAVAILABLE_MESSAGE}
    if not can_generate_goals(session.state.profile):
        return {"error": "Set age, height_cm and weight_kg with update_profile first."}

    session.dispatch(transitions.start_goal_generation)
    state = await session.drain()
    return _result(state, goals=state.goals.model_dump())


# ==================== Logging Tools ====================


@mcp.tool()
async def analyze_food(description: str) -> dict:
    """Estimate nutrients for a food description. Nothing is logged yet.

    Args:
        description: e.g. "1 cup of rice", "2 slices of wholemeal bread"

    Returns:
        The estimate (call add_to_log to keep it), or an error
    """
    session = await get_session()
    if session.state.is_analyzing:
        return {"error": ANALYSIS_IN_PROGRESS_MESSAGE, "estimate": None}

    session.dispatch(transitions.navigate, Section.CALCULATOR)
    session.dispatch(transitions.start_estimate, description)
    state = await session.drain()

    if state.estimate is None:
        return _result(state, estimate=None)
    return _result(state, estimate=_record_dict(state.estimate))


@mcp.tool()
async def add_to_log() -> dict:
    """Log the current estimate to today's food log.

    Returns:
        Confirmation and the refreshed overview
    """
    session = await get_session()
    if session.state.estimate is None:
        return {"error": "No estimate to log. Use analyze_food first."}

    name = session.state.estimate.food_name
    session.dispatch(transitions.add_estimate_to_log)
    state = await session.drain()
    return _result(state, logged=name, overview=_overview(state))


@mcp.tool()
async def discard_estimate() -> str:
    """Throw away the current estimate without logging it."""
    session = await get_session()
    session.dispatch(transitions.discard_estimate)
    return "Estimate discarded."


@mcp.tool()
async def edit_food(
    entry_id: str,
    food_name: str | None = None,
    portion_size: str | None = None,
    calories: float | None = None,
    protein: float | None = None,
    carbohydrates: float | None = None,
    fat: float | None = None,
    fiber: float | None = None,
    sugar: float | None = None,
    sodium: float | None = None,
    vitamin_c: float | None = None,
    calcium: float | None = None,
    iron: float | None = None,
) -> dict:
    """Edit a logged food. The whole entry is rewritten with the new values.

    Args:
        entry_id: ID of the entry (see get_overview)
        food_name..iron: New values; omitted fields keep their current value

    Returns:
        The saved entry, or an error
    """
    session = await get_session()
    session.dispatch(transitions.open_editor, entry_id)
    if session.state.editor is None:
        return {"error": "Entry not found."}

    edits = {
        "food_name": food_name,
        "portion_size": portion_size,
        "calories": calories,
        "protein": protein,
        "carbohydrates": carbohydrates,
        "fat": fat,
        "fiber": fiber,
        "sugar": sugar,
        "sodium": sodium,
        "vitamin_c": vitamin_c,
        "calcium": calcium,
        "iron": iron,
    }
    for field, value in edits.items():
        if value is not None:
            session.dispatch(transitions.edit_draft_field, field, value)

    draft = session.state.editor.draft
    session.dispatch(transitions.save_draft)
    state = await session.drain()
    return _result(state, entry=_record_dict(draft))


@mcp.tool()
async def delete_food(entry_id: str, confirm: bool = False) -> dict:
    """Delete a logged food. This cannot be undone.

    Args:
        entry_id: ID of the entry to delete
        confirm: Must be true; otherwise nothing is deleted

    Returns:
        Confirmation, or an explanation of why nothing was deleted
    """
    session = await get_session()
    session.dispatch(transitions.open_editor, entry_id)
    if session.state.editor is None:
        return {"error": "Entry not found."}

    session.dispatch(transitions.request_delete)
    session.dispatch(transitions.confirm_delete, confirm)
    if session.state.editor is not None:
        session.dispatch(transitions.close_editor)
        return {"deleted": False, "message": "Deletion not confirmed. Call again with confirm=true."}

    state = await session.drain()
    return _result(state, deleted=True)


# ==================== Query Tools ====================


@mcp.tool()
async def get_overview() -> dict:
    """Today's totals, progress against goals, BMI and logged foods.

    Returns:
        Dictionary with bmi, goals, totals, progress percentages and foods
    """
    session = await get_session()
    return _overview(session.state)


@mcp.tool()
async def export_overview() -> str:
    """Export the overview as CSV text (BMI, macro totals vs. goals, foods)."""
    session = await get_session()
    return session.export_csv()


# ==================== Coach Tools ====================


@mcp.tool()
async def ask_coach(message: str) -> dict:
    """Ask the AI health coach for workout or diet advice.

    Args:
        message: The question or request

    Returns:
        The coach's reply and the conversation so far
    """
    session = await get_session()
    session.dispatch(coach_transitions.open_coach)
    session.dispatch(coach_transitions.send_coach_message, message)
    state = await session.drain()

    messages = [m.model_dump() for m in state.coach.messages]
    reply = messages[-1]["text"] if messages and messages[-1]["sender"] == "ai" else None
    return {"reply": reply, "messages": messages}


# ==================== Session Tools ====================


@mcp.tool()
async def logout() -> str:
    """End the session: stop the live log feed and forget the API key."""
    if get_registry().end(get_user_id()):
        return "Logged out."
    return "No active session."
