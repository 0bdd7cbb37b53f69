"""AI Coach - pure transitions for the health-coach conversation."""

from .effects import RequestCoachReply
from .errors import COACH_FAILED_MESSAGE, MISSING_API_KEY_MESSAGE
from .models import ChatMessage
from .prompts import coach_greeting, coach_system_prompt
from .state import AppState, Transition


USER = "user"
AI = "ai"


def open_coach(state: AppState) -> Transition:
    """Open the chat window, greeting the user the first time."""
    coach = state.coach
    update = {"is_open": True}
    if not coach.messages:
        update["messages"] = (ChatMessage(sender=AI, text=coach_greeting(state.bmi)),)
    return state.model_copy(update={"coach": coach.model_copy(update=update)}), []


def close_coach(state: AppState) -> Transition:
    return state.model_copy(
        update={"coach": state.coach.model_copy(update={"is_open": False})}
    ), []


def send_coach_message(state: AppState, text: str) -> Transition:
    """Append the user's message and ask the coach for a reply.

    Blank messages and messages sent while a reply is pending are ignored.
    """
    coach = state.coach
    if not text.strip() or coach.is_loading or state.user_id is None:
        return state, []

    history = coach.messages
    user_message = ChatMessage(sender=USER, text=text)

    if not state.api_key:
        messages = history + (user_message, ChatMessage(sender=AI, text=MISSING_API_KEY_MESSAGE))
        return state.model_copy(
            update={"coach": coach.model_copy(update={"messages": messages, "is_open": True})}
        ), []

    token = state.next_token()
    new_coach = coach.model_copy(
        update={
            "is_open": True,
            "messages": history + (user_message,),
            "is_loading": True,
            "pending": token,
        }
    )
    effect = RequestCoachReply(
        token=token,
        history=history,
        message=text,
        system_prompt=coach_system_prompt(state.profile, state.bmi),
        api_key=state.api_key,
    )
    return state.model_copy(update={"coach": new_coach, "request_seq": token}), [effect]


def _finish(state: AppState, token: int, reply: str) -> Transition:
    coach = state.coach
    if coach.pending != token:
        return state, []
    new_coach = coach.model_copy(
        update={
            "messages": coach.messages + (ChatMessage(sender=AI, text=reply),),
            "is_loading": False,
            "pending": None,
        }
    )
    return state.model_copy(update={"coach": new_coach}), []


def coach_replied(state: AppState, token: int, reply: str) -> Transition:
    return _finish(state, token, reply)


def coach_failed(state: AppState, token: int) -> Transition:
    return _finish(state, token, COACH_FAILED_MESSAGE)
