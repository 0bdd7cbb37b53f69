"""Error types and the fixed user-facing messages they map to."""


ANALYSIS_FAILED_MESSAGE = "Failed to analyze food. Please check your API key and try again."
PARSE_FAILED_MESSAGE = "Could not parse nutrition data from the AI response. Please try again."
MISSING_API_KEY_MESSAGE = "Please enter your Gemini API key in Settings."
GOALS_FAILED_MESSAGE = "Failed to generate goals. Please check your inputs and API key."
COACH_FAILED_MESSAGE = "I'm having trouble connecting right now. Please try again later."
LOG_UNAVAILABLE_MESSAGE = "Could not load your food log. Please try again."
PROFILE_UNAVAILABLE_MESSAGE = "Could not load your profile. Please try again."
ANALYSIS_IN_PROGRESS_MESSAGE = "An analysis is already in progress. Please wait for it to finish."
SAVE_FAILED_MESSAGE = "Could not save your changes. Please try again."

INVALID_CREDENTIAL_MESSAGE = "Invalid email or password. Please try again."
EMAIL_IN_USE_MESSAGE = "This email is already registered. Please login."
GENERIC_AUTH_MESSAGE = "An error occurred. Please try again."


class NutriCounterError(Exception):
    """Base class for all application errors."""


class InferenceError(NutriCounterError):
    """The inference service call did not produce usable text."""


class InferenceRequestError(InferenceError):
    """Network failure or non-2xx status from the inference endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseShapeError(InferenceError):
    """The inference response JSON did not contain generated text."""


class ResponseParseError(NutriCounterError):
    """Generated text held no usable JSON object."""


class StoreReadError(NutriCounterError):
    """A read from the document store failed (as opposed to finding nothing)."""


class AuthError(NutriCounterError):
    """Authentication failure."""


class InvalidCredentialError(AuthError):
    """API key is malformed or unknown."""


class EmailAlreadyRegisteredError(AuthError):
    """Registration attempted with an email that already has an account."""


def auth_error_message(error: Exception) -> str:
    """Map an authentication error to the message shown to the user."""
    if isinstance(error, InvalidCredentialError):
        return INVALID_CREDENTIAL_MESSAGE
    if isinstance(error, EmailAlreadyRegisteredError):
        return EMAIL_IN_USE_MESSAGE
    return GENERIC_AUTH_MESSAGE
