"""Authentication - API key generation and validation.

Handles API key creation, hashing, and validation. Never stores plaintext keys.
"""

import hashlib
import logging
import secrets
from datetime import datetime

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..core.errors import EmailAlreadyRegisteredError, InvalidCredentialError
from ..core.models import Goals, Profile, User


logger = logging.getLogger(__name__)

# API key prefix for identification
API_KEY_PREFIX = "ncx_"

# One document per registered email, keyed by the normalized address
EMAIL_INDEX_COLLECTION = "users_by_email"


def generate_api_key() -> str:
    """Generate a cryptographically secure API key.

    Returns:
        API key in format: ncx_<random_chars>
    """
    random_part = secrets.token_urlsafe(32)
    return f"{API_KEY_PREFIX}{random_part}"


def hash_api_key(api_key: str) -> str:
    """Hash an API key to create a user_id.

    Uses SHA256 and truncates to 32 chars for Firestore document ID.
    Never store plaintext API keys.

    Args:
        api_key: The plaintext API key

    Returns:
        32-character hash to use as user_id
    """
    return hashlib.sha256(api_key.encode()).hexdigest()[:32]


def validate_api_key_format(api_key: str) -> bool:
    """Check if API key has valid format.

    Args:
        api_key: The API key to validate

    Returns:
        True if format is valid
    """
    if not api_key:
        return False
    if not api_key.startswith(API_KEY_PREFIX):
        return False
    if len(api_key) < 40:  # prefix + at least some random chars
        return False
    return True


class AuthClient:
    """Client for API key authentication operations.

    Handles user registration and API key validation against Firestore.
    """

    def __init__(self, db: firestore.Client) -> None:
        """Initialize auth client.

        Args:
            db: Firestore client instance
        """
        self._db = db

    def _get_user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self._db.collection("users").document(user_id)

    def email_registered(self, email: str) -> bool:
        """Check whether any user document already carries this email."""
        query = (
            self._db.collection("users")
            .where(filter=FieldFilter("email", "==", email.strip().lower()))
            .limit(1)
        )
        return any(True for _ in query.stream())

    def register_user(self, email: str) -> tuple[str, str]:
        """Register a new user and generate their API key.

        The user document (with default profile and goals) and the email
        claim are committed in one batch. The claim uses create(), so a second
        registration racing for the same email fails as a whole.

        Args:
            email: User's email address

        Returns:
            Tuple of (api_key, user_id) - api_key is only returned once!

        Raises:
            EmailAlreadyRegisteredError: An account with this email exists
        """
        email = email.strip().lower()
        logger.info("Registering new user: %s", email)

        if self.email_registered(email):
            logger.warning("Registration rejected, email already in use")
            raise EmailAlreadyRegisteredError(email)

        api_key = generate_api_key()
        user_id = hash_api_key(api_key)

        user = User(
            email=email,
            api_key_hash=user_id,
            created_at=datetime.utcnow(),
            profile=Profile(),
            goals=Goals(),
        )

        data = user.model_dump(mode="json")
        data["created_at"] = user.created_at

        batch = self._db.batch()
        batch.create(
            self._db.collection(EMAIL_INDEX_COLLECTION).document(email),
            {"user_id": user_id, "created_at": user.created_at},
        )
        batch.set(self._get_user_ref(user_id), data)
        try:
            batch.commit()
        except AlreadyExists as e:
            logger.warning("Registration rejected, email claimed concurrently")
            raise EmailAlreadyRegisteredError(email) from e

        logger.info("User registered successfully: %s", user_id[:8])
        return api_key, user_id

    def validate_api_key(self, api_key: str) -> str | None:
        """Validate an API key and return the user_id if valid.

        Args:
            api_key: The API key to validate

        Returns:
            user_id if valid, None if invalid
        """
        if not validate_api_key_format(api_key):
            logger.warning("Invalid API key format")
            return None

        user_id = hash_api_key(api_key)

        try:
            user_doc = self._get_user_ref(user_id).get()
            if user_doc.exists:
                logger.debug("API key validated for user: %s", user_id[:8])
                return user_id
            else:
                logger.warning("API key not found in database")
                return None
        except Exception as e:
            logger.error("Error validating API key: %s", str(e))
            return None

    def authenticate(self, api_key: str) -> str:
        """Like validate_api_key, but raise for an unknown key.

        Raises:
            InvalidCredentialError: Key is malformed or not registered
        """
        user_id = self.validate_api_key(api_key)
        if user_id is None:
            raise InvalidCredentialError("Unknown API key")
        return user_id

    def user_exists(self, user_id: str) -> bool:
        """Check if a user exists.

        Args:
            user_id: The user's ID

        Returns:
            True if user exists
        """
        try:
            return self._get_user_ref(user_id).get().exists
        except Exception:
            return False
