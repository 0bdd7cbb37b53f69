"""Firestore Client - Persistence for profiles, goals and food logs.

This module handles all database I/O for the counter.
All I/O is contained here; business logic is in the core module.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

from google.cloud import firestore
from pydantic import ValidationError

from ..core.errors import StoreReadError
from ..core.models import Goals, NutrientRecord, Profile


logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[NutrientRecord]], None]


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
        snapshot_timeout: Seconds to wait for the first food log snapshot
    """

    project_id: str | None = None
    database: str | None = None
    snapshot_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "FirestoreConfig":
        return cls(
            project_id=os.environ.get("GOOGLE_CLOUD_PROJECT") or None,
            database=os.environ.get("FIRESTORE_DATABASE", "nutricounter"),
            snapshot_timeout=float(os.environ.get("FIRESTORE_SNAPSHOT_TIMEOUT", "10")),
        )


def record_from_snapshot(doc: Any) -> NutrientRecord:
    """Build a NutrientRecord from a document snapshot, using the document ID."""
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return NutrientRecord(**data)


def records_from_snapshots(docs: Any) -> list[NutrientRecord]:
    """Convert documents to records, skipping any that fail validation."""
    records: list[NutrientRecord] = []
    for doc in docs:
        try:
            records.append(record_from_snapshot(doc))
        except ValidationError as e:
            logger.warning("Skipping invalid food log document %s: %s", doc.id, str(e))
    return records


class NutriCounterFirestoreClient:
    """Client for persisting user data and food logs to Firestore.

    Document structure per user:
        users/{user_id}: { email, api_key_hash, created_at, profile: {...}, goals: {...} }
            foodlogs/{auto_id}: { food_name, portion_size, calories, ..., logged_at }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _foodlogs_ref(self, user_id: str) -> firestore.CollectionReference:
        """Get reference to the user's food log collection."""
        return self._user_ref(user_id).collection("foodlogs")

    def _record_ref(self, user_id: str, record_id: str) -> firestore.DocumentReference:
        """Get reference to a single food log document."""
        return self._foodlogs_ref(user_id).document(record_id)

    # ==================== Profile / Goals Operations ====================

    def get_profile_and_goals(self, user_id: str) -> tuple[Profile, Goals] | None:
        """Fetch the profile and goals stored on the user document.

        Missing sections fall back to defaults.

        Args:
            user_id: The user's ID

        Returns:
            (Profile, Goals) if the user document exists, None otherwise

        Raises:
            StoreReadError: The document could not be read
        """
        logger.debug("Fetching profile for user: %s", user_id[:8])
        try:
            doc = self._user_ref(user_id).get()
            if not doc.exists:
                logger.warning("No user document for %s", user_id[:8])
                return None
            data = doc.to_dict() or {}
            return Profile(**(data.get("profile") or {})), Goals(**(data.get("goals") or {}))
        except Exception as e:
            logger.error("Failed to fetch profile: %s", str(e))
            raise StoreReadError(f"Failed to fetch profile: {e}") from e

    def save_profile_and_goals(self, user_id: str, profile: Profile, goals: Goals) -> bool:
        """Write profile and goals to the user document in one update.

        Args:
            user_id: The user's ID
            profile: Full current profile
            goals: Full current goals

        Returns:
            True if successful
        """
        logger.info("Saving profile and goals for user: %s", user_id[:8])
        try:
            self._user_ref(user_id).update({
                "profile": profile.model_dump(mode="json"),
                "goals": goals.model_dump(mode="json"),
            })
            return True
        except Exception as e:
            logger.error("Failed to save profile and goals: %s", str(e))
            return False

    # ==================== Food Log Operations ====================

    def add_record(self, user_id: str, record: NutrientRecord) -> str | None:
        """Append a record to the user's food log with a server timestamp.

        Args:
            user_id: The user's ID
            record: The confirmed estimate

        Returns:
            The new document ID if successful, None otherwise
        """
        logger.info("Adding food log entry for %s: %s", user_id[:8], record.food_name)
        try:
            data = record.to_document()
            data["logged_at"] = firestore.SERVER_TIMESTAMP
            _, doc_ref = self._foodlogs_ref(user_id).add(data)
            return doc_ref.id
        except Exception as e:
            logger.error("Failed to add food log entry: %s", str(e))
            return None

    def replace_record(self, user_id: str, record: NutrientRecord) -> bool:
        """Overwrite a food log document with the record's fields.

        This is a full replacement (``set`` without merge). The identifier is
        taken from the record but never written into the document body.

        Args:
            user_id: The user's ID
            record: The edited record, with its ID

        Returns:
            True if successful
        """
        if record.id is None:
            logger.warning("Cannot replace a record without an ID")
            return False

        logger.info("Replacing food log entry %s for %s", record.id, user_id[:8])
        try:
            data = record.to_document()
            if data.get("logged_at") is None:
                data.pop("logged_at", None)
            self._record_ref(user_id, record.id).set(data)
            return True
        except Exception as e:
            logger.error("Failed to replace food log entry: %s", str(e))
            return False

    def delete_record(self, user_id: str, record_id: str) -> bool:
        """Delete a food log document.

        Args:
            user_id: The user's ID
            record_id: ID of the document to delete

        Returns:
            True if successful
        """
        logger.info("Deleting food log entry %s for %s", record_id, user_id[:8])
        try:
            self._record_ref(user_id, record_id).delete()
            return True
        except Exception as e:
            logger.error("Failed to delete food log entry: %s", str(e))
            return False

    def watch_food_log(self, user_id: str, on_snapshot: SnapshotCallback) -> Any:
        """Open a live listener on the user's food log.

        ``on_snapshot`` receives the full ordered log on every change. It is
        invoked from Firestore's watch thread.

        Args:
            user_id: The user's ID
            on_snapshot: Callback receiving the ordered records

        Returns:
            The Firestore watch handle (call ``unsubscribe()`` to stop)

        Raises:
            Exception: Whatever Firestore raises if the listener cannot be opened
        """
        logger.info("Opening food log listener for %s", user_id[:8])
        query = self._foodlogs_ref(user_id).order_by(
            "logged_at", direction=firestore.Query.DESCENDING
        )

        def _callback(docs, changes, read_time) -> None:
            on_snapshot(records_from_snapshots(docs))

        return query.on_snapshot(_callback)
