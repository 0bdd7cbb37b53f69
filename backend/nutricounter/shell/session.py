"""Nutrition Session - runs the pure state machine against real I/O.

A session exists for one signed-in user. It owns the AppState, the live log
subscription and the tasks running effects. All transitions are applied on
the event loop thread, one at a time.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from ..core import state as transitions
from ..core.coach import coach_failed, coach_replied
from ..core.effects import (
    AddRecord,
    CloseSubscription,
    DeleteRecord,
    Effect,
    EstimateNutrition,
    GenerateGoals,
    PersistProfileAndGoals,
    ReplaceRecord,
    RequestCoachReply,
)
from ..core.errors import (
    ANALYSIS_FAILED_MESSAGE,
    GOALS_FAILED_MESSAGE,
    PARSE_FAILED_MESSAGE,
    InferenceError,
    ResponseParseError,
    StoreReadError,
)
from ..core.models import Goals, NutrientRecord, Profile
from ..core.reports import build_export_rows, render_csv
from ..core.state import AppState, Transition
from .firestore_client import NutriCounterFirestoreClient
from .gemini_client import GeminiClient
from .inference import coach_reply, estimate_nutrition, recommend_goals
from .sync import LogSubscription


logger = logging.getLogger(__name__)


class NutritionSession:
    """State, subscription and effect runner for one user."""

    def __init__(
        self,
        user_id: str,
        db: NutriCounterFirestoreClient,
        inference: GeminiClient,
        api_key: str = "",
        request_seq: int = 0,
        snapshot_timeout: float = 10.0,
    ) -> None:
        self._user_id = user_id
        self._db = db
        self._inference = inference
        self._snapshot_timeout = snapshot_timeout
        self._state = transitions.start_session(user_id, api_key, request_seq)
        self._subscription: Optional[LogSubscription] = None
        self._tasks: set[asyncio.Task] = set()
        self._log_ready = False
        self._snapshot_count = 0
        self._log_changed = asyncio.Event()

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def subscription(self) -> Optional[LogSubscription]:
        return self._subscription

    # ==================== Lifecycle ====================

    async def start(self) -> AppState:
        """Load profile and goals, open the live food log and wait for its first snapshot.

        If neither a snapshot nor a listener error arrives within the snapshot
        timeout the log is reported unavailable. A snapshot that turns up
        later still replaces it.
        """
        await self.reload_profile()

        self._subscription = LogSubscription(
            self._db,
            self._user_id,
            on_snapshot=self._on_snapshot,
            on_error=self._on_subscription_error,
        )
        self._subscription.open(asyncio.get_running_loop())
        if not await self._wait_for_log(lambda: self._log_ready):
            logger.warning(
                "No food log snapshot for %s after %.1fs", self._user_id[:8], self._snapshot_timeout
            )
            self.dispatch(transitions.snapshot_failed)
        return self._state

    async def reload_profile(self) -> AppState:
        """Read profile and goals from the store.

        A missing user document leaves the defaults in place. A failed read
        marks the profile unavailable, which blocks profile and goal writes.
        """
        try:
            loaded = await asyncio.to_thread(self._db.get_profile_and_goals, self._user_id)
        except StoreReadError:
            return self.dispatch(transitions.profile_load_failed)
        if loaded is None:
            return self.dispatch(transitions.profile_loaded, Profile(), Goals())
        profile, goals = loaded
        return self.dispatch(transitions.profile_loaded, profile, goals)

    def logout(self) -> AppState:
        """Sign out: the subscription is closed before this returns."""
        logger.info("Logging out user: %s", self._user_id[:8])
        return self.dispatch(transitions.logout)

    async def drain(self) -> AppState:
        """Wait until every running effect (and any effects they trigger) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self._state

    # ==================== Dispatch ====================

    def dispatch(self, transition: Callable[..., Transition], *args: Any) -> AppState:
        """Apply a transition and start the effects it returns."""
        self._state, effects = transition(self._state, *args)
        for effect in effects:
            self._run(effect)
        return self._state

    def _run(self, effect: Effect) -> None:
        if isinstance(effect, CloseSubscription):
            if self._subscription is not None:
                self._subscription.close()
            return

        task = asyncio.get_running_loop().create_task(self._execute(effect))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Effect failed unexpectedly: %s", task.exception())

    def _on_snapshot(self, records: list[NutrientRecord]) -> None:
        logger.debug("Food log snapshot for %s: %d entries", self._user_id[:8], len(records))
        self._log_ready = True
        self._snapshot_count += 1
        self.dispatch(transitions.apply_snapshot, records)
        self._log_changed.set()

    def _on_subscription_error(self, error: Exception) -> None:
        self._log_ready = True
        self.dispatch(transitions.snapshot_failed)
        self._log_changed.set()

    def _log_live(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def _wait_for_log(self, ready: Callable[[], bool]) -> bool:
        """Wait until ``ready()`` holds, re-checking after every snapshot.

        Returns False if the snapshot timeout runs out first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._snapshot_timeout
        while not ready():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            self._log_changed.clear()
            try:
                await asyncio.wait_for(self._log_changed.wait(), remaining)
            except asyncio.TimeoutError:
                return False
        return True

    async def _await_write(self, description: str, reflected: Callable[[], bool]) -> None:
        """Hold the effect open until the live log shows the write."""
        done = await self._wait_for_log(lambda: not self._log_live() or reflected())
        if not done:
            logger.warning("Food log for %s has not caught up with %s", self._user_id[:8], description)

    # ==================== Effects ====================

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, PersistProfileAndGoals):
            ok = await asyncio.to_thread(
                self._db.save_profile_and_goals, self._user_id, effect.profile, effect.goals
            )
            if not ok:
                self.dispatch(transitions.store_write_failed)

        elif isinstance(effect, AddRecord):
            record_id = await asyncio.to_thread(self._db.add_record, self._user_id, effect.record)
            if record_id is None:
                self.dispatch(transitions.store_write_failed)
            else:
                await self._await_write(
                    f"add {record_id}",
                    lambda: any(r.id == record_id for r in self._state.daily_log),
                )

        elif isinstance(effect, ReplaceRecord):
            seen = self._snapshot_count
            ok = await asyncio.to_thread(self._db.replace_record, self._user_id, effect.record)
            if not ok:
                self.dispatch(transitions.store_write_failed)
            else:
                await self._await_write(
                    f"edit {effect.record.id}", lambda: self._snapshot_count > seen
                )

        elif isinstance(effect, DeleteRecord):
            ok = await asyncio.to_thread(self._db.delete_record, self._user_id, effect.record_id)
            if not ok:
                self.dispatch(transitions.store_write_failed)
            else:
                await self._await_write(
                    f"delete {effect.record_id}",
                    lambda: all(r.id != effect.record_id for r in self._state.daily_log),
                )

        elif isinstance(effect, EstimateNutrition):
            await self._estimate(effect)

        elif isinstance(effect, GenerateGoals):
            await self._generate_goals(effect)

        elif isinstance(effect, RequestCoachReply):
            await self._coach(effect)

        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    async def _estimate(self, effect: EstimateNutrition) -> None:
        try:
            record = await estimate_nutrition(self._inference, effect.api_key, effect.food_description)
        except ResponseParseError as e:
            logger.warning("Could not parse nutrition estimate: %s", str(e))
            self.dispatch(transitions.estimate_failed, effect.token, PARSE_FAILED_MESSAGE)
        except InferenceError as e:
            logger.error("Nutrition estimate failed: %s", str(e))
            self.dispatch(transitions.estimate_failed, effect.token, ANALYSIS_FAILED_MESSAGE)
        else:
            self.dispatch(transitions.estimate_succeeded, effect.token, record)

    async def _generate_goals(self, effect: GenerateGoals) -> None:
        try:
            goals = await recommend_goals(self._inference, effect.api_key, effect.profile)
        except ResponseParseError as e:
            logger.warning("Could not parse goal recommendation: %s", str(e))
            self.dispatch(transitions.goal_generation_failed, effect.token, GOALS_FAILED_MESSAGE)
        except InferenceError as e:
            logger.error("Goal generation failed: %s", str(e))
            self.dispatch(transitions.goal_generation_failed, effect.token, GOALS_FAILED_MESSAGE)
        else:
            self.dispatch(transitions.goals_generated, effect.token, goals)

    async def _coach(self, effect: RequestCoachReply) -> None:
        try:
            reply = await coach_reply(
                self._inference,
                effect.api_key,
                effect.history,
                effect.message,
                effect.system_prompt,
            )
        except InferenceError as e:
            logger.error("Coach request failed: %s", str(e))
            self.dispatch(coach_failed, effect.token)
        else:
            self.dispatch(coach_replied, effect.token, reply)

    # ==================== Views ====================

    def export_csv(self) -> str:
        state = self._state
        return render_csv(build_export_rows(state.bmi, state.goals, state.daily_log))


class SessionRegistry:
    """Live sessions keyed by user ID, one per signed-in user."""

    def __init__(
        self,
        db_factory: Callable[[], NutriCounterFirestoreClient],
        inference_factory: Callable[[], GeminiClient],
        default_api_key: str = "",
        snapshot_timeout: float = 10.0,
    ) -> None:
        self._db_factory = db_factory
        self._inference_factory = inference_factory
        self._default_api_key = default_api_key
        self._snapshot_timeout = snapshot_timeout
        self._sessions: dict[str, NutritionSession] = {}
        self._lock = asyncio.Lock()
        self._request_seq = 0

    def get(self, user_id: str) -> Optional[NutritionSession]:
        return self._sessions.get(user_id)

    async def get_or_start(self, user_id: str) -> NutritionSession:
        """Return the user's session, starting one on first use."""
        async with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = NutritionSession(
                    user_id,
                    self._db_factory(),
                    self._inference_factory(),
                    api_key=self._default_api_key,
                    request_seq=self._request_seq,
                    snapshot_timeout=self._snapshot_timeout,
                )
                await session.start()
                self._sessions[user_id] = session
                logger.info("Started session for user: %s", user_id[:8])
            return session

    def end(self, user_id: str) -> bool:
        """Log the user out and forget their session."""
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        state = session.logout()
        self._request_seq = max(self._request_seq, state.request_seq)
        return True

    def end_all(self) -> int:
        """Log out every session, closing their listeners. Returns how many ended."""
        user_ids = list(self._sessions)
        for user_id in user_ids:
            self.end(user_id)
        return len(user_ids)
