# quiz/effects.py
# ----------------------------------------
# Side effects requested by the navigation engine
# and the executor that performs them.
# ----------------------------------------

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from quiz.errors import StoreUnavailable
from quiz.models import CatalogRollup, Progress
from quiz.session import QuizSession

logger = logging.getLogger("haftify.effects")


@dataclass(frozen=True)
class SaveProgress:
    catalog_id: str
    record: Progress


@dataclass(frozen=True)
class UpdateRollup:
    catalog_id: str
    rollup: CatalogRollup


@dataclass(frozen=True)
class ResetProgress:
    catalog_id: str


@dataclass(frozen=True)
class StopTimer:
    pass


@dataclass(frozen=True)
class Broadcast:
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)


STORE_EFFECTS = (SaveProgress, UpdateRollup, ResetProgress)


class EffectExecutor:
    """
    Runs effects in order against the progress store.

    Store failures never abort the user's flow: the failed write is queued on
    the session, the session is flagged unsynced and a warning is returned
    for the UI banner. retry_unsynced() replays the queue.
    """

    def __init__(self, store, broadcaster: Optional[Callable[[str, str, dict], Any]] = None):
        self.store = store
        self.broadcaster = broadcaster

    def run(self, session: QuizSession, effects: List[Any]) -> List[str]:
        warnings = []

        for effect in effects:
            if isinstance(effect, ResetProgress):
                self._drop_queued(session, effect.catalog_id)

            # keep write order: once something is queued, later writes queue behind it
            if session.pending_effects and isinstance(effect, STORE_EFFECTS):
                session.pending_effects.append(effect)
                continue

            try:
                self._perform(session, effect)
            except StoreUnavailable as e:
                logger.error("💥 [EFFECTS] %s failed for user=%s: %s", type(effect).__name__, session.user_id, e)
                session.pending_effects.append(effect)
                session.unsynced = True
                warnings.append("Fortschritt konnte nicht gespeichert werden und wird erneut gesendet.")

        if session.pending_effects:
            session.unsynced = True

        return list(dict.fromkeys(warnings))

    def retry_unsynced(self, session: QuizSession) -> bool:
        queued, session.pending_effects = session.pending_effects, []
        session.unsynced = False

        for index, effect in enumerate(queued):
            try:
                self._perform(session, effect)
            except StoreUnavailable as e:
                logger.warning("⚠️ [EFFECTS] retry still failing for user=%s: %s", session.user_id, e)
                session.pending_effects = queued[index:]
                session.unsynced = True
                return False

        logger.info("[EFFECTS] replayed %d queued writes for user=%s", len(queued), session.user_id)
        return True

    def _perform(self, session: QuizSession, effect):
        if isinstance(effect, SaveProgress):
            self.store.save_progress(session.user_id, effect.catalog_id, effect.record)
        elif isinstance(effect, UpdateRollup):
            self.store.update_catalog_rollup(session.user_id, effect.catalog_id, effect.rollup)
        elif isinstance(effect, ResetProgress):
            self.store.reset_progress(session.user_id, effect.catalog_id)
        elif isinstance(effect, StopTimer):
            session.stopwatch.pause()
        elif isinstance(effect, Broadcast):
            if self.broadcaster is not None:
                self.broadcaster(session.user_id, effect.event, effect.payload)
        else:
            raise TypeError(f"Unknown effect {effect!r}")

    @staticmethod
    def _drop_queued(session: QuizSession, catalog_id: str):
        before = len(session.pending_effects)
        session.pending_effects = [
            e for e in session.pending_effects
            if getattr(e, "catalog_id", None) != catalog_id
        ]
        if before != len(session.pending_effects):
            logger.info("[EFFECTS] dropped %d queued writes superseded by reset", before - len(session.pending_effects))
        if not session.pending_effects:
            session.unsynced = False
