# quiz/store.py
# ----------------------------------------
# Progress Store Adapter
#   catalog_progress : one row per (user, catalog, question)
#   catalog_rollups  : one row per (user, catalog)
# ----------------------------------------

import logging
from typing import Callable, Dict, Optional

from quiz.errors import NotAuthenticated, StoreUnavailable
from quiz.models import CatalogRollup, Progress, utcnow

logger = logging.getLogger("haftify.store")

PROGRESS_TABLE = "catalog_progress"
ROLLUP_TABLE = "catalog_rollups"


def _require_user(user_id: Optional[str]):
    if not user_id:
        raise NotAuthenticated()


class ProgressStore:
    """Operations the quiz core needs from persistent storage."""

    def load_catalog_progress(self, user_id: str, catalog_id: str) -> Dict[str, Progress]:
        raise NotImplementedError

    def save_progress(self, user_id: str, catalog_id: str, record: Progress) -> None:
        raise NotImplementedError

    def reset_progress(self, user_id: str, catalog_id: str) -> None:
        raise NotImplementedError

    def update_catalog_rollup(self, user_id: str, catalog_id: str, rollup: CatalogRollup) -> None:
        raise NotImplementedError

    def load_rollups(self, user_id: str) -> Dict[str, CatalogRollup]:
        raise NotImplementedError


class SupabaseProgressStore(ProgressStore):
    def __init__(self, client_factory: Callable):
        self._client_factory = client_factory

    def _table(self, name: str):
        return self._client_factory().table(name)

    def _run(self, operation: str, user_id: str, call):
        try:
            return call()
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error("💥 [STORE] %s failed for user=%s: %s", operation, user_id, e)
            raise StoreUnavailable(operation, str(e)) from e

    # ───────────────────────────────────────────
    # READS
    # ───────────────────────────────────────────
    def load_catalog_progress(self, user_id, catalog_id):
        _require_user(user_id)

        res = self._run("load_catalog_progress", user_id, lambda: (
            self._table(PROGRESS_TABLE)
            .select("question_id, is_correct, selected_answers, attempted_at")
            .eq("user_id", user_id)
            .eq("catalog_id", catalog_id)
            .execute()
        ))

        progress = {}
        for row in res.data or []:
            record = Progress(
                question_id=row["question_id"],
                is_correct=bool(row["is_correct"]),
                selected_answers=row.get("selected_answers") or [],
                attempted_at=row.get("attempted_at") or utcnow(),
            )
            progress[record.question_id] = record

        logger.debug("[STORE] loaded %d progress rows user=%s catalog=%s", len(progress), user_id, catalog_id)
        return progress

    def load_rollups(self, user_id):
        _require_user(user_id)

        res = self._run("load_rollups", user_id, lambda: (
            self._table(ROLLUP_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .execute()
        ))

        return {
            row["catalog_id"]: CatalogRollup(
                earned_points=row.get("earned_points") or 0,
                total_points=row.get("total_points") or 0,
                correct_answers=row.get("correct_answers") or 0,
                total_questions=row.get("total_questions") or 0,
                last_attempted_at=row.get("last_attempted_at"),
            )
            for row in res.data or []
        }

    # ───────────────────────────────────────────
    # WRITES
    # ───────────────────────────────────────────
    def save_progress(self, user_id, catalog_id, record):
        _require_user(user_id)

        payload = {
            "user_id": user_id,
            "catalog_id": catalog_id,
            "question_id": record.question_id,
            "is_correct": record.is_correct,
            "selected_answers": record.selected_answers,
            "attempted_at": record.attempted_at.isoformat(),
        }

        # overwrite, never append: one row per question
        self._run("save_progress", user_id, lambda: (
            self._table(PROGRESS_TABLE)
            .upsert(payload, on_conflict="user_id,catalog_id,question_id")
            .execute()
        ))

    def reset_progress(self, user_id, catalog_id):
        _require_user(user_id)

        self._run("reset_progress", user_id, lambda: (
            self._table(PROGRESS_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("catalog_id", catalog_id)
            .execute()
        ))
        self.update_catalog_rollup(user_id, catalog_id, CatalogRollup(last_attempted_at=utcnow()))
        logger.info("🧹 [STORE] progress reset user=%s catalog=%s", user_id, catalog_id)

    def update_catalog_rollup(self, user_id, catalog_id, rollup):
        _require_user(user_id)

        payload = {
            "user_id": user_id,
            "catalog_id": catalog_id,
            "earned_points": rollup.earned_points,
            "total_points": rollup.total_points,
            "correct_answers": rollup.correct_answers,
            "total_questions": rollup.total_questions,
            "last_attempted_at": (rollup.last_attempted_at or utcnow()).isoformat(),
        }

        self._run("update_catalog_rollup", user_id, lambda: (
            self._table(ROLLUP_TABLE)
            .upsert(payload, on_conflict="user_id,catalog_id")
            .execute()
        ))
