# quiz/session.py
# ----------------------------------------
# Per-browser-session quiz state.
# In-memory, one session per open catalog.
# ----------------------------------------

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import ConfigDict

from quiz.catalog import get_category, get_module
from quiz.filters import FilterMode, filter_mode, filtered_questions
from quiz.models import CamelModel, Catalog, Category, Module, Progress, Question

ProgressBarType = Literal["catalog", "module", "category"]


class DisplaySettings(CamelModel):
    model_config = ConfigDict(extra="forbid")

    show_only_wrong_answers: bool = False
    progress_bar_type: ProgressBarType = "catalog"


class Phase(str, Enum):
    BROWSING = "browsing"
    MODULE_COMPLETE = "module_complete"
    CATALOG_COMPLETE = "catalog_complete"
    REPEAT_OPTIONS = "repeat_options"


class ModuleNotice(CamelModel):
    module_title: str
    total_questions: int
    wrong_answers: int


class CatalogCompletion(CamelModel):
    total_questions: int
    correct_answers: int
    wrong_answers: int
    earned_points: float
    total_points: float
    completion_time: int


# -------------------------------------------------
# Stopwatch
# -------------------------------------------------

class Stopwatch:
    """
    Elapsed study time in whole seconds.

    Time is read from the clock instead of a background tick, so a paused
    or abandoned session never leaves a timer running.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._accumulated = 0.0
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> int:
        total = self._accumulated
        if self._started_at is not None:
            total += self._clock() - self._started_at
        return int(total)

    def start(self):
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self):
        if self._started_at is not None:
            self._accumulated += self._clock() - self._started_at
            self._started_at = None

    def reset(self):
        self._accumulated = 0.0
        self._started_at = None


def format_elapsed(seconds: int) -> str:
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


# -------------------------------------------------
# Session
# -------------------------------------------------

@dataclass
class QuizSession:
    user_id: str
    catalog: Catalog
    email_verified: bool = False
    session_id: str = field(default_factory=lambda: str(uuid4()))

    # position: stable ids, the index into the filtered list is derived
    module_id: str = ""
    category_id: str = ""
    question_id: Optional[str] = None

    selected_answers: List[str] = field(default_factory=list)
    is_answered: bool = False

    phase: Phase = Phase.BROWSING
    module_notice: Optional[ModuleNotice] = None
    completion: Optional[CatalogCompletion] = None

    progress: Dict[str, Progress] = field(default_factory=dict)
    settings: DisplaySettings = field(default_factory=DisplaySettings)
    stopwatch: Stopwatch = field(default_factory=Stopwatch)

    started: bool = False
    unsynced: bool = False
    pending_effects: List[Any] = field(default_factory=list)

    def __post_init__(self):
        if not self.module_id:
            first = self.catalog.modules[0]
            self.module_id = first.id
            self.category_id = first.categories[0].id
            self.question_id = first.categories[0].questions[0].id if first.categories[0].questions else None

    @property
    def module(self) -> Module:
        return get_module(self.catalog, self.module_id)

    @property
    def category(self) -> Category:
        return get_category(self.module, self.category_id)

    @property
    def mode(self) -> FilterMode:
        return filter_mode(self.settings.show_only_wrong_answers)

    def filtered_questions(self) -> List[Question]:
        return filtered_questions(self.category, self.progress, self.mode, keep_question_id=self.question_id)

    @property
    def current_question(self) -> Optional[Question]:
        if self.question_id is None:
            return None
        return next((q for q in self.filtered_questions() if q.id == self.question_id), None)

    @property
    def current_index(self) -> Optional[int]:
        """Index of the current question inside the active filtered list."""
        for i, q in enumerate(self.filtered_questions()):
            if q.id == self.question_id:
                return i
        return None

    def move_to(self, module_id: str, category_id: str, question_id: Optional[str]):
        self.module_id = module_id
        self.category_id = category_id
        self.question_id = question_id
        self.reset_answer_state()

    def reset_answer_state(self):
        self.selected_answers = []
        self.is_answered = False


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, QuizSession] = {}

    def add(self, session: QuizSession) -> QuizSession:
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[QuizSession]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.stopwatch.pause()
        return True

    def close_for(self, user_id: str, catalog_id: Optional[str] = None) -> List[QuizSession]:
        """Retire the user's open sessions (optionally only for one catalog)."""
        stale = [
            s for s in self._sessions.values()
            if s.user_id == user_id and (catalog_id is None or s.catalog.id == catalog_id)
        ]
        for session in stale:
            self.close(session.session_id)
        return stale

    def __len__(self):
        return len(self._sessions)
