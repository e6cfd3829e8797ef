# quiz/navigation.py
# ----------------------------------------
# Question navigation + completion state machine.
#
# Every transition works on the injected QuizSession and returns a
# Transition describing what happened plus the effects (store writes,
# timer stop, broadcasts) the caller must run. No I/O happens here.
# ----------------------------------------

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Literal, Optional

from quiz import catalog as tree
from quiz.effects import Broadcast, ResetProgress, SaveProgress, StopTimer, UpdateRollup
from quiz.errors import InvariantViolation, MalformedCatalogReference, NotAuthenticated
from quiz.filters import filtered_categories, filtered_questions
from quiz.models import Category
from quiz.scoring import aggregate, catalog_rollup, make_progress, percent
from quiz.session import CatalogCompletion, DisplaySettings, ModuleNotice, Phase, QuizSession

logger = logging.getLogger("haftify.navigation")

RepeatMode = Literal["restart", "wrongOnly", "reset"]

REPEAT_MODES = ("restart", "wrongOnly", "reset")


@dataclass
class Transition:
    kind: str
    payload: Optional[Any] = None
    effects: List[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = self.payload
        if hasattr(payload, "model_dump"):
            payload = payload.model_dump(by_alias=True, mode="json")
        return {"kind": self.kind, "payload": payload}


def _log(session: QuizSession, transition: Transition) -> Transition:
    logger.debug(
        "[NAV] session=%s kind=%s module=%s category=%s question=%s phase=%s",
        session.session_id,
        transition.kind,
        session.module_id,
        session.category_id,
        session.question_id,
        session.phase.value,
    )
    return transition


def _first_in_category(session: QuizSession, category: Category) -> Optional[str]:
    questions = filtered_questions(category, session.progress, session.mode)
    return questions[0].id if questions else None


def _clear_overlays(session: QuizSession):
    session.phase = Phase.BROWSING
    session.module_notice = None
    session.completion = None


# ───────────────────────────────────────────────
# ENTRY + USER NAVIGATION
# ───────────────────────────────────────────────
def start(session: QuizSession, resume: bool = True) -> Transition:
    """First load of a catalog: resume at the first unanswered question."""
    if session.started:
        return _log(session, Transition("resumed"))

    session.started = True
    if resume:
        target = tree.first_unanswered(session.catalog, session.progress)
        if target:
            session.move_to(*target)

    return _log(session, Transition("started"))


def select_module(session: QuizSession, module_id: str) -> Transition:
    module = tree.get_module(session.catalog, module_id)
    categories = filtered_categories(module, session.progress, session.mode) or module.categories
    category = categories[0]

    _clear_overlays(session)
    session.move_to(module.id, category.id, _first_in_category(session, category))
    return _log(session, Transition("moved"))


def select_category(session: QuizSession, category_id: str) -> Transition:
    category = tree.get_category(session.module, category_id)

    _clear_overlays(session)
    session.move_to(session.module_id, category.id, _first_in_category(session, category))
    return _log(session, Transition("moved"))


def select_question(session: QuizSession, question_id: str) -> Transition:
    module, category, _ = tree.locate(session.catalog, question_id)

    _clear_overlays(session)
    session.move_to(module.id, category.id, question_id)
    return _log(session, Transition("moved"))


def toggle_answer(session: QuizSession, answer_text: str) -> Transition:
    question = session.current_question
    if question is None:
        raise InvariantViolation("No question matches the active filter")

    if session.is_answered:
        return Transition("ignored")

    if question.answer(answer_text) is None:
        raise MalformedCatalogReference("answer", answer_text)

    if answer_text in session.selected_answers:
        session.selected_answers = [a for a in session.selected_answers if a != answer_text]
    else:
        session.selected_answers = session.selected_answers + [answer_text]

    return Transition("answer_toggled", {"selectedAnswers": list(session.selected_answers)})


def update_settings(
    session: QuizSession,
    show_only_wrong_answers: Optional[bool] = None,
    progress_bar_type: Optional[str] = None,
) -> Transition:
    changes = {
        key: value
        for key, value in (("show_only_wrong_answers", show_only_wrong_answers), ("progress_bar_type", progress_bar_type))
        if value is not None
    }
    settings = DisplaySettings.model_validate({**session.settings.model_dump(), **changes})
    session.settings = settings

    # position is held by id, only an emptied category needs a new question
    if session.question_id is None:
        session.question_id = _first_in_category(session, session.category)

    return _log(session, Transition("settings_updated", settings))


# ───────────────────────────────────────────────
# SUBMISSION + COMPLETION POLICY
# ───────────────────────────────────────────────
def build_completion(session: QuizSession) -> CatalogCompletion:
    rollup = aggregate(session.catalog.questions, session.progress)
    return CatalogCompletion(
        total_questions=rollup.total,
        correct_answers=rollup.correct,
        wrong_answers=rollup.incorrect,
        earned_points=rollup.earned_points,
        total_points=rollup.total_points,
        completion_time=session.stopwatch.elapsed,
    )


def submit(session: QuizSession, now: Optional[datetime] = None) -> Transition:
    """
    Score the current selection and record it.

    This is the only place that declares a catalog complete: after the write,
    every question must be attempted and either this answer completed the
    catalog for the first time, it was the structurally last question, or
    every question is now correct.
    """
    if not session.user_id:
        raise NotAuthenticated()

    question = session.current_question
    if question is None:
        raise InvariantViolation("No question matches the active filter")

    if session.is_answered:
        return Transition("ignored")

    catalog = session.catalog
    was_complete = tree.all_attempted(catalog, session.progress)

    record = make_progress(question, session.selected_answers, now=now)
    session.progress[question.id] = record
    session.is_answered = True

    effects = [
        SaveProgress(catalog.id, record),
        UpdateRollup(catalog.id, catalog_rollup(catalog, session.progress, now=now)),
    ]

    logger.info(
        "[NAV] user=%s catalog=%s question=%s correct=%s",
        session.user_id, catalog.id, question.id, record.is_correct,
    )

    if tree.all_attempted(catalog, session.progress):
        first_completion = not was_complete
        is_last = question.id == catalog.questions[-1].id
        all_correct = all(session.progress[q.id].is_correct for q in catalog.questions)

        if first_completion or is_last or all_correct:
            completion = build_completion(session)
            session.completion = completion
            session.module_notice = None
            session.phase = Phase.CATALOG_COMPLETE
            effects += [
                StopTimer(),
                Broadcast("catalog_complete", {"catalogId": catalog.id, **completion.model_dump(by_alias=True)}),
            ]
            logger.info("🏁 [NAV] catalog %s complete for user=%s", catalog.id, session.user_id)
            return _log(session, Transition("catalog_complete", completion, effects))

    return _log(session, Transition("answered", {"isCorrect": record.is_correct}, effects))


# ───────────────────────────────────────────────
# ADVANCE
# ───────────────────────────────────────────────
def advance(session: QuizSession) -> Transition:
    if session.phase is not Phase.BROWSING:
        return _log(session, Transition("blocked", {"phase": session.phase.value}))

    session.reset_answer_state()

    if session.settings.show_only_wrong_answers:
        return _log(session, _advance_wrong_only(session))
    return _log(session, _advance_all(session))


def _advance_wrong_only(session: QuizSession) -> Transition:
    catalog, progress = session.catalog, session.progress
    module, category = session.module, session.category

    if session.question_id is not None:
        # a) rest of the current category
        _, _, index = tree.locate(catalog, session.question_id)
        for question in category.questions[index + 1:]:
            if tree.is_wrong(question.id, progress):
                session.move_to(module.id, category.id, question.id)
                return Transition("advanced")

        # b) later categories of this module
        ci = tree.category_index(module, category.id)
        for later in module.categories[ci + 1:]:
            hit = next((q for q in later.questions if tree.is_wrong(q.id, progress)), None)
            if hit:
                session.move_to(module.id, later.id, hit.id)
                return Transition("advanced")

        # c) later modules
        mi = tree.module_index(catalog, module.id)
        target = tree.first_wrong(catalog, progress, modules=catalog.modules[mi + 1:])
        if target:
            session.move_to(*target)
            return Transition("advanced")

    # d) wrap around to the first wrong question of the catalog
    target = tree.first_wrong(catalog, progress)
    if target:
        session.move_to(*target)
        return Transition("wrapped")

    session.question_id = None
    return Transition("no_wrong_questions")


def _advance_all(session: QuizSession) -> Transition:
    catalog, progress = session.catalog, session.progress
    module, category = session.module, session.category
    questions = category.questions

    index = next((i for i, q in enumerate(questions) if q.id == session.question_id), None)
    last_in_category = index is None or index + 1 >= len(questions)
    last_category = tree.is_last_category(module, category.id)
    last_module = tree.is_last_module(catalog, module.id)

    if last_in_category and last_category and last_module:
        target = tree.first_unanswered(catalog, progress)
        if target:
            session.move_to(*target)
            return Transition("skipped_ahead")

        first = catalog.modules[0]
        session.move_to(first.id, *tree.first_question_position(first))
        return Transition("wrapped")

    if last_in_category and last_category:
        module_rollup = aggregate(module.questions, progress)
        notice = ModuleNotice(
            module_title=module.title,
            total_questions=module_rollup.total,
            wrong_answers=module_rollup.incorrect,
        )
        session.module_notice = notice
        session.phase = Phase.MODULE_COMPLETE
        return Transition(
            "module_complete",
            notice,
            [Broadcast("module_complete", {"catalogId": catalog.id, "moduleId": module.id, **notice.model_dump(by_alias=True)})],
        )

    if not last_in_category:
        session.move_to(module.id, category.id, questions[index + 1].id)
        return Transition("advanced")

    next_category = module.categories[tree.category_index(module, category.id) + 1]
    first = next_category.questions[0].id if next_category.questions else None
    session.move_to(module.id, next_category.id, first)
    return Transition("advanced")


# ───────────────────────────────────────────────
# MODULE COMPLETE → user choice
# ───────────────────────────────────────────────
def repeat_module(session: QuizSession) -> Transition:
    if session.phase is not Phase.MODULE_COMPLETE:
        return Transition("ignored")

    module = session.module
    _clear_overlays(session)
    session.move_to(module.id, *tree.first_question_position(module))
    return _log(session, Transition("repeat_module"))


def next_module(session: QuizSession) -> Transition:
    if session.phase is not Phase.MODULE_COMPLETE:
        return Transition("ignored")

    following = tree.next_module(session.catalog, session.module_id)
    if following is None:
        return Transition("ignored")

    _clear_overlays(session)
    session.move_to(following.id, *tree.first_question_position(following))
    return _log(session, Transition("next_module"))


def dismiss(session: QuizSession) -> Transition:
    """Close whichever notice/summary/option dialog is open."""
    if session.phase is Phase.BROWSING:
        return Transition("ignored")

    _clear_overlays(session)
    return _log(session, Transition("dismissed"))


# ───────────────────────────────────────────────
# CATALOG COMPLETE → repeat options
# ───────────────────────────────────────────────
def repeat_catalog(session: QuizSession) -> Transition:
    if session.phase is not Phase.CATALOG_COMPLETE:
        return Transition("ignored")

    session.phase = Phase.REPEAT_OPTIONS
    return _log(session, Transition("repeat_options", {"modes": list(REPEAT_MODES)}))


def reset_progress(session: QuizSession) -> Transition:
    _clear_overlays(session)
    session.progress = {}
    session.reset_answer_state()
    return _log(session, Transition("progress_reset", effects=[ResetProgress(session.catalog.id)]))


def choose_repeat(session: QuizSession, mode: RepeatMode) -> Transition:
    if session.phase not in (Phase.REPEAT_OPTIONS, Phase.CATALOG_COMPLETE):
        return Transition("ignored")
    if mode not in REPEAT_MODES:
        raise ValueError(f"Unknown repeat mode '{mode}'")

    _clear_overlays(session)
    catalog = session.catalog
    first = catalog.modules[0]
    effects = []

    if mode == "reset":
        effects = reset_progress(session).effects
        session.settings = session.settings.model_copy(update={"show_only_wrong_answers": False})
        session.move_to(first.id, *tree.first_question_position(first))

    elif mode == "restart":
        session.move_to(first.id, *tree.first_question_position(first))

    else:
        session.settings = session.settings.model_copy(update={"show_only_wrong_answers": True})
        target = tree.first_wrong(catalog, session.progress)
        if target is None:
            session.move_to(first.id, first.categories[0].id, None)
            return _log(session, Transition("no_wrong_questions", {"mode": mode}))
        session.move_to(*target)

    return _log(session, Transition("repeat_catalog", {"mode": mode}, effects))


# ───────────────────────────────────────────────
# PROGRESS BAR
# ───────────────────────────────────────────────
def calculate_progress(session: QuizSession) -> float:
    """Position of the current question within the configured scope, in percent."""
    scope = session.settings.progress_bar_type

    if scope == "category":
        filtered = session.filtered_questions()
        index = session.current_index
        return percent((index if index is not None else -1) + 1, len(filtered))

    questions = session.catalog.questions if scope == "catalog" else session.module.questions
    index = next((i for i, q in enumerate(questions) if q.id == session.question_id), -1)
    return percent(index + 1, len(questions))
