# quiz/scoring.py
# ----------------------------------------
# Correctness, rollups and answer feedback
# ----------------------------------------

import math
from datetime import datetime
from typing import Iterable, List, Literal, Mapping, Optional

from quiz.catalog import get_category, get_module
from quiz.models import Answer, CamelModel, Catalog, CatalogRollup, Progress, Question, utcnow

Scope = Literal["catalog", "module", "category"]

AnswerStyle = Literal["neutral", "selected", "correct", "missed", "incorrect"]

# joins the texts of all missed correct answers into one feedback entry
MISSED_ANSWER_DELIMITER = '" und "'


def percent(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return part / whole * 100


def round_percent(value: float) -> int:
    # half-up, 12.5 -> 13
    return int(math.floor(value + 0.5))


# -------------------------------------------------
# Correctness
# -------------------------------------------------

def check_answer(question: Question, selected: Iterable[str]) -> bool:
    """Exact match: every correct answer selected and nothing else."""
    return frozenset(selected) == question.correct_texts


def make_progress(question: Question, selected: Iterable[str], now: Optional[datetime] = None) -> Progress:
    selected = list(dict.fromkeys(selected))
    return Progress(
        question_id=question.id,
        is_correct=check_answer(question, selected),
        selected_answers=selected,
        attempted_at=now or utcnow(),
    )


# -------------------------------------------------
# Aggregation
# -------------------------------------------------

class Rollup(CamelModel):
    total: int
    attempted: int
    correct: int
    incorrect: int
    unanswered: int
    earned_points: float
    total_points: float
    percent_complete: int
    correct_percent: float
    incorrect_percent: float
    unanswered_percent: float


def aggregate(questions: List[Question], progress: Mapping[str, Progress]) -> Rollup:
    total = len(questions)
    attempted = correct = 0
    earned = total_points = 0.0

    for q in questions:
        total_points += q.points
        record = progress.get(q.id)
        if record is None:
            continue
        attempted += 1
        if record.is_correct:
            correct += 1
            earned += q.points

    incorrect = attempted - correct
    unanswered = total - attempted

    return Rollup(
        total=total,
        attempted=attempted,
        correct=correct,
        incorrect=incorrect,
        unanswered=unanswered,
        earned_points=earned,
        total_points=total_points,
        percent_complete=round_percent(percent(attempted, total)),
        correct_percent=percent(correct, total),
        incorrect_percent=percent(incorrect, total),
        unanswered_percent=percent(unanswered, total),
    )


def scope_questions(
    catalog: Catalog,
    scope: Scope,
    module_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> List[Question]:
    if scope == "catalog":
        return catalog.questions

    module = get_module(catalog, module_id)
    if scope == "module":
        return module.questions

    return list(get_category(module, category_id).questions)


def catalog_rollup(catalog: Catalog, progress: Mapping[str, Progress], now: Optional[datetime] = None) -> CatalogRollup:
    """
    Record persisted next to the user profile after each submission.
    total_questions counts attempted questions, as the dashboard reads it.
    """
    rollup = aggregate(catalog.questions, progress)
    return CatalogRollup(
        earned_points=rollup.earned_points,
        total_points=rollup.total_points,
        correct_answers=rollup.correct,
        total_questions=rollup.attempted,
        last_attempted_at=now or utcnow(),
    )


class AttemptStatistics(CamelModel):
    correct: int
    incorrect: int
    total: int
    percentage_complete: int


def attempt_statistics(progress: Mapping[str, Progress]) -> AttemptStatistics:
    total = len(progress)
    correct = sum(1 for p in progress.values() if p.is_correct)
    return AttemptStatistics(
        correct=correct,
        incorrect=total - correct,
        total=total,
        percentage_complete=round_percent(percent(correct, total)),
    )


# -------------------------------------------------
# Answer feedback (pure, no session state)
# -------------------------------------------------

def answer_style(answer: Answer, selected: Iterable[str], is_answered: bool) -> AnswerStyle:
    was_selected = answer.text in set(selected)

    if not is_answered:
        return "selected" if was_selected else "neutral"

    if answer.is_correct and was_selected:
        return "correct"
    if answer.is_correct:
        return "missed"
    if was_selected:
        return "incorrect"
    return "neutral"


class Explanation(CamelModel):
    text: str
    explanation: Optional[str] = None
    was_selected: bool


def incorrect_explanations(question: Question, selected: Iterable[str]) -> List[Explanation]:
    """
    Wrong picks each get their own entry; all missed correct answers are
    compressed into a single entry with an empty explanation.
    """
    selected = set(selected)

    entries = [
        Explanation(text=a.text, explanation=a.explanation, was_selected=True)
        for a in question.answers
        if a.text in selected and not a.is_correct
    ]

    missed = [a.text for a in question.answers if a.is_correct and a.text not in selected]
    if missed:
        entries.append(Explanation(text=MISSED_ANSWER_DELIMITER.join(missed), explanation="", was_selected=False))

    return entries
