# quiz/filters.py

from typing import List, Literal, Mapping, Optional

from quiz.catalog import is_wrong
from quiz.models import Catalog, Category, Module, Progress, Question

FilterMode = Literal["all", "wrongOnly"]

QuestionStatus = Literal["not-attempted", "correct", "incorrect"]


def filter_mode(show_only_wrong_answers: bool) -> FilterMode:
    return "wrongOnly" if show_only_wrong_answers else "all"


def filtered_questions(
    category: Category,
    progress: Mapping[str, Progress],
    mode: FilterMode,
    keep_question_id: Optional[str] = None,
) -> List[Question]:
    """
    Active question list of a category.

    In wrong-only mode the question currently on screen stays in the list
    (keep_question_id) even after it was answered correctly, so the view
    does not jump away from under the user.
    """
    if mode == "all":
        return list(category.questions)

    return [
        q for q in category.questions
        if q.id == keep_question_id or is_wrong(q.id, progress)
    ]


def has_wrong_questions(questions: List[Question], progress: Mapping[str, Progress]) -> bool:
    return any(is_wrong(q.id, progress) for q in questions)


def filtered_categories(module: Module, progress: Mapping[str, Progress], mode: FilterMode) -> List[Category]:
    if mode == "all":
        return list(module.categories)
    return [c for c in module.categories if has_wrong_questions(c.questions, progress)]


def filtered_modules(catalog: Catalog, progress: Mapping[str, Progress], mode: FilterMode) -> List[Module]:
    if mode == "all":
        return list(catalog.modules)
    return [m for m in catalog.modules if has_wrong_questions(m.questions, progress)]


def hidden_question_count(catalog: Catalog, progress: Mapping[str, Progress], mode: FilterMode) -> int:
    if mode == "all":
        return 0
    return sum(1 for q in catalog.questions if not is_wrong(q.id, progress))


def question_status(question_id: str, progress: Mapping[str, Progress]) -> QuestionStatus:
    record = progress.get(question_id)
    if record is None:
        return "not-attempted"
    return "correct" if record.is_correct else "incorrect"
