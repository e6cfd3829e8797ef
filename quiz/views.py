# quiz/views.py
# ----------------------------------------
# View-models handed to the presentation layer.
# Pure reads of the session, JSON-ready (camelCase keys).
# ----------------------------------------

from typing import Any, Dict, List, Optional

from quiz.filters import filtered_categories, filtered_modules, filtered_questions, hidden_question_count, question_status
from quiz.navigation import REPEAT_MODES, calculate_progress
from quiz.scoring import aggregate, answer_style, attempt_statistics, incorrect_explanations
from quiz.session import ModuleNotice, Phase, QuizSession, format_elapsed

EMPTY_WRONG_ONLY = "Es gibt keine falsch beantworteten Fragen in dieser Kategorie."
EMPTY_CATEGORY = "Es sind keine Fragen in dieser Kategorie verfügbar."


def _dump(model) -> Optional[Dict[str, Any]]:
    return model.model_dump(by_alias=True, mode="json") if model is not None else None


def points_label(points: float) -> str:
    value = int(points) if float(points).is_integer() else points
    return f"{value} {'Punkt' if points == 1 else 'Punkte'}"


def notice_message(notice: ModuleNotice) -> str:
    if notice.wrong_answers == 0:
        return f'Perfekt! Sie haben alle {notice.total_questions} Fragen in "{notice.module_title}" richtig beantwortet.'
    right = notice.total_questions - notice.wrong_answers
    return f'Sie haben {right} von {notice.total_questions} Fragen in "{notice.module_title}" richtig beantwortet.'


def question_view(session: QuizSession) -> Optional[Dict[str, Any]]:
    question = session.current_question
    if question is None:
        return None

    filtered = session.filtered_questions()
    index = session.current_index

    return {
        "id": question.id,
        "text": question.text,
        "points": question.points,
        "pointsLabel": points_label(question.points),
        "isMultipleChoice": question.is_multiple_choice,
        "index": index,
        "total": len(filtered),
        "positionLabel": f"Frage {index + 1} von {len(filtered)}",
        "answers": [
            {
                "text": a.text,
                "style": answer_style(a, session.selected_answers, session.is_answered),
                "selected": a.text in session.selected_answers,
            }
            for a in question.answers
        ],
        "isAnswered": session.is_answered,
        "isCorrect": session.progress[question.id].is_correct if session.is_answered else None,
        "explanations": (
            [_dump(e) for e in incorrect_explanations(question, session.selected_answers)]
            if session.is_answered else []
        ),
        "explanation": question.explanation if session.is_answered else None,
    }


def _category_entry(session: QuizSession, category) -> Dict[str, Any]:
    progress = session.progress
    rollup = aggregate(category.questions, progress)
    return {
        "id": category.id,
        "title": category.title,
        "isCurrent": category.id == session.category_id,
        "attempted": rollup.attempted,
        "correct": rollup.correct,
        "total": rollup.total,
        "questions": [
            {
                "id": q.id,
                "status": question_status(q.id, progress),
                "isCurrent": q.id == session.question_id,
            }
            for q in filtered_questions(category, progress, session.mode)
        ],
    }


def sidebar_view(session: QuizSession) -> List[Dict[str, Any]]:
    progress, mode = session.progress, session.mode
    modules = []

    for module in filtered_modules(session.catalog, progress, mode):
        rollup = aggregate(module.questions, progress)
        modules.append({
            "id": module.id,
            "title": module.title,
            "isCurrent": module.id == session.module_id,
            "progress": f"{rollup.percent_complete}%",
            "rollup": _dump(rollup),
            "categories": [_category_entry(session, c) for c in filtered_categories(module, progress, mode)],
        })

    return modules


def build_view(session: QuizSession) -> Dict[str, Any]:
    catalog, module, category = session.catalog, session.module, session.category
    question = question_view(session)

    empty_state = None
    if question is None:
        empty_state = {"message": EMPTY_WRONG_ONLY if session.settings.show_only_wrong_answers else EMPTY_CATEGORY}

    notice = session.module_notice if session.phase is Phase.MODULE_COMPLETE else None
    completion = session.completion if session.phase is Phase.CATALOG_COMPLETE else None

    return {
        "sessionId": session.session_id,
        "catalog": {"id": catalog.id, "title": catalog.title, "year": catalog.year},
        "module": {"id": module.id, "title": module.title},
        "category": {"id": category.id, "title": category.title},
        "phase": session.phase.value,
        "settings": _dump(session.settings),
        "question": question,
        "emptyState": empty_state,
        "progressPercent": calculate_progress(session) if question is not None else 0.0,
        "moduleNotice": {**_dump(notice), "message": notice_message(notice)} if notice else None,
        "completion": _dump(completion),
        "repeatOptions": list(REPEAT_MODES) if session.phase is Phase.REPEAT_OPTIONS else None,
        "statistics": _dump(attempt_statistics(session.progress)),
        "hiddenQuestions": hidden_question_count(catalog, session.progress, session.mode),
        "sidebar": sidebar_view(session),
        "timer": {
            "elapsed": session.stopwatch.elapsed,
            "formatted": format_elapsed(session.stopwatch.elapsed),
            "running": session.stopwatch.running,
        },
        "unsynced": session.unsynced,
    }
