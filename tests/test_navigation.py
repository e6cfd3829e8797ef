import pytest
from pydantic import ValidationError

from quiz import navigation as nav
from quiz.effects import Broadcast, ResetProgress, SaveProgress, StopTimer, UpdateRollup
from quiz.errors import InvariantViolation, MalformedCatalogReference, NotAuthenticated
from quiz.models import Progress
from quiz.session import Phase
from quiz.views import EMPTY_WRONG_ONLY, build_view


def records(**outcomes):
    """records(q1_1=True) -> {"1.1": Progress(...)}; keys use '_' for '.'."""
    return {
        key.lstrip("q").replace("_", "."): Progress(question_id=key.lstrip("q").replace("_", "."), is_correct=ok)
        for key, ok in outcomes.items()
    }


def answer(session, *texts):
    for text in texts:
        nav.toggle_answer(session, text)
    return nav.submit(session)


def position(session):
    return session.module_id, session.category_id, session.question_id


# ───────────────────────────────────────────────
# Entry + selection
# ───────────────────────────────────────────────
def test_start_resumes_at_first_unanswered(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=False, q1_3=True))

    assert nav.start(session).kind == "started"
    assert position(session) == ("m2", "c3", "2.1")
    assert nav.start(session).kind == "resumed"


def test_start_without_resume_stays_at_first_question(catalog, make_session):
    session = make_session(catalog, records(q1_1=True))

    nav.start(session, resume=False)
    assert position(session) == ("m1", "c1", "1.1")


def test_select_module_in_wrong_only_mode_picks_first_wrong_category(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_3=False))
    nav.update_settings(session, show_only_wrong_answers=True)

    nav.select_module(session, "m1")
    assert position(session) == ("m1", "c2", "1.3")

    with pytest.raises(MalformedCatalogReference):
        nav.select_module(session, "m9")


def test_select_question_clears_answer_state(catalog, make_session):
    session = make_session(catalog)
    nav.toggle_answer(session, "A")

    nav.select_question(session, "2.2")
    assert position(session) == ("m2", "c3", "2.2")
    assert session.selected_answers == []
    assert session.is_answered is False


def test_toggle_answer(catalog, make_session):
    session = make_session(catalog)

    assert nav.toggle_answer(session, "A").payload == {"selectedAnswers": ["A"]}
    assert nav.toggle_answer(session, "B").payload == {"selectedAnswers": ["A", "B"]}
    assert nav.toggle_answer(session, "A").payload == {"selectedAnswers": ["B"]}

    with pytest.raises(MalformedCatalogReference):
        nav.toggle_answer(session, "Q")

    nav.submit(session)
    assert nav.toggle_answer(session, "A").kind == "ignored"
    assert session.selected_answers == ["B"]


def test_update_settings_rejects_unknown_scope(catalog, make_session):
    session = make_session(catalog)

    with pytest.raises(ValidationError):
        nav.update_settings(session, progress_bar_type="galaxy")

    transition = nav.update_settings(session, progress_bar_type="module")
    assert transition.kind == "settings_updated"
    assert session.settings.progress_bar_type == "module"
    assert session.settings.show_only_wrong_answers is False


# ───────────────────────────────────────────────
# Submit
# ───────────────────────────────────────────────
def test_submit_records_progress_and_requests_writes(catalog, make_session):
    session = make_session(catalog)

    transition = answer(session, "A")

    assert transition.kind == "answered"
    assert transition.payload == {"isCorrect": True}
    assert [type(e) for e in transition.effects] == [SaveProgress, UpdateRollup]
    assert session.progress["1.1"].is_correct is True
    assert session.is_answered is True

    rollup = transition.effects[1].rollup
    assert (rollup.correct_answers, rollup.total_questions, rollup.earned_points) == (1, 1, 1)


def test_resubmission_is_ignored(catalog, make_session, executor, store):
    session = make_session(catalog)

    executor.run(session, answer(session, "A").effects)
    again = nav.submit(session)

    assert again.kind == "ignored"
    assert again.effects == []
    assert store.calls.count("save_progress") == 1
    assert list(store.progress[("user-1", "catalog-test")]) == ["1.1"]


def test_submit_requires_user(catalog, make_session):
    session = make_session(catalog, user_id="")
    nav.toggle_answer(session, "A")

    with pytest.raises(NotAuthenticated):
        nav.submit(session)
    assert session.progress == {}


def test_multiple_choice_needs_exact_selection(catalog, make_session):
    session = make_session(catalog)
    nav.select_question(session, "2.2")

    assert answer(session, "A").payload == {"isCorrect": False}

    nav.select_question(session, "2.2")
    assert answer(session, "C", "A").payload == {"isCorrect": True}


# ───────────────────────────────────────────────
# Module + catalog completion
# ───────────────────────────────────────────────
def test_module_complete_blocks_until_user_decides(catalog, make_session):
    session = make_session(catalog)

    answer(session, "A")
    assert nav.advance(session).kind == "advanced"
    answer(session, "B")
    assert nav.advance(session).kind == "advanced"
    assert position(session) == ("m1", "c2", "1.3")
    answer(session, "A")

    transition = nav.advance(session)
    assert transition.kind == "module_complete"
    assert transition.payload.total_questions == 3
    assert transition.payload.wrong_answers == 1
    assert isinstance(transition.effects[0], Broadcast)
    assert session.phase is Phase.MODULE_COMPLETE

    assert nav.advance(session).kind == "blocked"
    assert position(session) == ("m1", "c2", "1.3")

    assert nav.next_module(session).kind == "next_module"
    assert session.phase is Phase.BROWSING
    assert position(session) == ("m2", "c3", "2.1")


def test_repeat_module_returns_to_module_start(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=True))
    nav.select_question(session, "1.3")
    answer(session, "A")
    nav.advance(session)

    assert nav.repeat_module(session).kind == "repeat_module"
    assert position(session) == ("m1", "c1", "1.1")
    assert nav.repeat_module(session).kind == "ignored"


def test_last_question_completes_catalog_directly(catalog, make_session, executor, broadcasts, clock):
    session = make_session(catalog, records(q1_1=True, q1_2=False, q1_3=True, q2_1=True, q2_2=True))
    session.stopwatch.start()
    clock.advance(125)
    nav.select_question(session, "3.1")

    transition = answer(session, "A")

    assert transition.kind == "catalog_complete"
    assert [type(e) for e in transition.effects] == [SaveProgress, UpdateRollup, StopTimer, Broadcast]
    completion = transition.payload
    assert completion.total_questions == 6
    assert completion.correct_answers == 5
    assert completion.wrong_answers == 1
    assert completion.earned_points == 4.5
    assert completion.total_points == 6.5
    assert completion.completion_time == 125
    assert session.phase is Phase.CATALOG_COMPLETE

    executor.run(session, transition.effects)
    assert session.stopwatch.running is False
    assert broadcasts[0][1] == "catalog_complete"

    # advance never re-enters completion
    assert nav.advance(session).kind == "blocked"


def test_first_completion_from_middle_question(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_3=True, q2_1=True, q2_2=False, q3_1=True))
    nav.select_question(session, "1.2")

    assert answer(session, "B").kind == "catalog_complete"


def test_reanswering_after_completion(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=False, q1_3=True, q2_1=True, q2_2=True, q3_1=True))

    nav.select_question(session, "1.1")
    assert answer(session, "A").kind == "answered"

    nav.select_question(session, "1.2")
    assert answer(session, "A").kind == "catalog_complete"


def test_advance_at_catalog_end_skips_to_unanswered(catalog, make_session):
    session = make_session(catalog, records(q1_2=True, q1_3=True, q2_1=True, q2_2=True, q3_1=True))
    nav.select_question(session, "3.1")

    assert nav.advance(session).kind == "skipped_ahead"
    assert position(session) == ("m1", "c1", "1.1")
    assert session.phase is Phase.BROWSING


def test_advance_at_catalog_end_wraps_when_all_attempted(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=True, q1_3=True, q2_1=True, q2_2=False, q3_1=True))
    nav.select_question(session, "3.1")

    assert nav.advance(session).kind == "wrapped"
    assert position(session) == ("m1", "c1", "1.1")


# ───────────────────────────────────────────────
# Wrong-only mode
# ───────────────────────────────────────────────
def test_wrong_only_advance_walks_catalog_order(catalog, make_session):
    session = make_session(catalog, records(q1_1=False, q1_2=True, q1_3=False, q2_1=True, q2_2=False, q3_1=True))
    nav.update_settings(session, show_only_wrong_answers=True)

    visited = []
    for _ in range(4):
        transition = nav.advance(session)
        visited.append((transition.kind, session.question_id))

    assert visited == [
        ("advanced", "1.3"),
        ("advanced", "2.2"),
        ("wrapped", "1.1"),
        ("advanced", "1.3"),
    ]


def test_wrong_only_single_wrong_question_wraps_onto_itself(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_3=False))
    nav.update_settings(session, show_only_wrong_answers=True)
    nav.select_question(session, "1.3")

    for _ in range(3):
        assert nav.advance(session).kind == "wrapped"
        assert position(session) == ("m1", "c2", "1.3")


def test_wrong_only_keeps_question_answered_correctly(catalog, make_session):
    session = make_session(catalog, records(q1_1=False, q1_2=False))
    nav.update_settings(session, show_only_wrong_answers=True)

    assert answer(session, "A").kind == "answered"
    assert session.current_question.id == "1.1"
    assert [q.id for q in session.filtered_questions()] == ["1.1", "1.2"]

    nav.advance(session)
    assert session.question_id == "1.2"
    assert [q.id for q in session.filtered_questions()] == ["1.2"]


def test_wrong_only_without_wrong_questions_shows_empty_state(catalog, make_session):
    session = make_session(catalog, records(q1_1=True))
    nav.update_settings(session, show_only_wrong_answers=True)

    assert nav.advance(session).kind == "no_wrong_questions"
    assert session.question_id is None
    assert session.current_question is None

    view = build_view(session)
    assert view["question"] is None
    assert view["emptyState"] == {"message": EMPTY_WRONG_ONLY}

    with pytest.raises(InvariantViolation):
        nav.toggle_answer(session, "A")
    with pytest.raises(InvariantViolation):
        nav.submit(session)

    nav.update_settings(session, show_only_wrong_answers=False)
    assert session.question_id == "1.1"


# ───────────────────────────────────────────────
# Repeat options
# ───────────────────────────────────────────────
@pytest.fixture
def completed(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=False, q1_3=True, q2_1=True, q2_2=True))
    nav.select_question(session, "3.1")
    assert answer(session, "A").kind == "catalog_complete"
    return session


def test_repeat_catalog_opens_options(completed):
    transition = nav.repeat_catalog(completed)

    assert transition.kind == "repeat_options"
    assert transition.payload == {"modes": ["restart", "wrongOnly", "reset"]}
    assert completed.phase is Phase.REPEAT_OPTIONS
    assert build_view(completed)["repeatOptions"] == ["restart", "wrongOnly", "reset"]


def test_choose_repeat_restart_keeps_progress(completed):
    nav.repeat_catalog(completed)
    transition = nav.choose_repeat(completed, "restart")

    assert transition.kind == "repeat_catalog"
    assert transition.effects == []
    assert completed.phase is Phase.BROWSING
    assert position(completed) == ("m1", "c1", "1.1")
    assert len(completed.progress) == 6


def test_choose_repeat_wrong_only_jumps_to_first_wrong(completed):
    nav.repeat_catalog(completed)
    nav.choose_repeat(completed, "wrongOnly")

    assert completed.settings.show_only_wrong_answers is True
    assert position(completed) == ("m1", "c1", "1.2")


def test_choose_repeat_reset_clears_progress(completed, executor, store):
    store.progress[("user-1", "catalog-test")] = dict(completed.progress)
    nav.repeat_catalog(completed)

    transition = nav.choose_repeat(completed, "reset")

    assert [type(e) for e in transition.effects] == [ResetProgress]
    assert completed.progress == {}
    assert completed.settings.show_only_wrong_answers is False
    assert position(completed) == ("m1", "c1", "1.1")

    executor.run(completed, transition.effects)
    assert ("user-1", "catalog-test") not in store.progress


def test_choose_repeat_wrong_only_with_perfect_score(catalog, make_session):
    session = make_session(catalog, records(q1_1=True, q1_2=True, q1_3=True, q2_1=True, q2_2=True))
    nav.select_question(session, "3.1")
    answer(session, "A")

    transition = nav.choose_repeat(session, "wrongOnly")
    assert transition.kind == "no_wrong_questions"
    assert session.question_id is None


def test_choose_repeat_validates_mode_and_phase(completed, catalog, make_session):
    with pytest.raises(ValueError):
        nav.choose_repeat(completed, "shuffle")

    assert nav.choose_repeat(make_session(catalog), "restart").kind == "ignored"


def test_reset_progress_closes_completion_summary(completed):
    transition = nav.reset_progress(completed)

    assert [type(e) for e in transition.effects] == [ResetProgress]
    assert completed.phase is Phase.BROWSING
    assert completed.completion is None

    view = build_view(completed)
    assert view["completion"] is None
    assert view["statistics"]["total"] == 0
    assert nav.advance(completed).kind != "blocked"


def test_dismiss_closes_dialog(completed):
    assert nav.dismiss(completed).kind == "dismissed"
    assert completed.phase is Phase.BROWSING
    assert completed.completion is None
    assert nav.dismiss(completed).kind == "ignored"


# ───────────────────────────────────────────────
# Progress bar
# ───────────────────────────────────────────────
@pytest.mark.parametrize("scope, expected", [
    ("catalog", 50.0),
    ("module", 100.0),
    ("category", 100.0),
])
def test_calculate_progress_scopes(catalog, make_session, scope, expected):
    session = make_session(catalog)
    nav.update_settings(session, progress_bar_type=scope)
    nav.select_question(session, "1.3")

    assert nav.calculate_progress(session) == pytest.approx(expected)


def test_calculate_progress_category_scope_uses_filtered_list(catalog, make_session):
    session = make_session(catalog, records(q2_1=False, q2_2=False))
    nav.update_settings(session, show_only_wrong_answers=True, progress_bar_type="category")
    nav.select_question(session, "2.1")

    assert nav.calculate_progress(session) == pytest.approx(50.0)
