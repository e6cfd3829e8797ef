import jwt
import pytest
from fastapi.testclient import TestClient

import auth
import main
from quiz.effects import EffectExecutor
from quiz.errors import NotAuthenticated, StoreUnavailable
from quiz.models import Catalog
from quiz.session import QuizSession, Stopwatch
from quiz.store import ProgressStore

JWT_SECRET = "test-secret"


class FakeStore(ProgressStore):
    """Dict-backed progress store; flip `failing` to simulate an outage."""

    def __init__(self):
        self.progress = {}
        self.rollups = {}
        self.failing = False
        self.calls = []

    def _check(self, operation, user_id):
        self.calls.append(operation)
        if not user_id:
            raise NotAuthenticated()
        if self.failing:
            raise StoreUnavailable(operation, "connection refused")

    def load_catalog_progress(self, user_id, catalog_id):
        self._check("load_catalog_progress", user_id)
        return dict(self.progress.get((user_id, catalog_id), {}))

    def save_progress(self, user_id, catalog_id, record):
        self._check("save_progress", user_id)
        self.progress.setdefault((user_id, catalog_id), {})[record.question_id] = record

    def reset_progress(self, user_id, catalog_id):
        self._check("reset_progress", user_id)
        self.progress.pop((user_id, catalog_id), None)
        self.rollups.pop((user_id, catalog_id), None)

    def update_catalog_rollup(self, user_id, catalog_id, rollup):
        self._check("update_catalog_rollup", user_id)
        self.rollups[(user_id, catalog_id)] = rollup

    def load_rollups(self, user_id):
        self._check("load_rollups", user_id)
        return {c: r for (u, c), r in self.rollups.items() if u == user_id}


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def question(qid, correct, wrong=(), points=1, multiple=False):
    answers = [{"text": t, "isCorrect": True} for t in correct]
    answers += [{"text": t, "isCorrect": False, "explanation": f"{t} ist falsch"} for t in wrong]
    return {"id": qid, "text": f"Frage {qid}", "points": points, "isMultipleChoice": multiple, "answers": answers}


@pytest.fixture
def small_catalog():
    """1 module, 1 category, 2 questions (points 1 and 2)."""
    return Catalog.model_validate({
        "id": "catalog-small",
        "year": 2020,
        "title": "Kleiner Katalog",
        "modules": [{
            "id": "m1",
            "title": "Modul I",
            "categories": [{
                "id": "c1",
                "title": "Kategorie 1",
                "questions": [
                    question("q1", ["A"], ["B"], points=1),
                    question("q2", ["X", "Y"], ["Z"], points=2, multiple=True),
                ],
            }],
        }],
    })


@pytest.fixture
def catalog():
    """
    m1: c1[1.1, 1.2] c2[1.3]
    m2: c3[2.1, 2.2]
    m3: c4[3.1]
    """
    return Catalog.model_validate({
        "id": "catalog-test",
        "year": 2021,
        "title": "Test Katalog",
        "modules": [
            {
                "id": "m1",
                "title": "Modul I",
                "categories": [
                    {"id": "c1", "title": "K1", "questions": [question("1.1", ["A"], ["B"]), question("1.2", ["A"], ["B"], points=2)]},
                    {"id": "c2", "title": "K2", "questions": [question("1.3", ["A"], ["B"])]},
                ],
            },
            {
                "id": "m2",
                "title": "Modul II",
                "categories": [
                    {"id": "c3", "title": "K3", "questions": [question("2.1", ["A"], ["B"]), question("2.2", ["A", "C"], ["B"], multiple=True)]},
                ],
            },
            {
                "id": "m3",
                "title": "Modul III",
                "categories": [
                    {"id": "c4", "title": "K4", "questions": [question("3.1", ["A"], ["B"], points=0.5)]},
                ],
            },
        ],
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_session(clock):
    def _make(catalog, progress=None, user_id="user-1", **kwargs):
        return QuizSession(
            user_id=user_id,
            catalog=catalog,
            progress=dict(progress or {}),
            stopwatch=Stopwatch(clock=clock),
            **kwargs,
        )
    return _make


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def broadcasts():
    return []


@pytest.fixture
def executor(store, broadcasts):
    return EffectExecutor(store, broadcaster=lambda user_id, event, payload: broadcasts.append((user_id, event, payload)))


def make_token(user_id="user-1", verified=True, secret=JWT_SECRET):
    claims = {"sub": user_id, "aud": "authenticated", "user_metadata": {"email_verified": verified}}
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def client(monkeypatch, store, executor):
    monkeypatch.setattr(auth, "SUPABASE_JWT_SECRET", JWT_SECRET)
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_executor] = lambda: executor
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}
