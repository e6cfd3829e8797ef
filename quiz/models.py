# quiz/models.py
# ----------------------------------------
# Catalog tree + per-user progress records
# ----------------------------------------

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # catalog JSON is written in camelCase, python code reads snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# -------------------------------------------------
# Catalog tree (read-only)
# -------------------------------------------------

class Answer(CamelModel):
    text: str = Field(..., min_length=1)
    is_correct: bool
    explanation: Optional[str] = None


class Question(CamelModel):
    id: str = Field(..., min_length=1)
    text: str
    points: float = Field(..., gt=0)
    is_multiple_choice: bool = False
    answers: List[Answer]
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _check_answers(self):
        texts = [a.text for a in self.answers]
        if len(set(texts)) != len(texts):
            raise ValueError(f"Question {self.id}: answer texts must be unique")
        if not any(a.is_correct for a in self.answers):
            raise ValueError(f"Question {self.id}: needs at least one correct answer")
        return self

    @property
    def correct_texts(self) -> frozenset:
        return frozenset(a.text for a in self.answers if a.is_correct)

    def answer(self, text: str) -> Optional[Answer]:
        return next((a for a in self.answers if a.text == text), None)


class Category(CamelModel):
    id: str = Field(..., min_length=1)
    title: str
    questions: List[Question]

    @field_validator("questions")
    @classmethod
    def _unique_question_ids(cls, questions):
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise ValueError("question ids must be unique within a category")
        return questions


class Module(CamelModel):
    id: str = Field(..., min_length=1)
    title: str
    categories: List[Category] = Field(..., min_length=1)

    @field_validator("categories")
    @classmethod
    def _unique_category_ids(cls, categories):
        ids = [c.id for c in categories]
        if len(set(ids)) != len(ids):
            raise ValueError("category ids must be unique within a module")
        return categories

    @property
    def questions(self) -> List[Question]:
        return [q for c in self.categories for q in c.questions]


class Catalog(CamelModel):
    id: str = Field(..., min_length=1)
    year: int
    title: str
    modules: List[Module] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_ids(self):
        module_ids = [m.id for m in self.modules]
        if len(set(module_ids)) != len(module_ids):
            raise ValueError(f"Catalog {self.id}: module ids must be unique")

        # lookups resolve by question id across the whole catalog
        question_ids = [q.id for q in self.questions]
        if len(set(question_ids)) != len(question_ids):
            raise ValueError(f"Catalog {self.id}: question ids must be unique")
        return self

    @property
    def questions(self) -> List[Question]:
        return [q for m in self.modules for c in m.categories for q in c.questions]


# -------------------------------------------------
# Progress (mutable, one record per question)
# -------------------------------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Progress(CamelModel):
    question_id: str
    is_correct: bool
    selected_answers: List[str] = Field(default_factory=list)
    attempted_at: datetime = Field(default_factory=utcnow)


class CatalogRollup(CamelModel):
    """Aggregated catalog statistics stored next to the user profile."""

    earned_points: float = 0
    total_points: float = 0
    correct_answers: int = 0
    total_questions: int = 0
    last_attempted_at: Optional[datetime] = None
