# quiz/catalog.py

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from quiz.errors import MalformedCatalogReference
from quiz.models import Catalog, Category, Module, Progress, Question

logger = logging.getLogger("haftify.catalog")

DEFAULT_CATALOG_DIR = Path(__file__).resolve().parent.parent / "data" / "catalogs"


# ───────────────────────────────────────────────
# LOADING (immutable, cached process-wide)
# ───────────────────────────────────────────────
def catalog_dir() -> Path:
    return Path(os.getenv("CATALOG_DIR") or DEFAULT_CATALOG_DIR)


@lru_cache(maxsize=None)
def _load_from(directory: str) -> Tuple[Catalog, ...]:
    catalogs = []
    for path in sorted(Path(directory).glob("*.json")):
        with open(path, encoding="utf-8") as fh:
            catalogs.append(Catalog.model_validate(json.load(fh)))
        logger.info("[CATALOG] loaded %s from %s", catalogs[-1].id, path.name)

    return tuple(sorted(catalogs, key=lambda c: c.year))


def load_catalogs() -> Tuple[Catalog, ...]:
    return _load_from(str(catalog_dir()))


def get_catalog(catalog_id: str) -> Catalog:
    catalog = next((c for c in load_catalogs() if c.id == catalog_id), None)
    if catalog is None:
        raise MalformedCatalogReference("catalog", catalog_id)
    return catalog


# ───────────────────────────────────────────────
# LOOKUPS
# ───────────────────────────────────────────────
def get_module(catalog: Catalog, module_id: str) -> Module:
    module = next((m for m in catalog.modules if m.id == module_id), None)
    if module is None:
        raise MalformedCatalogReference("module", module_id)
    return module


def get_category(module: Module, category_id: str) -> Category:
    category = next((c for c in module.categories if c.id == category_id), None)
    if category is None:
        raise MalformedCatalogReference("category", category_id)
    return category


def locate(catalog: Catalog, question_id: str) -> Tuple[Module, Category, int]:
    """
    Resolve a question id to (module, category, index within category).
    Question ids are unique per catalog, so this is the canonical lookup.
    """
    for module in catalog.modules:
        for category in module.categories:
            for index, question in enumerate(category.questions):
                if question.id == question_id:
                    return module, category, index

    raise MalformedCatalogReference("question", question_id)


def get_question(catalog: Catalog, question_id: str) -> Question:
    module, category, index = locate(catalog, question_id)
    return category.questions[index]


def module_index(catalog: Catalog, module_id: str) -> int:
    for i, module in enumerate(catalog.modules):
        if module.id == module_id:
            return i
    raise MalformedCatalogReference("module", module_id)


def category_index(module: Module, category_id: str) -> int:
    for i, category in enumerate(module.categories):
        if category.id == category_id:
            return i
    raise MalformedCatalogReference("category", category_id)


def is_last_module(catalog: Catalog, module_id: str) -> bool:
    return catalog.modules[-1].id == module_id


def is_last_category(module: Module, category_id: str) -> bool:
    return module.categories[-1].id == category_id


def next_module(catalog: Catalog, module_id: str) -> Optional[Module]:
    i = module_index(catalog, module_id)
    return catalog.modules[i + 1] if i + 1 < len(catalog.modules) else None


def first_question_position(module: Module) -> Tuple[str, Optional[str]]:
    """(category_id, question_id) of the first question in a module."""
    category = module.categories[0]
    first = category.questions[0].id if category.questions else None
    return category.id, first


# ───────────────────────────────────────────────
# PROGRESS-AWARE SEARCHES (catalog order)
# ───────────────────────────────────────────────
def is_wrong(question_id: str, progress: Mapping[str, Progress]) -> bool:
    record = progress.get(question_id)
    return record is not None and not record.is_correct


def first_unanswered(catalog: Catalog, progress: Mapping[str, Progress]) -> Optional[Tuple[str, str, str]]:
    for module in catalog.modules:
        for category in module.categories:
            for question in category.questions:
                if question.id not in progress:
                    return module.id, category.id, question.id
    return None


def first_wrong(catalog: Catalog, progress: Mapping[str, Progress], modules: Optional[List[Module]] = None):
    for module in catalog.modules if modules is None else modules:
        for category in module.categories:
            for question in category.questions:
                if is_wrong(question.id, progress):
                    return module.id, category.id, question.id
    return None


def all_attempted(catalog: Catalog, progress: Mapping[str, Progress]) -> bool:
    return all(q.id in progress for q in catalog.questions)
