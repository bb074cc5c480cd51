"""Process-wide component wiring for the HTTP layer and scripts.

Components are built once, on first use, from `settings`. Tests replace
them through FastAPI's `dependency_overrides`.
"""

from functools import lru_cache

from fastapi import Depends

from .analytics import StatisticsEngine
from .config import settings
from .database import create_db_and_tables, engine
from .progress_store import ProgressStore
from .repositories import KeyValueRepository
from .utils.catalog import ModuleCatalog
from .utils.question_loader import JsonQuestionProvider


@lru_cache(maxsize=1)
def get_store() -> ProgressStore:
    create_db_and_tables(engine)
    medium = KeyValueRepository(engine, max_bytes=settings.STORE_MAX_BYTES)
    return ProgressStore(medium, session_cap=settings.SESSION_CAP, cleanup_months=settings.CLEANUP_MONTHS)


@lru_cache(maxsize=1)
def get_catalog() -> ModuleCatalog:
    return ModuleCatalog.from_file(settings.CATALOG_PATH)


@lru_cache(maxsize=1)
def get_question_provider() -> JsonQuestionProvider:
    return JsonQuestionProvider(settings.DATA_DIR, get_catalog())


def get_statistics(
    store: ProgressStore = Depends(get_store),
    catalog: ModuleCatalog = Depends(get_catalog),
    provider: JsonQuestionProvider = Depends(get_question_provider),
) -> StatisticsEngine:
    return StatisticsEngine(store, catalog=catalog, question_provider=provider)
