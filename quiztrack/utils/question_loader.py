"""Question provider backed by JSON files under a local data folder.

Each catalog module names a `file` (relative to the data folder, with or
without the `.json` suffix) holding a JSON array of question objects.
Loaded modules are validated as a whole and cached in memory; a single
malformed question fails the whole module.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Protocol

from pydantic import ValidationError

from ..schemas import Question, QuestionLoadResult
from .catalog import ModuleCatalog

logger = logging.getLogger("quiztrack.questions")


class QuestionProvider(Protocol):
    def load_questions(self, module_id: str) -> QuestionLoadResult: ...


def validate_questions(items, module_id: str) -> List[Question]:
    """Validate a decoded JSON payload and return `Question` models.

    Raises ValueError naming the module and the first bad question index.
    """
    if not isinstance(items, list):
        raise ValueError(f"Module {module_id}: expected an array of questions")
    if not items:
        raise ValueError(f"Module {module_id}: no questions found")
    out = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"Module {module_id}, question {i}: expected an object")
        try:
            out.append(Question.model_validate(item))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "question"
            raise ValueError(f"Module {module_id}, question {i}: invalid '{field}' ({first.get('msg')})") from exc
    return out


class JsonQuestionProvider:
    """Load questions for catalog modules from `data_dir`."""

    def __init__(self, data_dir: Path, catalog: ModuleCatalog):
        self.data_dir = Path(data_dir)
        self.catalog = catalog
        self._cache: Dict[str, List[Question]] = {}

    def _module_path(self, module: Dict) -> Path:
        rel = module.get("file") or module["id"]
        path = self.data_dir / rel
        if path.suffix.lower() != ".json":
            path = path.with_name(path.name + ".json")
        return path

    def load_questions(self, module_id: str) -> QuestionLoadResult:
        """Return the module's questions, reading and validating them on first use."""
        if module_id in self._cache:
            return QuestionLoadResult(success=True, questions=self._cache[module_id])
        module = self.catalog.find_module(module_id)
        if module is None:
            return QuestionLoadResult(success=False, error=f"Module {module_id} not found in catalog")
        path = self._module_path(module)
        try:
            items = json.loads(path.read_text(encoding="utf-8"))
            questions = validate_questions(items, module_id)
        except OSError as exc:
            logger.error("failed to read module %s from %s: %s", module_id, path, exc)
            return QuestionLoadResult(success=False, error=f"Failed to load: {exc}")
        except ValueError as exc:
            logger.error("invalid question file for module %s: %s", module_id, exc)
            return QuestionLoadResult(success=False, error=str(exc))
        self._cache[module_id] = questions
        logger.info("loaded %d questions for module %s", len(questions), module_id)
        return QuestionLoadResult(success=True, questions=questions)

    def preload(self, module_ids: Iterable[str]) -> Dict[str, int]:
        """Load several modules; returns loaded/failed/total counts."""
        module_ids = list(module_ids)
        loaded = sum(1 for m in module_ids if self.load_questions(m).success)
        return {"loaded": loaded, "failed": len(module_ids) - loaded, "total": len(module_ids)}

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_status(self) -> Dict:
        return {
            "cached_modules": len(self._cache),
            "modules": sorted(self._cache),
            "total_questions": sum(len(q) for q in self._cache.values()),
        }
