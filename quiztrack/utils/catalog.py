"""Module catalog: specialties, optional subcategories and their modules.

The catalog file is JSON shaped like::

    {"specialties": {
        "cardio": {"name": "Cardiology", "modules": [{"id": "m1", "name": "...", "file": "cardio/m1"}]},
        "neuro": {"name": "Neurology", "subcategories": {
            "avc": {"name": "Stroke", "modules": [...]}}}}}

A specialty lists `modules` directly or groups them under `subcategories`.
"""

import json
from pathlib import Path
from typing import Dict, Iterator, List, Optional


class ModuleCatalog:
    """Lookup of module metadata by module id."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {"specialties": {}}

    @classmethod
    def from_file(cls, path: Path) -> "ModuleCatalog":
        """Read a catalog file; a missing file yields an empty catalog."""
        path = Path(path)
        if not path.exists():
            return cls()
        return cls(json.loads(path.read_text(encoding="utf-8")))

    def _iter_modules(self) -> Iterator[Dict]:
        for specialty in self.config.get("specialties", {}).values():
            subcategories = specialty.get("subcategories")
            if subcategories:
                for subcategory in subcategories.values():
                    yield from subcategory.get("modules") or []
            else:
                yield from specialty.get("modules") or []

    def find_module(self, module_id: str) -> Optional[Dict]:
        """Return the module entry for `module_id` or None."""
        for module in self._iter_modules():
            if module.get("id") == module_id:
                return module
        return None

    def resolve_module_name(self, module_id: str) -> str:
        """Human label for `module_id`; echoes the id when unknown."""
        module = self.find_module(module_id)
        if module and module.get("name"):
            return module["name"]
        return module_id

    def module_ids(self) -> List[str]:
        return [m["id"] for m in self._iter_modules() if m.get("id")]
