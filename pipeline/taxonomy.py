from __future__ import annotations

import logging
import os
import threading
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

log = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"


def normalize_label(label: Any) -> str:
    return str(label).strip().lower()


class Taxonomy:
    """Immutable label -> category lookup, inverted from category -> [labels]."""

    def __init__(self, mapping: Mapping[str, str]):
        self._mapping = MappingProxyType(dict(mapping))

    @classmethod
    def from_mapping(cls, declaration: Optional[Mapping[str, Iterable[Any]]]) -> "Taxonomy":
        inverted: Dict[str, str] = {}
        for category, labels in (declaration or {}).items():
            for label in labels or ():
                inverted[normalize_label(label)] = str(category)
        return cls(inverted)

    @classmethod
    def load(cls, path: str) -> "Taxonomy":
        """Load a YAML declaration; a missing file yields an empty taxonomy."""
        if not path or not os.path.exists(path):
            log.warning("Taxonomy file %s not found, every label maps to '%s'", path, DEFAULT_CATEGORY)
            return cls({})
        with open(path, "r", encoding="utf-8") as f:
            declaration = yaml.safe_load(f) or {}
        taxonomy = cls.from_mapping(declaration)
        log.info("Loaded taxonomy from %s: %d labels", path, len(taxonomy))
        return taxonomy

    @property
    def mapping(self) -> Mapping[str, str]:
        return self._mapping

    @property
    def categories(self) -> List[str]:
        return sorted(set(self._mapping.values()))

    def get(self, label: Any) -> Optional[str]:
        return self._mapping.get(normalize_label(label))

    def __len__(self) -> int:
        return len(self._mapping)


class Categorizer:
    """
    Maps detector labels to taxonomy categories.

    Holds a reference to an immutable `Taxonomy`; `reload()` builds a new one
    and swaps the reference, so readers always see a complete mapping.
    """

    def __init__(self, taxonomy: Taxonomy, path: Optional[str] = None):
        self._taxonomy = taxonomy
        self._path = path
        self._reload_lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str) -> "Categorizer":
        return cls(Taxonomy.load(path), path=path)

    @property
    def taxonomy(self) -> Taxonomy:
        return self._taxonomy

    def categorize(self, label: Any) -> str:
        return self._taxonomy.get(label) or DEFAULT_CATEGORY

    def labels(self) -> List[str]:
        return list(self._taxonomy.mapping.keys())

    def reload(self) -> Taxonomy:
        if not self._path:
            return self._taxonomy
        with self._reload_lock:
            taxonomy = Taxonomy.load(self._path)
            self._taxonomy = taxonomy
        return taxonomy
