"""Framework Mapping Table.

Static lookup tables that translate ecosystem-specific identifiers
(npm packages, NuGet prefixes, Python packages, Go modules, crates,
Maven coordinates, filenames, repo topics) into a canonical technology.

Loaded once from the bundled ``data/framework_mappings.json`` asset and
read-only afterwards. Two indexes are derived at load time:

- known names: every canonical name, lower-cased, for README matching
- name index: lower-cased canonical name -> first mapping carrying it
"""

from __future__ import annotations

import json
from collections.abc import KeysView, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from app.exceptions import MappingLoadError
from app.logging_config import get_logger
from services.tech_models import Detection, TechCategory

logger = get_logger(__name__)

DEFAULT_MAPPINGS_PATH = Path(__file__).parent / "data" / "framework_mappings.json"


class Ecosystem(str, Enum):
    """Mapping tables, valued by their key in the data asset."""

    PACKAGE_JSON = "packageJson"
    CSPROJ = "csproj"
    REQUIREMENTS = "requirements"
    GO_MOD = "goMod"
    CARGO_TOML = "cargoToml"
    POM_XML = "pomXml"
    FILE_PRESENCE = "filePresence"
    TOPICS = "topicMappings"


# Filenames are matched exactly; every other table is case-insensitive.
CASE_SENSITIVE_ECOSYSTEMS = frozenset({Ecosystem.FILE_PRESENCE})


@dataclass(frozen=True)
class TechMapping:
    """Canonical technology an identifier maps to."""

    name: str
    category: TechCategory
    icon: Optional[str] = None

    def to_detection(self) -> Detection:
        return Detection(self.name, self.category, self.icon)


class _MappingEntry(BaseModel):
    name: str = Field(..., min_length=1)
    category: TechCategory
    icon: Optional[str] = None


class FrameworkMappings:
    """Immutable struct-of-tables keyed by :class:`Ecosystem`."""

    def __init__(self, tables: Mapping[Ecosystem, Mapping[str, TechMapping]]) -> None:
        frozen: dict[Ecosystem, Mapping[str, TechMapping]] = {}
        for ecosystem in Ecosystem:
            table: dict[str, TechMapping] = {}
            for key, mapping in tables.get(ecosystem, {}).items():
                if ecosystem not in CASE_SENSITIVE_ECOSYSTEMS:
                    key = key.lower()
                table.setdefault(key, mapping)
            frozen[ecosystem] = MappingProxyType(table)
        self._tables: Mapping[Ecosystem, Mapping[str, TechMapping]] = MappingProxyType(frozen)

        by_name: dict[str, TechMapping] = {}
        for table in self._tables.values():
            for mapping in table.values():
                by_name.setdefault(mapping.name.lower(), mapping)
        self._by_name: Mapping[str, TechMapping] = MappingProxyType(by_name)

    def table(self, ecosystem: Ecosystem) -> Mapping[str, TechMapping]:
        """Read-only view of one table (keys lower-cased unless case-sensitive)."""
        return self._tables[ecosystem]

    def lookup(self, ecosystem: Ecosystem, key: str) -> Optional[TechMapping]:
        if ecosystem not in CASE_SENSITIVE_ECOSYSTEMS:
            key = key.lower()
        return self._tables[ecosystem].get(key)

    @property
    def known_names(self) -> KeysView[str]:
        """Lower-cased canonical names, in table load order."""
        return self._by_name.keys()

    def is_known(self, name: str) -> bool:
        return name.lower() in self._by_name

    def canonical_name(self, name: str) -> Optional[str]:
        """Canonical spelling of ``name`` (any case), or None if unknown."""
        mapping = self._by_name.get(name.lower())
        return mapping.name if mapping else None

    def info_for(self, name: str) -> Optional[TechMapping]:
        """Mapping that carries canonical ``name``, for category/icon resolution."""
        return self._by_name.get(name.lower())

    def entry_count(self) -> int:
        return sum(len(table) for table in self._tables.values())


def load_framework_mappings(path: Optional[Path] = None) -> FrameworkMappings:
    """Load and validate the mapping data asset.

    Raises:
        MappingLoadError: The file is missing, not JSON, or an entry
            has no name or an unknown category.
    """
    source = path or DEFAULT_MAPPINGS_PATH
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise MappingLoadError(f"Could not read framework mappings: {exc}") from exc

    if not isinstance(raw, dict):
        raise MappingLoadError("Framework mappings must be a JSON object")

    tables: dict[Ecosystem, dict[str, TechMapping]] = {}
    for ecosystem in Ecosystem:
        section = raw.get(ecosystem.value) or {}
        if not isinstance(section, dict):
            raise MappingLoadError(f"Mapping table '{ecosystem.value}' must be an object")
        try:
            entries = {
                key: _MappingEntry.model_validate(value) for key, value in section.items()
            }
        except ValidationError as exc:
            raise MappingLoadError(
                f"Invalid entry in mapping table '{ecosystem.value}': "
                f"{exc.error_count()} validation error(s)"
            ) from exc

        tables[ecosystem] = {
            key: TechMapping(name=entry.name, category=entry.category, icon=entry.icon)
            for key, entry in entries.items()
        }

    mappings = FrameworkMappings(tables)
    logger.info(
        "framework_mappings_loaded",
        entries=mappings.entry_count(),
        known_names=len(mappings.known_names),
    )
    return mappings


@lru_cache
def get_framework_mappings() -> FrameworkMappings:
    """Process-wide mapping table, loaded on first use."""
    return load_framework_mappings()
