"""Tests for the framework mapping table."""

import json

import pytest

from app.exceptions import MappingLoadError
from services.tech_mappings import (
    Ecosystem,
    FrameworkMappings,
    TechMapping,
    get_framework_mappings,
    load_framework_mappings,
)
from services.tech_models import TechCategory


class TestBundledMappings:
    """The shipped data asset."""

    def test_every_ecosystem_has_entries(self, mappings):
        for ecosystem in Ecosystem:
            assert len(mappings.table(ecosystem)) > 0, ecosystem

    def test_case_insensitive_lookup(self, mappings):
        react = mappings.lookup(Ecosystem.PACKAGE_JSON, "React")
        assert react is not None
        assert react.name == "React"
        assert react.category == TechCategory.FRAMEWORK

    def test_file_presence_is_case_sensitive(self, mappings):
        assert mappings.lookup(Ecosystem.FILE_PRESENCE, "Dockerfile") is not None
        assert mappings.lookup(Ecosystem.FILE_PRESENCE, "dockerfile") is None

    def test_known_names_are_lowercase(self, mappings):
        assert "react" in mappings.known_names
        assert all(name == name.lower() for name in mappings.known_names)

    def test_canonical_name_resolves_any_case(self, mappings):
        assert mappings.canonical_name("POSTGRESQL") == "PostgreSQL"
        assert mappings.canonical_name("no-such-tech") is None

    def test_info_for_returns_category_and_icon(self, mappings):
        info = mappings.info_for("Docker")
        assert info is not None
        assert info.category == TechCategory.TOOL
        assert info.icon == "docker"

    def test_tables_are_read_only(self, mappings):
        with pytest.raises(TypeError):
            mappings.table(Ecosystem.TOPICS)["new"] = TechMapping("X", TechCategory.OTHER)

    def test_get_framework_mappings_is_cached(self):
        assert get_framework_mappings() is get_framework_mappings()


class TestFrameworkMappings:
    """Index construction."""

    def test_first_mapping_wins_for_canonical_name(self):
        mappings = FrameworkMappings(
            {
                Ecosystem.PACKAGE_JSON: {"pg": TechMapping("PostgreSQL", TechCategory.DATABASE, "postgresql")},
                Ecosystem.TOPICS: {"postgres": TechMapping("Postgresql", TechCategory.OTHER)},
            }
        )
        assert mappings.canonical_name("postgresql") == "PostgreSQL"
        assert mappings.info_for("postgresql").category == TechCategory.DATABASE

    def test_missing_tables_are_empty(self):
        mappings = FrameworkMappings({})
        assert len(mappings.table(Ecosystem.GO_MOD)) == 0
        assert mappings.entry_count() == 0


class TestLoadFrameworkMappings:
    """Validation of the data asset."""

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(MappingLoadError):
            load_framework_mappings(tmp_path / "missing.json")

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MappingLoadError):
            load_framework_mappings(path)

    def test_unknown_category_raises(self, tmp_path):
        path = tmp_path / "bad_category.json"
        path.write_text(
            json.dumps({"packageJson": {"react": {"name": "React", "category": "Gadget"}}}),
            encoding="utf-8",
        )
        with pytest.raises(MappingLoadError) as exc_info:
            load_framework_mappings(path)
        assert "packageJson" in exc_info.value.message

    def test_empty_name_raises(self, tmp_path):
        path = tmp_path / "empty_name.json"
        path.write_text(
            json.dumps({"topicMappings": {"x": {"name": "", "category": "Tool"}}}),
            encoding="utf-8",
        )
        with pytest.raises(MappingLoadError):
            load_framework_mappings(path)

    def test_partial_file_loads(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(
            json.dumps({"cargoToml": {"Tokio": {"name": "Tokio", "category": "Library"}}}),
            encoding="utf-8",
        )
        mappings = load_framework_mappings(path)
        assert mappings.lookup(Ecosystem.CARGO_TOML, "tokio").name == "Tokio"
        assert mappings.lookup(Ecosystem.CARGO_TOML, "tokio").icon is None
        assert len(mappings.table(Ecosystem.PACKAGE_JSON)) == 0
