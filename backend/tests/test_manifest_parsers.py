"""Tests for dependency manifest parsers."""

import json

import pytest

from services.manifest_parsers import (
    find_manifests,
    parse_cargo_toml,
    parse_csproj,
    parse_go_mod,
    parse_package_json,
    parse_pom_xml,
    parse_pyproject_toml,
    parse_requirements_txt,
)
from services.tech_models import TechCategory


def names(detections):
    return [d.name for d in detections]


class TestPackageJson:
    """npm dependencies and script hints."""

    def test_dependencies_and_dev_dependencies(self, mappings):
        content = json.dumps(
            {
                "dependencies": {"react": "^18.2.0", "Express": "^4.18.0"},
                "devDependencies": {"jest": "^29.0.0", "left-pad": "1.0.0"},
            }
        )
        result = names(parse_package_json(content, mappings))
        assert result == ["React", "Express", "Jest"]

    def test_script_hints(self, mappings):
        content = json.dumps(
            {"scripts": {"build": "tsc && vite build", "dev": "next dev", "db": "prisma migrate"}}
        )
        result = names(parse_package_json(content, mappings))
        assert "TypeScript" in result
        assert "Next.js" in result
        assert "Prisma" in result

    def test_script_hint_needs_trailing_space(self, mappings):
        content = json.dumps({"scripts": {"lint": "eslint nextgen/"}})
        assert "Next.js" not in names(parse_package_json(content, mappings))

    def test_invalid_json_raises(self, mappings):
        with pytest.raises(ValueError):
            parse_package_json("{ not valid json", mappings)

    def test_non_object_root_raises(self, mappings):
        with pytest.raises(ValueError):
            parse_package_json("[1, 2, 3]", mappings)


class TestCsproj:
    """NuGet references and target frameworks."""

    def test_prefix_match_emits_single_technology(self, mappings):
        content = """
        <Project Sdk="Microsoft.NET.Sdk">
          <ItemGroup>
            <PackageReference Include="Microsoft.EntityFrameworkCore.SqlServer" Version="8.0.0" />
          </ItemGroup>
        </Project>
        """
        result = parse_csproj(content, mappings)
        assert names(result) == ["Entity Framework Core"]
        assert result[0].category == TechCategory.LIBRARY

    def test_same_technology_from_many_packages_once(self, mappings):
        content = """
        <PackageReference Include="Microsoft.EntityFrameworkCore" Version="8.0.0" />
        <PackageReference Include="Microsoft.EntityFrameworkCore.Design" Version="8.0.0" />
        <PackageReference Include="Microsoft.EntityFrameworkCore.Tools" Version="8.0.0" />
        """
        assert names(parse_csproj(content, mappings)) == ["Entity Framework Core"]

    def test_target_framework_net(self, mappings):
        content = "<PropertyGroup><TargetFramework>net8.0</TargetFramework></PropertyGroup>"
        result = parse_csproj(content, mappings)
        assert names(result) == [".NET"]
        assert result[0].category == TechCategory.FRAMEWORK

    @pytest.mark.parametrize("tfm", ["netstandard2.0", "netcoreapp3.1"])
    def test_legacy_target_frameworks_ignored(self, mappings, tfm):
        content = f"<TargetFramework>{tfm}</TargetFramework>"
        assert parse_csproj(content, mappings) == []

    def test_commented_out_names_without_reference_ignored(self, mappings):
        content = "<!-- Dapper was removed --><Project></Project>"
        assert parse_csproj(content, mappings) == []


class TestRequirementsTxt:
    """Line-oriented Python requirements."""

    @pytest.mark.parametrize(
        "line",
        ["# comment", "", "-r base.txt", "--index-url https://x", "   ", "-e ."],
    )
    def test_non_requirement_lines_never_detect(self, mappings, line):
        assert parse_requirements_txt(line, mappings) == []

    def test_version_specifiers_and_extras_stripped(self, mappings):
        content = "\n".join(
            [
                "Django==4.2",
                "flask[async]>=2.0",
                "requests ; python_version > '3.8'",
                "numpy~=1.26",
                "pandas @ https://example.com/pandas.whl",
                "fastapi!=0.1",
            ]
        )
        assert names(parse_requirements_txt(content, mappings)) == [
            "Django",
            "Flask",
            "Requests",
            "NumPy",
            "Pandas",
            "FastAPI",
        ]

    def test_unknown_packages_ignored(self, mappings):
        assert parse_requirements_txt("some-internal-lib==1.0", mappings) == []


class TestPyprojectToml:
    def test_poetry_and_pep621_styles(self, mappings):
        content = """
[tool.poetry.dependencies]
python = "^3.11"
fastapi = "^0.110"
sqlalchemy = {version = "^2.0", extras = ["asyncio"]}

[project]
dependencies = [
    "pandas>=2.0",
]
"""
        result = names(parse_pyproject_toml(content, mappings))
        assert "FastAPI" in result
        assert "SQLAlchemy" in result
        assert "Pandas" in result


class TestGoMod:
    def test_require_block_and_single_line(self, mappings):
        content = """module example.com/app

go 1.22

require (
    github.com/gin-gonic/gin v1.9.1
    gorm.io/gorm v1.25.0
)

require github.com/spf13/cobra v1.8.0
"""
        result = names(parse_go_mod(content, mappings))
        assert set(result) == {"Gin", "GORM", "Cobra"}

    def test_module_line_outside_require_ignored(self, mappings):
        content = "module github.com/gin-gonic/gin\n\ngo 1.22\n"
        assert parse_go_mod(content, mappings) == []


class TestCargoToml:
    def test_line_anchored_keys(self, mappings):
        content = """[package]
name = "app"

[dependencies]
tokio = { version = "1", features = ["full"] }
Serde = "1.0"
my-tokio-helper = "0.1"
"""
        result = names(parse_cargo_toml(content, mappings))
        assert "Tokio" in result
        assert "Serde" in result
        assert result.count("Tokio") == 1


class TestPomXml:
    def test_substring_match(self, mappings):
        content = """
<project>
  <parent><groupId>org.springframework.boot</groupId></parent>
  <dependencies>
    <dependency><groupId>org.postgresql</groupId><artifactId>postgresql</artifactId></dependency>
  </dependencies>
</project>
"""
        result = names(parse_pom_xml(content, mappings))
        assert set(result) == {"Spring Boot", "PostgreSQL"}


class TestFindManifests:
    def test_first_match_per_type_and_all_csproj(self):
        tree = [
            "web/package.json",
            "package.json",
            "src/Api/Api.csproj",
            "src/Core/Core.csproj",
            "requirements.txt",
            "docs/readme.md",
        ]
        selected = [(path, parser.__name__) for path, parser in find_manifests(tree)]
        assert selected == [
            ("web/package.json", "parse_package_json"),
            ("requirements.txt", "parse_requirements_txt"),
            ("src/Api/Api.csproj", "parse_csproj"),
            ("src/Core/Core.csproj", "parse_csproj"),
        ]

    def test_basename_must_match_exactly(self):
        assert find_manifests(["notpackage.json", "go.mod.bak"]) == []
