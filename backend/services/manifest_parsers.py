"""Dependency manifest parsers.

Each parser takes raw file content plus the mapping table and returns the
technologies it recognises. Parsers are pure and raise on malformed input;
the caller decides how a failure is reported.

Matching rules per format:
- package.json: exact (case-insensitive) dependency names, plus script hints
- *.csproj: PackageReference ids matched by prefix, plus TargetFramework
- requirements.txt / pyproject.toml: exact package names
- go.mod: substring match inside require statements
- Cargo.toml: line-anchored ``key =``
- pom.xml: substring match anywhere in the document
"""

from __future__ import annotations

import json
import re
from typing import Callable

from services.tech_mappings import Ecosystem, FrameworkMappings
from services.tech_models import Detection, TechCategory

# Substrings in package.json scripts that imply a tool even without a dependency entry.
SCRIPT_TOOL_HINTS: tuple[tuple[str, Detection], ...] = (
    ("tsc", Detection("TypeScript", TechCategory.LANGUAGE, "typescript")),
    ("nodemon", Detection("Nodemon", TechCategory.TOOL, "nodemon")),
    ("ts-node", Detection("TypeScript", TechCategory.LANGUAGE, "typescript")),
    ("next ", Detection("Next.js", TechCategory.FRAMEWORK, "nextjs")),
    ("nuxt", Detection("Nuxt.js", TechCategory.FRAMEWORK, "nuxtjs")),
    ("tailwind", Detection("Tailwind CSS", TechCategory.FRAMEWORK, "tailwindcss")),
    ("prisma ", Detection("Prisma", TechCategory.LIBRARY, "prisma")),
)

DOTNET_DETECTION = Detection(".NET", TechCategory.FRAMEWORK, "dotnet")

_PACKAGE_REFERENCE_RE = re.compile(r'<PackageReference\s+Include="([^"]*)"\s', re.IGNORECASE)
_TARGET_FRAMEWORK_RE = re.compile(r"<TargetFramework>([^<]+)</TargetFramework>", re.IGNORECASE)
_GO_REQUIRE_BLOCK_RE = re.compile(r"require\s*\((.*?)\)", re.DOTALL)
_PYPROJECT_DEPENDENCY_RE = re.compile(r'(?:^|\n)\s*"?([a-zA-Z0-9_-]+)"?\s*[=>{]')
_REQUIREMENT_NAME_END_RE = re.compile(r"[=<>!~;@\[\s]")


def parse_package_json(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Detect from ``dependencies``/``devDependencies`` keys and ``scripts`` values."""
    manifest = json.loads(content)
    if not isinstance(manifest, dict):
        raise ValueError("package.json root must be an object")

    results: list[Detection] = []
    for section in ("dependencies", "devDependencies"):
        deps = manifest.get(section)
        if not isinstance(deps, dict):
            continue
        for package in deps:
            mapping = mappings.lookup(Ecosystem.PACKAGE_JSON, package)
            if mapping:
                results.append(mapping.to_detection())

    scripts = manifest.get("scripts")
    if isinstance(scripts, dict):
        script_text = " ".join(str(v) for v in scripts.values() if isinstance(v, str)).lower()
        for pattern, detection in SCRIPT_TOOL_HINTS:
            if pattern in script_text:
                results.append(detection)

    return results


def parse_csproj(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Detect NuGet references by id prefix, and modern .NET target frameworks.

    ``Microsoft.EntityFrameworkCore.SqlServer`` matches the
    ``Microsoft.EntityFrameworkCore`` key. Each technology is emitted once
    per project file.
    """
    table = mappings.table(Ecosystem.CSPROJ)
    results: list[Detection] = []
    seen: set[str] = set()

    for match in _PACKAGE_REFERENCE_RE.finditer(content):
        package_id = match.group(1).lower()
        for key, mapping in table.items():
            if package_id.startswith(key) and mapping.name.lower() not in seen:
                seen.add(mapping.name.lower())
                results.append(mapping.to_detection())

    tfm_match = _TARGET_FRAMEWORK_RE.search(content)
    if tfm_match:
        tfm = tfm_match.group(1).strip()
        if (
            tfm.startswith("net")
            and not tfm.startswith(("netstandard", "netcoreapp"))
            and DOTNET_DETECTION.name.lower() not in seen
        ):
            seen.add(DOTNET_DETECTION.name.lower())
            results.append(DOTNET_DETECTION)

    return results


def _requirement_name(line: str) -> str:
    match = _REQUIREMENT_NAME_END_RE.search(line)
    name = line[: match.start()] if match else line
    return name.strip().lower()


def parse_requirements_txt(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Line-oriented; skips blanks, comments and ``-r``/``--`` directives."""
    results: list[Detection] = []
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", "-r", "--")):
            continue

        name = _requirement_name(line)
        if not name or name.startswith("-"):
            continue

        mapping = mappings.lookup(Ecosystem.REQUIREMENTS, name)
        if mapping:
            results.append(mapping.to_detection())

    return results


def parse_pyproject_toml(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Match bare dependency-like keys (``name = ``, ``name>=``, ``"name{``)."""
    results: list[Detection] = []
    for match in _PYPROJECT_DEPENDENCY_RE.finditer(content):
        mapping = mappings.lookup(Ecosystem.REQUIREMENTS, match.group(1).strip())
        if mapping:
            results.append(mapping.to_detection())
    return results


def _go_require_text(content: str) -> str:
    blocks = [m.group(1) for m in _GO_REQUIRE_BLOCK_RE.finditer(content)]
    single = [
        line
        for line in content.splitlines()
        if line.lstrip().startswith("require ") and "(" not in line
    ]
    return "\n".join(blocks) + "\n" + "\n".join(single)


def parse_go_mod(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Substring-match module keys against ``require`` statements only."""
    required = _go_require_text(content).lower()
    return [
        mapping.to_detection()
        for key, mapping in mappings.table(Ecosystem.GO_MOD).items()
        if key in required
    ]


def parse_cargo_toml(content: str, mappings: FrameworkMappings) -> list[Detection]:
    results: list[Detection] = []
    for key, mapping in mappings.table(Ecosystem.CARGO_TOML).items():
        pattern = rf"^\s*{re.escape(key)}\s*="
        if re.search(pattern, content, re.IGNORECASE | re.MULTILINE):
            results.append(mapping.to_detection())
    return results


def parse_pom_xml(content: str, mappings: FrameworkMappings) -> list[Detection]:
    lowered = content.lower()
    results: list[Detection] = []
    seen: set[str] = set()
    for key, mapping in mappings.table(Ecosystem.POM_XML).items():
        if key in lowered and mapping.name.lower() not in seen:
            seen.add(mapping.name.lower())
            results.append(mapping.to_detection())
    return results


ManifestParser = Callable[[str, FrameworkMappings], list[Detection]]

# Single-instance manifests: the first file with this basename is parsed.
_SINGLE_MANIFESTS: tuple[tuple[str, ManifestParser], ...] = (
    ("package.json", parse_package_json),
    ("requirements.txt", parse_requirements_txt),
    ("go.mod", parse_go_mod),
    ("pyproject.toml", parse_pyproject_toml),
    ("Cargo.toml", parse_cargo_toml),
    ("pom.xml", parse_pom_xml),
)


def _has_basename(path: str, filename: str) -> bool:
    return path == filename or path.endswith("/" + filename)


def find_manifests(file_tree: list[str]) -> list[tuple[str, ManifestParser]]:
    """Pick the manifest files to parse from a repository file tree.

    The first match per manifest type is used, except ``*.csproj`` where
    every project file is returned (multi-project solutions).
    """
    selected: list[tuple[str, ManifestParser]] = []
    for filename, parser in _SINGLE_MANIFESTS:
        path = next((p for p in file_tree if _has_basename(p, filename)), None)
        if path is not None:
            selected.append((path, parser))

    selected.extend((p, parse_csproj) for p in file_tree if p.endswith(".csproj"))
    return selected
