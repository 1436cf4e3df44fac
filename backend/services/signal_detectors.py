"""Signal Detectors.

Five independent heuristics that turn per-repository data into
technology detections:

1. languages      - GitHub language byte breakdown
2. dependencies   - package manifests found in the file tree
3. file_presence  - config/infra filenames and telling file extensions
4. readme         - shields.io badges and "Tech Stack"-style sections
5. topics         - curated repository topics

The pure functions here hold the detection rules. ``SignalDetectors``
wraps the three that need GitHub I/O and isolates their failures.
"""

from __future__ import annotations

import asyncio
import re
from typing import Iterable, Optional

from app.config import Settings, get_settings
from app.exceptions import GitHubRateLimitError
from app.logging_config import get_logger
from app.metrics import TECHSTACK_SIGNAL_FAILURES
from services.github_service import GitHubService, LanguageStat
from services.manifest_parsers import ManifestParser, find_manifests
from services.tech_mappings import Ecosystem, FrameworkMappings
from services.tech_models import Detection, Signal, TechCategory

logger = get_logger(__name__)

# Keys are lower-cased GitHub linguist names.
LANGUAGE_ICONS: dict[str, str] = {
    "c#": "csharp",
    "javascript": "javascript",
    "typescript": "typescript",
    "python": "python",
    "java": "java",
    "go": "go",
    "rust": "rust",
    "c": "c",
    "c++": "cplusplus",
    "ruby": "ruby",
    "php": "php",
    "swift": "swift",
    "kotlin": "kotlin",
    "dart": "dart",
    "html": "html5",
    "css": "css3",
    "shell": "bash",
    "powershell": "powershell",
    "lua": "lua",
    "r": "r",
    "scala": "scala",
    "objective-c": "objectivec",
    "matlab": "matlab",
    "perl": "perl",
}

EXTENSION_DETECTIONS: tuple[tuple[str, Detection], ...] = (
    (".proto", Detection("Protobuf", TechCategory.TOOL, "protobuf")),
    (".graphql", Detection("GraphQL", TechCategory.LIBRARY, "graphql")),
    (".gql", Detection("GraphQL", TechCategory.LIBRARY, "graphql")),
    (".prisma", Detection("Prisma", TechCategory.LIBRARY, "prisma")),
    (".ipynb", Detection("Jupyter", TechCategory.TOOL, "jupyter")),
    (".bicep", Detection("Bicep", TechCategory.TOOL, "azure")),
    (".razor", Detection("Blazor", TechCategory.FRAMEWORK, "blazor")),
    (".vue", Detection("Vue.js", TechCategory.FRAMEWORK, "vuejs")),
    (".svelte", Detection("Svelte", TechCategory.FRAMEWORK, "svelte")),
    (".tsx", Detection("React", TechCategory.FRAMEWORK, "react")),
    (".jsx", Detection("React", TechCategory.FRAMEWORK, "react")),
)

GITHUB_ACTIONS = Detection("GitHub Actions", TechCategory.TOOL, "githubactions")
KUBERNETES = Detection("Kubernetes", TechCategory.TOOL, "kubernetes")

_WORKFLOW_DIR = ".github/workflows/"
_WORKFLOW_SUFFIXES = (".yml", ".yaml")
_KUBERNETES_DIRS = ("k8s/", "kubernetes/")

_BADGE_RE = re.compile(r"img\.shields\.io/badge/([^-/]+)-", re.IGNORECASE)

# A heading such as "## Tech Stack", "### 🛠️ Built With:" or "# Powered by".
# The body runs to the next heading or the end of the document.
_TECH_SECTION_RE = re.compile(
    r"^[ \t]*#+[^\w\n]*"
    r"(?:tech(?:nolog(?:y|ies))?\s*stack|built\s*with|technologies(?:\s*used)?"
    r"|tools?\s*(?:used|&|and)|stack|powered\s*by)"
    r"[^\w\n]*\n([\s\S]*?)(?=\n[ \t]*#+\s|\Z)",
    re.IGNORECASE | re.MULTILINE,
)

_MIN_SECTION_NAME_LENGTH = 2


def detect_from_language_stats(stats: Iterable[LanguageStat]) -> list[Detection]:
    return [
        Detection(stat.name, TechCategory.LANGUAGE, LANGUAGE_ICONS.get(stat.name.lower()))
        for stat in stats
    ]


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def detect_from_file_presence(file_tree: list[str], mappings: FrameworkMappings) -> list[Detection]:
    """Filenames, workflow/k8s directories, then file extensions.

    Each technology is emitted at most once per repository.
    """
    results: list[Detection] = []
    seen: set[str] = set()

    def emit(detection: Detection) -> None:
        if detection.name not in seen:
            seen.add(detection.name)
            results.append(detection)

    for path in file_tree:
        mapping = mappings.lookup(Ecosystem.FILE_PRESENCE, _basename(path))
        if mapping:
            emit(mapping.to_detection())

    lowered = [path.lower() for path in file_tree]

    if any(p.startswith(_WORKFLOW_DIR) and p.endswith(_WORKFLOW_SUFFIXES) for p in lowered):
        emit(GITHUB_ACTIONS)

    if any(p.startswith(_KUBERNETES_DIRS) for p in lowered):
        emit(KUBERNETES)

    for extension, detection in EXTENSION_DETECTIONS:
        if any(p.endswith(extension) for p in lowered):
            emit(detection)

    return results


def find_readme(file_tree: list[str]) -> Optional[str]:
    """Path of the top-level README.md (any case), if present."""
    return next((p for p in file_tree if p.lower() == "readme.md"), None)


def _resolve_known(name: str, mappings: FrameworkMappings) -> Detection:
    canonical = mappings.canonical_name(name) or name
    info = mappings.info_for(canonical)
    if info is None:
        return Detection(canonical, TechCategory.OTHER, None)
    return Detection(canonical, info.category, info.icon)


def _badge_detections(content: str, mappings: FrameworkMappings) -> list[Detection]:
    results: list[Detection] = []
    for match in _BADGE_RE.finditer(content):
        name = match.group(1).replace("%20", " ").replace("_", " ").strip()
        # Unknown badges ("license", "build passing") are ignored
        if name and mappings.is_known(name):
            results.append(_resolve_known(name, mappings))
    return results


def _section_detections(
    content: str, mappings: FrameworkMappings, already_seen: set[str]
) -> list[Detection]:
    sections = [m.group(1) for m in _TECH_SECTION_RE.finditer(content)]
    if not sections:
        return []

    section_text = "\n".join(sections)
    results: list[Detection] = []
    for known_name in mappings.known_names:
        if len(known_name) < _MIN_SECTION_NAME_LENGTH:
            continue

        detection = _resolve_known(known_name, mappings)
        if detection.name.lower() in already_seen:
            continue

        pattern = rf"(?<![a-zA-Z0-9]){re.escape(known_name)}(?![a-zA-Z0-9])"
        if re.search(pattern, section_text, re.IGNORECASE):
            results.append(detection)
            already_seen.add(detection.name.lower())

    return results


def scan_readme_content(content: str, mappings: FrameworkMappings) -> list[Detection]:
    """Badge scan, then section scan for names the badges did not cover."""
    results = _badge_detections(content, mappings)
    seen = {d.name.lower() for d in results}
    results.extend(_section_detections(content, mappings, seen))
    return results


def detect_from_topics(topics: Iterable[str], mappings: FrameworkMappings) -> list[Detection]:
    results: list[Detection] = []
    seen: set[str] = set()
    for topic in topics:
        mapping = mappings.lookup(Ecosystem.TOPICS, topic.strip())
        if mapping and mapping.name.lower() not in seen:
            seen.add(mapping.name.lower())
            results.append(mapping.to_detection())
    return results


class SignalDetectors:
    """Runs the detectors that need repository data from GitHub.

    Failures are logged and reported as zero detections for that signal,
    except a rate-limit error from the language call, which the caller
    handles for the whole analysis pass.
    """

    def __init__(
        self,
        github: GitHubService,
        mappings: FrameworkMappings,
        settings: Optional[Settings] = None,
    ) -> None:
        self.github = github
        self.mappings = mappings
        self.settings = settings or get_settings()

    async def detect_languages(self, access_token: str, owner: str, repo: str) -> list[Detection]:
        try:
            stats = await self.github.get_repository_languages(access_token, owner, repo)
        except GitHubRateLimitError:
            raise
        except Exception as exc:
            TECHSTACK_SIGNAL_FAILURES.labels(signal=Signal.LANGUAGES.value).inc()
            logger.warning("repo_languages_failed", repo=f"{owner}/{repo}", error=str(exc))
            return []
        return detect_from_language_stats(stats)

    async def detect_dependencies(
        self, access_token: str, owner: str, repo: str, file_tree: list[str]
    ) -> list[Detection]:
        manifests = find_manifests(file_tree)
        if not manifests:
            return []

        batches = await asyncio.gather(
            *(
                self._parse_manifest(access_token, owner, repo, path, parser)
                for path, parser in manifests
            )
        )
        return [detection for batch in batches for detection in batch]

    async def _parse_manifest(
        self,
        access_token: str,
        owner: str,
        repo: str,
        path: str,
        parser: ManifestParser,
    ) -> list[Detection]:
        try:
            content = await self.github.get_file_content(access_token, owner, repo, path)
            if content is None:
                return []
            return parser(content, self.mappings)
        except Exception as exc:
            TECHSTACK_SIGNAL_FAILURES.labels(signal=Signal.DEPENDENCIES.value).inc()
            logger.warning(
                "manifest_parse_failed",
                repo=f"{owner}/{repo}",
                path=path,
                error=str(exc),
            )
            return []

    def detect_file_presence(self, file_tree: list[str]) -> list[Detection]:
        return detect_from_file_presence(file_tree, self.mappings)

    async def detect_readme(
        self, access_token: str, owner: str, repo: str, file_tree: list[str]
    ) -> list[Detection]:
        path = find_readme(file_tree)
        if path is None:
            return []

        try:
            content = await self.github.get_file_content(access_token, owner, repo, path)
        except Exception as exc:
            TECHSTACK_SIGNAL_FAILURES.labels(signal=Signal.README.value).inc()
            logger.warning("readme_fetch_failed", repo=f"{owner}/{repo}", error=str(exc))
            return []

        if content is None or len(content) > self.settings.readme_max_chars:
            return []
        return scan_readme_content(content, self.mappings)

    def detect_topics(self, topics: Iterable[str]) -> list[Detection]:
        return detect_from_topics(topics, self.mappings)
