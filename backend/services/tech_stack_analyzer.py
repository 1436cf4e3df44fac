"""Tech Stack Analyzer.

Detects the technologies a user works with across their GitHub
repositories and keeps the result as a per-user profile.

Read path (get_tech_stack):
1. Redis profile cache (6h TTL)             -> source "cache"
2. Persisted profile younger than 24h       -> source "database"
3. Fresh analysis, persisted and cached     -> source "fresh_analysis"

refresh_tech_stack evicts the cache entry and always re-analyzes
(source "forced_refresh").

An analysis pass processes at most ``techstack_max_repos`` non-fork
repositories, ``techstack_max_concurrency`` at a time. Any failure that
escapes the per-signal error handling aborts the pass; nothing is
persisted or cached in that case.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter, defaultdict
from datetime import UTC, datetime, timedelta
from typing import Iterable, Optional

from pydantic import ValidationError

from app.config import Settings, get_settings
from app.exceptions import GitHubRateLimitError
from app.logging_config import get_logger
from app.metrics import (
    TECHSTACK_ANALYSIS_DURATION,
    TECHSTACK_DETECTIONS,
    TECHSTACK_REQUESTS,
    TECHSTACK_SIGNAL_FAILURES,
)
from db.repository import DocumentRepository
from gateway.profile_cache import ProfileCache
from services.github_service import GitHubRepository, GitHubService
from services.signal_detectors import SignalDetectors
from services.tech_aggregator import aggregate_detections, build_signal_summary
from services.tech_mappings import FrameworkMappings, get_framework_mappings
from services.tech_models import (
    CategorizedTechStack,
    DetectedTechnology,
    Detection,
    ProfileSource,
    Signal,
    SignalDetection,
    TechStackProfile,
    TechStackResult,
)

logger = get_logger(__name__)


def select_target_repositories(
    repos: Iterable[GitHubRepository], limit: int
) -> list[GitHubRepository]:
    """Non-fork repositories, largest first, then most recently pushed."""
    candidates = [r for r in repos if not r.is_fork]
    # Two stable sorts: secondary key first
    candidates.sort(
        key=lambda r: r.pushed_at.timestamp() if r.pushed_at else float("-inf"),
        reverse=True,
    )
    candidates.sort(key=lambda r: r.size, reverse=True)
    return candidates[:limit]


class _AnalysisPass:
    """Mutable state shared by the repository workers of one pass."""

    def __init__(self) -> None:
        self.detections: list[SignalDetection] = []
        self.languages_halted = False

    def add(self, detections: Iterable[Detection], signal: Signal) -> None:
        self.detections.extend(SignalDetection.tag(d, signal) for d in detections)


class TechStackAnalyzer:
    """Cache and staleness coordinator over the signal detectors."""

    def __init__(
        self,
        github: GitHubService,
        repository: DocumentRepository,
        cache: ProfileCache,
        mappings: Optional[FrameworkMappings] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.github = github
        self.repository = repository
        self.cache = cache
        self.settings = settings or get_settings()
        self.mappings = mappings or get_framework_mappings()
        self.detectors = SignalDetectors(github, self.mappings, self.settings)

    # --- Public API ---

    async def get_tech_stack(self, user_id: str, access_token: str) -> TechStackResult:
        """Serve from cache, then a fresh-enough stored profile, else analyze."""
        cached = await self.cache.try_get(user_id)
        if cached is not None:
            logger.debug("techstack_cache_hit", user_id=user_id)
            return self._result(cached, ProfileSource.CACHE)

        stored = await self._load_stored(user_id)
        if stored is not None:
            if not self.is_stale(stored):
                await self.cache.set(user_id, stored)
                logger.debug("techstack_database_hit", user_id=user_id)
                return self._result(stored, ProfileSource.DATABASE)
            logger.info(
                "techstack_profile_stale",
                user_id=user_id,
                analyzed_at=stored.analyzed_at.isoformat(),
            )

        profile = await self._analyze_and_persist(user_id, access_token)
        return self._result(profile, ProfileSource.FRESH_ANALYSIS)

    async def refresh_tech_stack(self, user_id: str, access_token: str) -> TechStackResult:
        """Discard any cached profile and re-analyze unconditionally."""
        await self.cache.remove(user_id)
        profile = await self._analyze_and_persist(user_id, access_token)
        return self._result(profile, ProfileSource.FORCED_REFRESH)

    def is_stale(self, profile: TechStackProfile, now: Optional[datetime] = None) -> bool:
        analyzed_at = profile.analyzed_at
        if analyzed_at.tzinfo is None:
            analyzed_at = analyzed_at.replace(tzinfo=UTC)
        age = (now or datetime.now(UTC)) - analyzed_at
        return age >= timedelta(seconds=self.settings.techstack_staleness_seconds)

    # --- Read path helpers ---

    @staticmethod
    def _result(profile: TechStackProfile, source: ProfileSource) -> TechStackResult:
        TECHSTACK_REQUESTS.labels(source=source.value).inc()
        return TechStackResult(profile=profile, source=source)

    async def _load_stored(self, user_id: str) -> Optional[TechStackProfile]:
        document = await self.repository.get(TechStackProfile.document_id(user_id), user_id)
        if document is None:
            return None
        try:
            return TechStackProfile.model_validate(document)
        except ValidationError:
            logger.warning("techstack_stored_profile_invalid", user_id=user_id)
            return None

    # --- Analysis pass ---

    async def _analyze_and_persist(self, user_id: str, access_token: str) -> TechStackProfile:
        start = time.perf_counter()

        repos = await self.github.get_user_repositories(access_token)
        targets = select_target_repositories(repos, self.settings.techstack_max_repos)
        logger.info(
            "techstack_analysis_started",
            user_id=user_id,
            total_repos=len(repos),
            analyzed_repos=len(targets),
        )

        analysis = _AnalysisPass()
        await self._analyze_repositories(targets, access_token, analysis)

        # All workers are done; treat the collection as a snapshot from here on
        detections = tuple(analysis.detections)
        signal_summary = build_signal_summary(detections)
        technologies = aggregate_detections(
            detections, self.settings.techstack_max_technologies
        )
        self._log_results(detections, technologies)

        profile = TechStackProfile(
            id=TechStackProfile.document_id(user_id),
            user_id=user_id,
            categorized=CategorizedTechStack.from_flat(technologies),
            analyzed_repo_count=len(targets),
            signal_summary=signal_summary,
        )
        saved = await self.repository.upsert(profile.model_dump(mode="json"))
        profile = TechStackProfile.model_validate(saved)
        await self.cache.set(user_id, profile)

        duration = time.perf_counter() - start
        TECHSTACK_ANALYSIS_DURATION.observe(duration)
        logger.info(
            "techstack_analysis_completed",
            user_id=user_id,
            technologies=len(technologies),
            languages_halted=analysis.languages_halted,
            duration_ms=round(duration * 1000),
        )
        return profile

    async def _analyze_repositories(
        self,
        repos: list[GitHubRepository],
        access_token: str,
        analysis: _AnalysisPass,
    ) -> None:
        """Fan out over repositories with bounded concurrency.

        If any worker raises (or the pass is cancelled) the remaining
        workers are cancelled and the error propagates.
        """
        semaphore = asyncio.Semaphore(self.settings.techstack_max_concurrency)

        async def worker(repo: GitHubRepository) -> None:
            async with semaphore:
                await self._analyze_repository(repo, access_token, analysis)

        tasks = [asyncio.ensure_future(worker(repo)) for repo in repos]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _analyze_repository(
        self,
        repo: GitHubRepository,
        access_token: str,
        analysis: _AnalysisPass,
    ) -> None:
        owner, name = repo.owner, repo.name

        languages, file_tree = await asyncio.gather(
            self._detect_languages(access_token, owner, name, analysis),
            self.github.get_repo_file_tree(access_token, owner, name),
            return_exceptions=True,
        )
        if isinstance(languages, BaseException):
            raise languages
        analysis.add(languages, Signal.LANGUAGES)

        if isinstance(file_tree, BaseException):
            if not isinstance(file_tree, Exception):
                raise file_tree
            TECHSTACK_SIGNAL_FAILURES.labels(signal="file_tree").inc()
            logger.warning("repo_file_tree_failed", repo=repo.full_name, error=str(file_tree))
            return

        topics = self.detectors.detect_topics(repo.topics)
        file_presence = self.detectors.detect_file_presence(file_tree)
        dependencies, readme = await asyncio.gather(
            self.detectors.detect_dependencies(access_token, owner, name, file_tree),
            self.detectors.detect_readme(access_token, owner, name, file_tree),
        )

        analysis.add(dependencies, Signal.DEPENDENCIES)
        analysis.add(file_presence, Signal.FILE_PRESENCE)
        analysis.add(readme, Signal.README)
        analysis.add(topics, Signal.TOPICS)

    async def _detect_languages(
        self,
        access_token: str,
        owner: str,
        repo: str,
        analysis: _AnalysisPass,
    ) -> list[Detection]:
        """Language signal, disabled for the rest of the pass after a rate limit."""
        if analysis.languages_halted:
            return []
        try:
            return await self.detectors.detect_languages(access_token, owner, repo)
        except GitHubRateLimitError:
            if not analysis.languages_halted:
                analysis.languages_halted = True
                TECHSTACK_SIGNAL_FAILURES.labels(signal=Signal.LANGUAGES.value).inc()
                logger.warning("language_fetch_halted_rate_limit", repo=f"{owner}/{repo}")
            return []

    @staticmethod
    def _log_results(
        detections: tuple[SignalDetection, ...],
        technologies: list[DetectedTechnology],
    ) -> None:
        by_signal: dict[Signal, list[str]] = defaultdict(list)
        for d in detections:
            by_signal[d.signal].append(f"{d.name} [{d.category.value}]")
        for signal, names in by_signal.items():
            TECHSTACK_DETECTIONS.labels(signal=signal.value).inc(len(names))
            logger.debug(
                "techstack_raw_detections",
                signal=signal.value,
                count=len(names),
                names=sorted(names),
            )

        per_category = Counter(t.category.value for t in technologies)
        for category, count in per_category.items():
            logger.info(
                "techstack_final_category",
                category=category,
                count=count,
                names=sorted(t.name for t in technologies if t.category.value == category),
            )
        logger.info("techstack_dedup", raw=len(detections), unique=len(technologies))
