"""
Wiki Generator Module

Runs the generation pipeline for one GitHub repository:

1. fetch metadata and the file tree, filter it, enforce the size ceiling
2. architecture analysis: the LLM plans the feature list
3. prefetch every planned source file once, with bounded concurrency
4. deep-dive each feature, a fixed-size batch at a time
5. assemble the wiki from the features that succeeded and cache it

Concurrent requests for the same repository share one run.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Union

from repowiki.architecture import analyze_architecture, find_config_files
from repowiki.config import PipelineSettings
from repowiki.deep_dive import deep_dive_feature
from repowiki.errors import FILE_TOO_LARGE, GitHubError, PipelineError
from repowiki.events import FeatureCompleteEvent, ProgressEvent
from repowiki.github_client import GitHubClient
from repowiki.models import ArchitectureAnalysis, Feature, FeaturePlan, PreFetchedFile, Wiki
from repowiki.prefetch import prefetch_files
from repowiki.tree_filter import filter_tree
from repowiki.wiki_cache import WikiCache, repo_key

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Union[ProgressEvent, FeatureCompleteEvent]], None]


class InflightRegistry:
    """Pipeline runs currently in flight, keyed by normalised ``owner/repo``.

    Runs are detached tasks: a caller going away does not cancel the run,
    so its result still reaches the cache.
    """

    def __init__(self):
        self._tasks: Dict[str, "asyncio.Task[Wiki]"] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, key: str) -> Optional["asyncio.Task[Wiki]"]:
        return self._tasks.get(key)

    def start(self, key: str, coro: Awaitable[Wiki]) -> "asyncio.Task[Wiki]":
        task = asyncio.ensure_future(coro)
        self._tasks[key] = task

        def _done(t: "asyncio.Task[Wiki]") -> None:
            if self._tasks.get(key) is t:
                del self._tasks[key]
            if not t.cancelled() and t.exception() is not None:
                logger.debug("In-flight run for %s ended with %r", key, t.exception())

        task.add_done_callback(_done)
        return task


def _emit(on_progress: Optional[ProgressCallback], event) -> None:
    if on_progress is None:
        return
    try:
        on_progress(event)
    except Exception as exc:
        # The listener's transport may already be gone; the run goes on
        logger.debug("Dropping progress event %s: %s", event.phase, exc)


class WikiGenerator:
    """Generate a feature wiki for a GitHub repository.

    Typical usage::

        gen = WikiGenerator(github=GitHubClient(), llm=LLMClient(), cache=WikiCache())
        wiki = await gen.generate_wiki("octocat", "hello-world", on_progress=print)
    """

    def __init__(
        self,
        github: GitHubClient,
        llm,
        cache: WikiCache,
        inflight: Optional[InflightRegistry] = None,
        settings: Optional[PipelineSettings] = None,
    ):
        self.github = github
        self.llm = llm
        self.cache = cache
        self.inflight = inflight if inflight is not None else InflightRegistry()
        self.settings = settings or PipelineSettings()

    # ---- public API ----

    async def generate_wiki(
        self,
        owner: str,
        repo: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Wiki:
        """Return the wiki for ``owner/repo``: cached, joined, or freshly generated.

        Raises:
            WikiError: classified failure of the run.
        """
        cached = self.cache.get(owner, repo)
        if cached is not None:
            logger.info("Cache hit for %s/%s", owner, repo)
            return cached

        key = repo_key(owner, repo)
        existing = self.inflight.get(key)
        if existing is not None:
            logger.info("Joining in-flight request for %s/%s", owner, repo)
            _emit(on_progress, ProgressEvent(
                phase="generating_features",
                message="Generation in progress...",
                progress=50,
            ))
            return await asyncio.shield(existing)

        task = self.inflight.start(key, self._run_pipeline(owner, repo, on_progress))
        return await asyncio.shield(task)

    # ---- pipeline ----

    async def _run_pipeline(
        self,
        owner: str,
        repo: str,
        on_progress: Optional[ProgressCallback],
    ) -> Wiki:
        settings = self.settings
        pipeline_start = time.monotonic()

        def _progress(phase: str, message: str, progress: float, **extra) -> None:
            logger.info("[WikiGenerator] %s/%s: %s", owner, repo, message)
            _emit(on_progress, ProgressEvent(phase=phase, message=message, progress=progress, **extra))

        # Step 1: metadata, tree, size guard, manifests
        _progress("fetching_metadata", "Fetching repository data...", 5)

        meta = await self.github.fetch_repo_meta(owner, repo)
        raw_tree = await self.github.fetch_repo_tree(owner, repo, meta.default_branch)
        tree = filter_tree(raw_tree)

        if len(tree.nodes) > settings.max_tree_files:
            raise GitHubError(
                f"This repository is too large to process "
                f"(over {settings.max_tree_files:,} source files after filtering)",
                FILE_TOO_LARGE,
            )

        if tree.truncated:
            logger.warning(
                "Git tree for %s/%s was truncated by GitHub; wiki may be incomplete",
                owner, repo,
            )

        shas = {n.path: n.sha for n in tree.nodes}
        config_paths = find_config_files(tree)
        config_files = await prefetch_files(
            self.github, owner, repo, config_paths, shas,
            max_lines=settings.config_max_lines,
            concurrency=settings.prefetch_concurrency,
        )

        gather_time = time.monotonic() - pipeline_start
        logger.info(
            "Phase 1 complete: %s/%s in %.1fs (%d of %d files kept, %d manifests)",
            owner, repo, gather_time, len(tree.nodes), tree.total_files, len(config_files),
        )

        # Step 2: architecture analysis
        _progress(
            "analyzing_architecture", "Analyzing codebase architecture...", 15,
            detail=f"{len(tree.nodes)} files in tree",
        )
        analysis_start = time.monotonic()
        analysis = await analyze_architecture(self.llm, meta, tree, config_files, settings)
        analysis_time = time.monotonic() - analysis_start
        logger.info(
            "Phase 2 complete: %d features identified in %.1fs",
            len(analysis.features), analysis_time,
        )
        if not analysis.features:
            raise PipelineError("Architecture analysis did not identify any features")

        # Step 3: prefetch every planned file once
        features_total = len(analysis.features)
        all_paths = list(dict.fromkeys(
            p for f in analysis.features for p in f.file_paths[:settings.feature_max_files]
        ))
        _progress(
            "generating_features", f"Fetching {len(all_paths)} source files...", 25,
            features_total=features_total, features_complete=0,
        )
        prefetch_start = time.monotonic()
        prefetched = await prefetch_files(
            self.github, owner, repo, all_paths, shas,
            max_lines=settings.feature_max_lines,
            concurrency=settings.prefetch_concurrency,
        )
        prefetched_map = {f.path: f for f in prefetched}
        logger.info(
            "Prefetched %d/%d files in %.1fs",
            len(prefetched), len(all_paths), time.monotonic() - prefetch_start,
        )

        # Step 4: per-feature deep-dives in batches
        _progress(
            "generating_features", "Generating feature documentation...", 30,
            features_total=features_total, features_complete=0,
        )
        feature_gen_start = time.monotonic()
        completed = 0

        def _files_for(plan: FeaturePlan) -> List[PreFetchedFile]:
            return [
                prefetched_map[p]
                for p in plan.file_paths[:settings.feature_max_files]
                if p in prefetched_map
            ]

        async def _generate_one(plan: FeaturePlan, index: int) -> Feature:
            nonlocal completed
            feature = await deep_dive_feature(
                self.llm, meta, tree, plan, _files_for(plan), analysis, settings,
            )
            completed += 1
            _emit(on_progress, FeatureCompleteEvent(
                feature=feature,
                feature_index=index,
                features_total=features_total,
                features_complete=completed,
            ))
            _progress(
                "generating_features",
                f"Generated {completed} of {features_total} features...",
                round(30 + completed / features_total * 60),
                features_total=features_total, features_complete=completed,
            )
            return feature

        features, failed = await self._generate_in_batches(analysis, _generate_one)
        feature_gen_time = time.monotonic() - feature_gen_start

        if not features:
            raise PipelineError("All feature generation calls failed")
        if failed:
            logger.warning(
                "%d/%d features failed: %s", len(failed), features_total, ", ".join(failed),
            )
        logger.info(
            "Phase 3 complete: %d/%d features in %.1fs",
            len(features), features_total, feature_gen_time,
        )

        # Step 5: assemble and cache
        _progress("assembling", "Assembling wiki...", 95)
        wiki = Wiki(
            repo_url=f"https://github.com/{owner}/{repo}",
            repo_name=repo,
            description=meta.description or analysis.description,
            generated_at=datetime.now(timezone.utc).isoformat(),
            features=features,
        )
        self.cache.put(owner, repo, wiki)

        logger.info(
            "Done: %s/%s, %d features in %.1fs (gather %.1fs, analysis %.1fs, features %.1fs)",
            owner, repo, len(wiki.features), time.monotonic() - pipeline_start,
            gather_time, analysis_time, feature_gen_time,
        )
        return wiki

    async def _generate_in_batches(
        self,
        analysis: ArchitectureAnalysis,
        generate_one: Callable[[FeaturePlan, int], Awaitable[Feature]],
    ):
        """Run deep-dives ``feature_batch_size`` at a time.

        Each batch settles completely before the next starts. Returns the
        successful features in plan order and the names of failed ones.
        """
        batch_size = max(1, self.settings.feature_batch_size)
        plans = analysis.features
        features: List[Feature] = []
        failed: List[str] = []

        for start in range(0, len(plans), batch_size):
            batch = plans[start:start + batch_size]
            results = await asyncio.gather(
                *[generate_one(plan, start + i) for i, plan in enumerate(batch)],
                return_exceptions=True,
            )
            for plan, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    failed.append(plan.name)
                    logger.error("Feature '%s' failed: %s", plan.name, result)
                else:
                    features.append(result)

        return features, failed
