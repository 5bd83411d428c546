"""
Feature deep-dive

Second LLM phase: turns one planned feature and its source files into
documented sections. Citation URLs are always built here from the
model's file/line references, never taken from the model.
"""

import logging
import time
from typing import Iterable, List, Optional, Set

from repowiki.config import PipelineSettings
from repowiki.errors import GenerationError
from repowiki.models import (
    ArchitectureAnalysis,
    Citation,
    CitationRef,
    CodeSnippet,
    Feature,
    FeatureDeepDive,
    FeaturePlan,
    PreFetchedFile,
    RepoMeta,
    RepoTree,
    Section,
)
from repowiki.prompts import build_feature_deep_dive_context, build_feature_deep_dive_prompt

logger = logging.getLogger(__name__)


def build_base_url(owner: str, repo: str, default_branch: str) -> str:
    return f"https://github.com/{owner}/{repo}/blob/{default_branch}"


def build_citation_url(base_url: str, file: str, start_line: int, end_line: int) -> str:
    return f"{base_url}/{file}#L{start_line}-L{end_line}"


def _to_citation(ref: CitationRef, base_url: str, known_paths: Set[str]) -> Optional[Citation]:
    if ref.file not in known_paths:
        return None
    if ref.start_line < 1 or ref.end_line < ref.start_line:
        return None
    return Citation(
        file=ref.file,
        start_line=ref.start_line,
        end_line=ref.end_line,
        url=build_citation_url(base_url, ref.file, ref.start_line, ref.end_line),
    )


def transform_feature(
    data: FeatureDeepDive,
    plan: FeaturePlan,
    base_url: str,
    known_paths: Set[str],
    feature_ids: Iterable[str],
) -> Feature:
    """Build the final Feature from model output.

    The plan's id is kept; citations pointing outside the tree or with an
    impossible line range are dropped.
    """
    dropped = 0
    sections = []
    for s in data.sections:
        citations = []
        for ref in s.citations:
            citation = _to_citation(ref, base_url, known_paths)
            if citation is None:
                dropped += 1
            else:
                citations.append(citation)
        snippets = []
        for cs in s.code_snippets:
            citation = _to_citation(cs.citation, base_url, known_paths)
            if citation is None:
                dropped += 1
            else:
                snippets.append(CodeSnippet(language=cs.language, code=cs.code, citation=citation))
        sections.append(Section(title=s.title, content=s.content, citations=citations, code_snippets=snippets))

    if dropped:
        logger.info("Feature '%s': dropped %d citations outside the tree", plan.name, dropped)

    valid_ids = set(feature_ids) - {plan.id}
    related = [r for r in dict.fromkeys(data.related_features) if r in valid_ids]

    return Feature(
        id=plan.id,
        name=data.name or plan.name,
        summary=data.summary,
        sections=sections,
        related_features=related,
    )


async def deep_dive_feature(
    llm,
    meta: RepoMeta,
    tree: RepoTree,
    plan: FeaturePlan,
    files: List[PreFetchedFile],
    analysis: ArchitectureAnalysis,
    settings: PipelineSettings,
) -> Feature:
    """Document one feature.

    Raises:
        GenerationError: if no files were prefetched for the feature, or the
            model returned nothing usable.
    """
    if not files:
        raise GenerationError(f'No files fetched for feature "{plan.name}"')

    files = files[:settings.feature_max_files]
    context = build_feature_deep_dive_context(
        meta, tree, plan, files, analysis, settings.deep_dive_max_tree_paths,
    )
    logger.info("  Feature '%s': %d files, %d chars context", plan.name, len(files), len(context))

    start = time.monotonic()
    data = await llm.generate_object(
        build_feature_deep_dive_prompt(),
        context,
        FeatureDeepDive,
        label=f"feature:{meta.full_name}:{plan.id}",
        max_tokens=settings.deep_dive_max_tokens,
    )
    logger.info("  Feature '%s' LLM done in %dms", plan.name, (time.monotonic() - start) * 1000)

    if not data.sections:
        raise GenerationError(f'Empty documentation for feature "{plan.name}"')

    base_url = build_base_url(meta.owner, meta.repo, meta.default_branch)
    return transform_feature(
        data, plan, base_url, set(tree.paths()), [f.id for f in analysis.features],
    )
