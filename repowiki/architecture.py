"""
Architecture analysis

First LLM phase: partitions a repository into a plan of user-facing
features, each with candidate source files. The model's plan is then
checked against the real tree: paths that do not exist are dropped,
ids are normalised and the feature count is capped.
"""

import logging
import re
from typing import Dict, List

from repowiki.config import PipelineSettings
from repowiki.models import ArchitectureAnalysis, FeaturePlan, PreFetchedFile, RepoMeta, RepoTree
from repowiki.prompts import build_architecture_analysis_context, build_architecture_analysis_prompt

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = frozenset({
    "package.json",
    "tsconfig.json",
    "deno.json",
    "deno.jsonc",
    "Cargo.toml",
    "pyproject.toml",
    "setup.py",
    "setup.cfg",
    "requirements.txt",
    "go.mod",
    "build.gradle",
    "build.gradle.kts",
    "pom.xml",
    "Gemfile",
    "mix.exs",
    "composer.json",
})


def find_config_files(tree: RepoTree) -> List[str]:
    """Return manifest paths found at the repository root or one level deep."""
    found = []
    for node in tree.nodes:
        segments = node.path.split("/")
        if len(segments) <= 2 and segments[-1] in CONFIG_FILENAMES:
            found.append(node.path)
    return found


def to_kebab_case(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "feature"


def _normalize_ids(features: List[FeaturePlan]) -> List[FeaturePlan]:
    """Kebab-case every id, suffix duplicates, and re-point related ids."""
    seen: Dict[str, int] = {}
    renamed: Dict[str, str] = {}
    result = []
    for feature in features:
        base = to_kebab_case(feature.id or feature.name)
        count = seen.get(base, 0) + 1
        seen[base] = count
        new_id = base if count == 1 else f"{base}-{count}"
        renamed.setdefault(feature.id, new_id)
        result.append(feature.model_copy(update={"id": new_id}))

    known = {f.id for f in result}
    for i, feature in enumerate(result):
        related = []
        for rid in feature.related_feature_ids:
            target = renamed.get(rid, to_kebab_case(rid))
            if target in known and target != feature.id and target not in related:
                related.append(target)
        result[i] = feature.model_copy(update={"related_feature_ids": related})
    return result


def validate_plan(
    analysis: ArchitectureAnalysis,
    tree: RepoTree,
    max_features: int,
) -> ArchitectureAnalysis:
    """Apply the post-processing rules to a raw model plan."""
    tree_paths = set(tree.paths())
    features = []
    for feature in analysis.features:
        kept = [p for p in dict.fromkeys(feature.file_paths) if p in tree_paths]
        dropped = len(feature.file_paths) - len(kept)
        if dropped:
            logger.info("Feature '%s': dropped %d paths not present in the tree", feature.name, dropped)
        features.append(feature.model_copy(update={"file_paths": kept}))

    if len(features) > max_features:
        logger.warning("Capping features from %d to %d", len(features), max_features)
        features = features[:max_features]

    return ArchitectureAnalysis(description=analysis.description, features=_normalize_ids(features))


async def analyze_architecture(
    llm,
    meta: RepoMeta,
    tree: RepoTree,
    config_files: List[PreFetchedFile],
    settings: PipelineSettings,
) -> ArchitectureAnalysis:
    """Run the architecture-analysis model call and validate its plan.

    Raises:
        GenerationError: if the model produced no usable plan.
    """
    context = build_architecture_analysis_context(
        meta, tree, config_files, settings.architecture_max_tree_paths,
    )
    raw = await llm.generate_object(
        build_architecture_analysis_prompt(),
        context,
        ArchitectureAnalysis,
        label=f"architecture:{meta.full_name}",
        max_tokens=settings.architecture_max_tokens,
    )
    analysis = validate_plan(raw, tree, settings.max_features)
    for f in analysis.features:
        logger.info("  - %s (%s): %d files", f.name, f.id, len(f.file_paths))
    return analysis
