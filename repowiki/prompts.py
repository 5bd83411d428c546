"""
Prompt templates for architecture analysis, feature deep-dives and chat.
"""

from typing import List, Optional

from repowiki.models import ArchitectureAnalysis, FeaturePlan, PreFetchedFile, RepoMeta, RepoTree

README_EXCERPT_CHARS = 3000

EXTENSION_LANGUAGES = {
    "ts": "typescript", "tsx": "typescript",
    "js": "javascript", "jsx": "javascript", "mjs": "javascript", "cjs": "javascript",
    "py": "python", "go": "go", "rs": "rust", "rb": "ruby", "java": "java",
    "kt": "kotlin", "kts": "kotlin", "swift": "swift", "c": "c", "h": "c",
    "cc": "cpp", "cpp": "cpp", "hpp": "cpp", "cs": "csharp", "php": "php",
    "ex": "elixir", "exs": "elixir", "scala": "scala", "sh": "bash",
    "json": "json", "yaml": "yaml", "yml": "yaml", "toml": "toml",
    "md": "markdown", "html": "html", "css": "css", "sql": "sql",
}


def language_for_path(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path.rsplit("/", 1)[-1] else ""
    return EXTENSION_LANGUAGES.get(ext, ext)


def _tree_listing(tree: RepoTree, limit: int) -> str:
    listing = "\n".join(n.path for n in tree.nodes[:limit])
    if len(tree.nodes) > limit:
        listing += f"\n(Showing {limit} of {len(tree.nodes)} files)"
    return listing


def _repo_header(meta: RepoMeta) -> str:
    return f"""## Repository: {meta.full_name}
Description: {meta.description or "No description"}
Primary language: {meta.language or "Unknown"}
Languages: {", ".join(meta.languages.keys()) or "Unknown"}
Topics: {", ".join(meta.topics) or "None"}
Stars: {meta.stars}"""


def _file_blocks(files: List[PreFetchedFile]) -> str:
    return "\n\n".join(
        f"### {f.path}\n```{language_for_path(f.path)}\n{f.content}\n```" for f in files
    )


# ---------------------------------------------------------------------------
# Architecture analysis
# ---------------------------------------------------------------------------


def build_architecture_analysis_prompt() -> str:
    return """You are a senior software architect mapping a GitHub repository into the user-facing features a documentation wiki should cover.

## Rules

1. Identify the distinct capabilities a user or developer of this software interacts with (e.g. "Routing", "State Management", "Plugin System"). Group related sub-capabilities into ONE feature instead of listing each separately.
2. Internal plumbing (build configuration, CI, test infrastructure, compiler internals in another language) is NOT a feature.
3. Aim for 5 to 12 features. Never exceed 15.
4. For every feature list 5-10 `filePaths` that implement it. Copy paths EXACTLY as they appear in the directory listing; never invent or shorten a path. Prefer real implementations over thin re-export or wrapper files.
5. `id` must be kebab-case and unique (e.g. "state-management").
6. `relatedFeatureIds` may only reference ids from your own output.
7. `rationale` explains in one sentence why this is a user-facing feature.
8. `description` at the top level summarises the whole project in one or two sentences.
9. In monorepos focus on the primary package, usually the one matching the repository name."""


def build_architecture_analysis_context(
    meta: RepoMeta,
    tree: RepoTree,
    config_files: List[PreFetchedFile],
    max_tree_paths: int,
) -> str:
    readme_section = f"## README\n\n{meta.readme}" if meta.readme else "(No README available)"
    config_section = (
        f"## Build / package manifests\n\n{_file_blocks(config_files)}"
        if config_files
        else "(No build or package manifests found)"
    )
    return f"""{_repo_header(meta)}

{readme_section}

{config_section}

## Directory Structure
```
{_tree_listing(tree, max_tree_paths)}
```"""


# ---------------------------------------------------------------------------
# Feature deep-dive
# ---------------------------------------------------------------------------


def build_feature_deep_dive_prompt() -> str:
    return """You are a technical writer documenting ONE feature of a software project for its users, based only on the source files provided.

## Rules

1. Write 2-4 sections (for example Overview, Key APIs, Usage, Configuration). Explain what users can do and how, not internal trivia.
2. Back every significant claim with a citation: the exact file path from the provided files plus the start and end line numbers. Inside section content you may reference a citation inline as `[path/to/file.ext:12-30]`.
3. Code snippets must be copied VERBATIM from the provided files, each with the citation of the lines it was copied from. Prefer snippets that show public APIs and usage.
4. Use empty arrays when a section has no citations or no snippets. Never fabricate files, line numbers or code.
5. `summary` is one or two sentences.
6. `relatedFeatures` may only contain ids from the list of other features.
7. Do not output URLs; links are generated from your citations."""


def build_feature_deep_dive_context(
    meta: RepoMeta,
    tree: RepoTree,
    plan: FeaturePlan,
    files: List[PreFetchedFile],
    analysis: ArchitectureAnalysis,
    max_tree_paths: int,
) -> str:
    readme = (meta.readme or "")[:README_EXCERPT_CHARS]
    readme_section = f"## README (excerpt)\n\n{readme}" if readme else "(No README available)"
    siblings = "\n".join(
        f"- {f.id}: {f.name} - {f.description}" for f in analysis.features if f.id != plan.id
    ) or "(none)"
    return f"""## Feature to document
id: {plan.id}
name: {plan.name}
description: {plan.description}

{_repo_header(meta)}

{readme_section}

## Other features in this wiki
{siblings}

## Directory Structure
```
{_tree_listing(tree, max_tree_paths)}
```

## Source files for this feature

{_file_blocks(files)}"""


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def build_chat_system_prompt(repo: str, wiki_markdown: str, active_feature_id: Optional[str]) -> str:
    return f"""You are a helpful assistant that answers questions about the {repo} repository using its generated wiki documentation.

## Wiki Documentation

{wiki_markdown}

## Instructions

- Answer ONLY from the wiki documentation above. If the answer is not there, say so plainly.
- Be concise and direct, and use markdown formatting.
- When referring to code or files, link the citation URLs from the wiki.
- The user is currently viewing the "{active_feature_id or "overview"}" feature page.
- If a question is not covered, point to the parts of the wiki that are most relevant."""
