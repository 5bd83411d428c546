"""In-memory fakes for the repository gateway and the LLM."""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Set

from repowiki.errors import GenerationError, GitHubError, NOT_FOUND
from repowiki.models import (
    ArchitectureAnalysis,
    FeatureDeepDive,
    FeaturePlan,
    FileContent,
    RepoMeta,
    RepoTree,
    TreeNode,
)


def make_tree(paths: Iterable[str], truncated: bool = False) -> RepoTree:
    nodes = [TreeNode(path=p, type="blob", size=100, sha=f"sha-{i}") for i, p in enumerate(paths)]
    return RepoTree(total_files=len(nodes), truncated=truncated, nodes=nodes)


def make_meta(owner: str = "octocat", repo: str = "hello-world") -> RepoMeta:
    return RepoMeta(
        owner=owner,
        repo=repo,
        full_name=f"{owner}/{repo}",
        description="A sample repository",
        default_branch="main",
        language="TypeScript",
        languages={"TypeScript": 1000},
        stars=42,
        readme="# Hello World",
    )


def make_analysis(feature_count: int, paths: List[str], files_per_feature: int = 3) -> ArchitectureAnalysis:
    features = []
    for i in range(feature_count):
        start = (i * files_per_feature) % max(1, len(paths))
        chosen = (paths[start:] + paths[:start])[:files_per_feature]
        features.append(FeaturePlan(
            id=f"feature-{i}",
            name=f"Feature {i}",
            description=f"Does thing {i}",
            rationale="Users rely on it",
            file_paths=chosen,
        ))
    return ArchitectureAnalysis(description="A test project", features=features)


class FakeGitHub:
    """In-memory repository gateway."""

    def __init__(self, meta: RepoMeta, tree: RepoTree, files: Optional[Dict[str, str]] = None,
                 delay: float = 0.0):
        self.meta = meta
        self.tree = tree
        self.files = files if files is not None else {n.path: f"// {n.path}\nexport const x = 1;\n" for n in tree.nodes}
        self.delay = delay
        self.meta_calls = 0
        self.file_calls: List[str] = []

    async def fetch_repo_meta(self, owner: str, repo: str) -> RepoMeta:
        self.meta_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.meta

    async def fetch_repo_tree(self, owner: str, repo: str, default_branch: str = "main") -> RepoTree:
        return self.tree

    async def fetch_file_content(self, owner, repo, path, sha=None) -> FileContent:
        self.file_calls.append(path)
        if path not in self.files:
            raise GitHubError(f"missing {path}", NOT_FOUND, 404)
        return FileContent(path=path, content=self.files[path], size=len(self.files[path]), sha=sha or "")


class FakeLLM:
    """Structured-output fake: returns the given plan, then one deep-dive per feature."""

    def __init__(self, analysis: ArchitectureAnalysis, fail_ids: Optional[Set[str]] = None):
        self.analysis = analysis
        self.fail_ids = fail_ids or set()
        self.calls: List[str] = []
        self.chat_systems: List[str] = []

    async def generate_object(self, system, prompt, schema, label="", max_tokens=None):
        self.calls.append(label)
        await asyncio.sleep(0)
        if schema is ArchitectureAnalysis:
            return self.analysis
        feature_id = label.rsplit(":", 1)[-1]
        if feature_id in self.fail_ids:
            raise GenerationError(f"boom {feature_id}")
        plan = next(f for f in self.analysis.features if f.id == feature_id)
        path = plan.file_paths[0]
        return FeatureDeepDive.model_validate({
            "id": plan.id,
            "name": plan.name,
            "summary": f"Summary of {plan.name}",
            "sections": [{
                "title": "Overview",
                "content": f"See [{path}:1-2]",
                "citations": [{"file": path, "startLine": 1, "endLine": 2}],
                "codeSnippets": [{
                    "language": "typescript",
                    "code": "export const x = 1;",
                    "citation": {"file": path, "startLine": 2, "endLine": 2},
                }],
            }],
            "relatedFeatures": [],
        })

    async def stream_chat(self, system, messages):
        self.calls.append("chat")
        self.chat_systems.append(system)
        for token in ["Hello", " ", "world"]:
            yield token
