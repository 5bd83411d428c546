"""
Data models

Repository snapshots returned by the GitHub gateway, the structured
shapes requested from the LLM, and the final wiki artifact. Every model
serializes with camelCase keys (``startLine``, ``repoUrl``...) on the wire.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class _OutputModel(BaseModel):
    """Base for shapes the LLM fills in; validated before any field is used."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Repository snapshot
# ---------------------------------------------------------------------------


class RepoMeta(_WireModel):
    owner: str
    repo: str
    full_name: str
    description: Optional[str] = None
    default_branch: str = "main"
    language: Optional[str] = None
    languages: Dict[str, int] = Field(default_factory=dict)
    stars: int = 0
    readme: Optional[str] = None
    topics: List[str] = Field(default_factory=list)


class TreeNode(_WireModel):
    path: str
    type: Literal["blob", "tree"] = "blob"
    size: Optional[int] = None
    sha: str = ""


class RepoTree(_WireModel):
    """File listing of one branch.

    ``total_files`` counts blobs as reported upstream, before any filtering.
    ``truncated`` is set when the host capped the recursive listing.
    """

    total_files: int
    truncated: bool = False
    nodes: List[TreeNode] = Field(default_factory=list)

    def paths(self) -> List[str]:
        return [n.path for n in self.nodes]


class FileContent(_WireModel):
    path: str
    content: str
    size: int = 0
    sha: str = ""
    truncated: bool = False


class PreFetchedFile(_WireModel):
    path: str
    content: str


# ---------------------------------------------------------------------------
# LLM output shapes
# ---------------------------------------------------------------------------


class FeaturePlan(_OutputModel):
    id: str = Field(description="Kebab-case identifier, unique within the plan")
    name: str
    description: str
    rationale: str = ""
    file_paths: List[str] = Field(
        default_factory=list,
        description="5-10 exact paths from the directory listing that implement this feature",
    )
    related_feature_ids: List[str] = Field(default_factory=list)


class ArchitectureAnalysis(_OutputModel):
    description: str
    features: List[FeaturePlan]


class CitationRef(_OutputModel):
    file: str
    start_line: int
    end_line: int


class CodeSnippetOutput(_OutputModel):
    language: str
    code: str
    citation: CitationRef


class SectionOutput(_OutputModel):
    title: str
    content: str
    citations: List[CitationRef] = Field(default_factory=list)
    code_snippets: List[CodeSnippetOutput] = Field(default_factory=list)


class FeatureDeepDive(_OutputModel):
    id: str
    name: str
    summary: str
    sections: List[SectionOutput]
    related_features: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Wiki artifact
# ---------------------------------------------------------------------------


class Citation(_WireModel):
    file: str
    start_line: int
    end_line: int
    url: str


class CodeSnippet(_WireModel):
    language: str
    code: str
    citation: Citation


class Section(_WireModel):
    title: str
    content: str
    citations: List[Citation] = Field(default_factory=list)
    code_snippets: List[CodeSnippet] = Field(default_factory=list)


class Feature(_WireModel):
    id: str
    name: str
    summary: str
    sections: List[Section] = Field(default_factory=list)
    related_features: List[str] = Field(default_factory=list)


class Wiki(_WireModel):
    repo_url: str
    repo_name: str
    description: str
    generated_at: str
    features: List[Feature] = Field(default_factory=list)
