"""Tests for repository tree filtering."""

from __future__ import annotations

from repowiki.models import RepoTree, TreeNode
from repowiki.tree_filter import filter_tree, is_clean_path


def _tree(*paths: str) -> RepoTree:
    nodes = [TreeNode(path=p, type="blob", sha=str(i)) for i, p in enumerate(paths)]
    nodes.append(TreeNode(path="src", type="tree", sha="dir"))
    return RepoTree(total_files=len(paths), truncated=False, nodes=nodes)


def test_excluded_directories_are_dropped() -> None:
    assert not is_clean_path("node_modules/react/index.js")
    assert not is_clean_path("packages/app/dist/bundle.js")
    assert not is_clean_path(".git/HEAD")
    assert is_clean_path("src/index.ts")


def test_directory_names_only_match_directory_segments() -> None:
    # A file literally named "build" is not a build directory
    assert is_clean_path("scripts/build")
    assert is_clean_path("src/dist.ts")


def test_binary_extensions_and_lockfiles_are_dropped() -> None:
    assert not is_clean_path("assets/logo.PNG")
    assert not is_clean_path("public/font.woff2")
    assert not is_clean_path("package-lock.json")
    assert not is_clean_path("app/yarn.lock")
    assert not is_clean_path("dist.js.map")


def test_dotfiles_are_not_treated_as_extensions() -> None:
    assert is_clean_path(".map")
    assert is_clean_path(".eslintrc")


def test_filter_keeps_only_clean_blobs_in_order() -> None:
    tree = _tree("src/a.ts", "node_modules/x/index.js", "README.md", "img/logo.png")

    result = filter_tree(tree)

    assert result.paths() == ["src/a.ts", "README.md"]
    assert result.total_files == 4


def test_filter_is_idempotent() -> None:
    tree = _tree("src/a.ts", "build/out.js", "docs/guide.md", "yarn.lock")

    once = filter_tree(tree)
    twice = filter_tree(once)

    assert once == twice
