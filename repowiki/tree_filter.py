"""
Tree filtering

Drops build output, dependency/VCS/editor directories, binary and media
files, lockfiles and source maps from a repository tree so that size
limits and LLM context only count useful source files.
"""

from repowiki.models import RepoTree

EXCLUDED_DIRS = frozenset({
    "node_modules", ".git", ".svn", ".hg",
    ".next", ".nuxt", ".svelte-kit", ".output", ".turbo", ".vercel",
    "dist", "build", "out", "target", "storybook-static",
    "coverage", "__pycache__", ".cache", ".tox", ".gradle",
    "vendor", "venv", ".venv", "env",
    ".idea", ".vscode",
})

EXCLUDED_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".avif", ".bmp",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".mp3", ".mp4", ".wav", ".ogg", ".webm", ".mov",
    ".zip", ".tar", ".gz", ".tgz", ".rar", ".7z",
    ".exe", ".dll", ".so", ".dylib", ".wasm", ".pyc", ".class", ".jar", ".o", ".a",
    ".lock", ".map",
})

EXCLUDED_FILENAMES = frozenset({
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lockb",
    "poetry.lock",
    "Cargo.lock",
    "Gemfile.lock",
    "composer.lock",
    ".DS_Store",
    "Thumbs.db",
})


def is_clean_path(path: str) -> bool:
    """Return True if ``path`` is worth showing to the analysis phases."""
    segments = path.split("/")
    filename = segments[-1]

    if filename in EXCLUDED_FILENAMES:
        return False

    if any(segment in EXCLUDED_DIRS for segment in segments[:-1]):
        return False

    dot_index = filename.rfind(".")
    if dot_index > 0 and filename[dot_index:].lower() in EXCLUDED_EXTENSIONS:
        return False

    return True


def filter_tree(tree: RepoTree) -> RepoTree:
    """Keep only clean blob nodes, preserving order.

    ``total_files`` and ``truncated`` are carried over untouched, so
    filtering an already-filtered tree returns an equal tree.
    """
    nodes = [n for n in tree.nodes if n.type == "blob" and is_clean_path(n.path)]
    return tree.model_copy(update={"nodes": nodes})
