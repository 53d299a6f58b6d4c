from collections.abc import Sequence
from fnmatch import fnmatch

from githubkit.versions.v2022_11_28.models import GitTree

from repomind.clients.models.github import FileNode, HiddenFile, RepositoryFileTree

# (directory, reason) pairs. A path is noise when it is the directory itself or anything below it.
NOISE_DIRECTORIES: list[tuple[str, str]] = [
    (".git", "Git System Directory"),
    ("node_modules", "Dependencies"),
    (".next", "Next.js Build Output"),
    (".idx", "Project Index"),
    (".vscode", "VS Code Configuration"),
]

# (fnmatch pattern, reason) pairs checked against the full path.
NOISE_FILE_PATTERNS: list[tuple[str, str]] = [
    ("*.DS_Store", "macOS System File"),
]


def get_noise_reason(path: str) -> str | None:
    """Return why a path should be hidden from the assistant, or None if it should be kept."""

    for directory, reason in NOISE_DIRECTORIES:
        if path == directory or path.startswith(f"{directory}/"):
            return reason

    for pattern, reason in NOISE_FILE_PATTERNS:
        if fnmatch(path, pattern):
            return reason

    return None


def filter_noise(nodes: Sequence[FileNode]) -> RepositoryFileTree:
    tree: list[FileNode] = []
    hidden_files: list[HiddenFile] = []

    for node in nodes:
        if reason := get_noise_reason(node.path):
            hidden_files.append(HiddenFile(path=node.path, reason=reason))
            continue

        tree.append(node)

    return RepositoryFileTree(tree=tree, hidden_files=hidden_files)


def repository_file_tree_from_git_tree(git_tree: GitTree) -> RepositoryFileTree:
    return filter_noise([FileNode.from_git_tree_item(tree_item=tree_item) for tree_item in git_tree.tree])


def render_tree_for_prompt(file_tree: RepositoryFileTree, limit: int = 2000) -> str:
    """Render the blob paths of a tree one per line, truncated to `limit` entries."""

    file_paths: list[str] = file_tree.file_paths

    rendered: str = "\n".join(file_paths[:limit])

    if len(file_paths) > limit:
        rendered += f"\n... and {len(file_paths) - limit} more files"

    return rendered
