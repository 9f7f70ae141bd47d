from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from docker_reuse.errors import ResolutionError
from docker_reuse.models import CONTENT_DIGEST, VERSION_CONTROL, IdentityToken

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class Resolver(Protocol):
    def resolve(self, path: Path) -> IdentityToken: ...


def _open_repo(path: Path) -> Repo:
    start = path if path.is_dir() else path.parent
    try:
        repo = Repo(start, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as exc:
        raise ResolutionError("not inside a git repository", path=path) from exc
    if repo.bare or repo.working_tree_dir is None:
        repo.close()
        raise ResolutionError("git repository has no working tree", path=path)
    return repo


def _worktree_relative(repo: Repo, path: Path) -> str:
    # Both sides go through realpath so symlinked work trees compare equal.
    root = Path(repo.working_tree_dir).resolve()
    target = path.resolve()
    try:
        return target.relative_to(root).as_posix()
    except ValueError as exc:
        raise ResolutionError(
            f"cannot place path relative to work tree root '{root}'", path=path
        ) from exc


class GitResolver:
    """Identify a path by the last commit that touched its subtree.

    Only the subtree rooted at the path has to be clean: staged, unstaged
    and untracked changes elsewhere in the repository are irrelevant.
    """

    strategy = VERSION_CONTROL

    def resolve(self, path: Path) -> IdentityToken:
        absolute = Path(os.path.abspath(path))
        repo = _open_repo(absolute)
        with repo:
            rel = _worktree_relative(repo, absolute)
            try:
                dirty = repo.is_dirty(index=True, working_tree=True, untracked_files=True, path=rel)
            except GitCommandError as exc:
                raise ResolutionError(f"unable to check for local modifications: {exc}", path=path) from exc
            if dirty:
                raise ResolutionError("local modifications detected", path=path)

            try:
                last_commit = next(repo.iter_commits(paths=rel, max_count=1), None)
            except (GitCommandError, ValueError) as exc:
                raise ResolutionError("no commit history", path=path) from exc
            if last_commit is None:
                raise ResolutionError("no commit history", path=path)
            return IdentityToken(strategy=self.strategy, value=last_commit.hexsha)


def iter_regular_files(root: Path) -> Iterator[Path]:
    """Yield files under ``root`` in lexical walk order.

    Hidden directories below the root are skipped; symlinked directories
    are not followed.
    """
    if not root.is_dir():
        yield root
        return

    with os.scandir(root) as scanner:
        entries = sorted(scanner, key=lambda entry: entry.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if entry.name.startswith("."):
                continue
            yield from iter_regular_files(Path(entry.path))
        elif entry.is_file():
            yield Path(entry.path)


class ContentDigestResolver:
    strategy = CONTENT_DIGEST

    def resolve(self, path: Path) -> IdentityToken:
        digest = hashlib.sha1()
        try:
            for file_path in iter_regular_files(Path(path)):
                with open(file_path, "rb") as handle:
                    for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                        digest.update(chunk)
        except OSError as exc:
            raise ResolutionError(exc.strerror or str(exc), path=path) from exc
        return IdentityToken(strategy=self.strategy, value=digest.hexdigest())


class AutoResolver:
    """Prefer the commit identity, fall back to hashing file contents."""

    def __init__(self, primary: Resolver | None = None, fallback: Resolver | None = None) -> None:
        self.primary = primary or GitResolver()
        self.fallback = fallback or ContentDigestResolver()

    def resolve(self, path: Path) -> IdentityToken:
        try:
            return self.primary.resolve(path)
        except ResolutionError as exc:
            logger.warning(
                "unable to use git commit hash for '%s': %s; falling back to file content hashing",
                path,
                exc.detail,
            )
        return self.fallback.resolve(path)


def make_resolver(strategy: str) -> Resolver:
    if strategy == "auto":
        return AutoResolver()
    if strategy == VERSION_CONTROL:
        return GitResolver()
    if strategy == CONTENT_DIGEST:
        return ContentDigestResolver()
    raise ValueError(f"Unsupported identity strategy: {strategy}")
