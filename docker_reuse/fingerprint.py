from __future__ import annotations

import glob
import hashlib
import logging
import os
import posixpath
from collections.abc import Iterable, Mapping
from pathlib import Path

from docker_reuse.errors import ParameterError, PathNotFoundError
from docker_reuse.identity import Resolver, iter_regular_files
from docker_reuse.models import CONTENT_DIGEST, BuildArg, Fingerprint, IdentityToken, ResolvedSource
from docker_reuse.sources import extract_sources, read_recipe

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"


def parse_build_args(raw: Iterable[str], environ: Mapping[str, str] | None = None) -> list[BuildArg]:
    """Turn ``NAME=VALUE`` / ``NAME`` strings into build arguments.

    A bare ``NAME`` takes its value from the environment; when the variable
    is not set the argument cannot be fingerprinted and is rejected.
    """
    env = os.environ if environ is None else environ
    parsed: list[BuildArg] = []
    for item in raw:
        name, sep, value = item.partition("=")
        if not name:
            raise ParameterError(f"invalid build argument '{item}': missing name", name=item)
        if not sep:
            if name not in env:
                raise ParameterError(
                    f"build argument '{name}' has no value and is not set in the environment",
                    name=name,
                )
            value = env[name]
        parsed.append(BuildArg(name=name, value=value))
    return parsed


def normalize_source(source: str) -> str:
    # Sources are always relative to the build context, even when written as absolute paths.
    cleaned = posixpath.normpath(source).lstrip("/")
    return cleaned or "."


def _walk_match(context_dir: Path, match: str) -> list[str]:
    path = context_dir / match
    if not path.is_dir():
        return [match]
    return [file_path.relative_to(context_dir).as_posix() for file_path in iter_regular_files(path)]


def expand_source(context_dir: Path, source: str) -> ResolvedSource:
    """Expand a declared source into the regular files it contributes.

    A literal path that exists wins over glob expansion. Directories, literal
    or matched, are walked the same way content digests walk them, and every
    file is named by its path relative to the context.
    """
    normalized = normalize_source(source)
    candidate = context_dir / normalized
    if candidate.exists():
        matches = [normalized]
    else:
        matches = sorted(glob.glob(normalized, root_dir=context_dir, include_hidden=True))
        if not matches:
            raise PathNotFoundError(source, path=candidate)
        matches = [posixpath.normpath(Path(match).as_posix()) for match in matches]

    files = [name for match in matches for name in _walk_match(context_dir, match)]
    return ResolvedSource(declared=source, matches=tuple(files))


def format_source_line(name: str, token: IdentityToken) -> str:
    return f"{name}@{token}"


def digest_lines(lines: Iterable[str]) -> str:
    digest = hashlib.sha1()
    for line in lines:
        digest.update(f"{line}\n".encode("utf-8"))
    return digest.hexdigest()


def compute_fingerprint(
    context_dir: Path | str,
    dockerfile: Path | str | None,
    build_args: Iterable[str],
    resolver: Resolver,
    *,
    environ: Mapping[str, str] | None = None,
    quiet: bool = False,
) -> Fingerprint:
    args = parse_build_args(build_args, environ)

    context = Path(os.path.abspath(context_dir))
    recipe_path = Path(dockerfile) if dockerfile else context / DOCKERFILE_NAME
    recipe = read_recipe(recipe_path)
    sources = extract_sources(recipe, path=recipe_path)

    recipe_token = IdentityToken(strategy=CONTENT_DIGEST, value=hashlib.sha1(recipe).hexdigest())
    lines = [format_source_line(DOCKERFILE_NAME, recipe_token)]
    for source in sources:
        resolved = expand_source(context, source)
        if resolved.matches != (normalize_source(source),):
            logger.debug("'%s' expanded to %s", source, ", ".join(resolved.matches))
        for match in resolved.matches:
            token = resolver.resolve(context / match)
            lines.append(format_source_line(match, token))
    lines.extend(str(arg) for arg in args)

    if not quiet:
        for line in lines:
            logger.info(line)
    return Fingerprint(digest=digest_lines(lines), lines=tuple(lines))
