"""Dockerfile tokenizer and extraction of the local sources a build copies.

Only the parts of the Dockerfile grammar needed to find ``COPY``/``ADD``
dependencies are modelled: parser directives (for the escape character),
comments, line continuations, leading ``--flag`` tokens, the JSON array
form, and heredocs, whose bodies are skipped rather than parsed as
instructions.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from docker_reuse.errors import ParseError
from docker_reuse.models import Instruction

DEFAULT_ESCAPE = "\\"
COPY_VERBS = frozenset({"add", "copy"})
HEREDOC_VERBS = frozenset({"add", "copy", "run"})
CROSS_STAGE_FLAG = "--from"

_DIRECTIVE_RE = re.compile(r"^#\s*([a-zA-Z][a-zA-Z0-9]*)\s*=\s*(.+?)\s*$")
_HEREDOC_RE = re.compile(r"^\d*<<(-?)([\"']?)([a-zA-Z_][a-zA-Z0-9_]*)\2$")
_FLAG_RE = re.compile(r"^(--\S*)\s*(.*)$", re.DOTALL)
_VERB_RE = re.compile(r"^(\S+)\s*(.*)$", re.DOTALL)


def _decode(recipe: bytes | str, path: Path | str | None) -> str:
    if isinstance(recipe, str):
        text = recipe
    else:
        try:
            text = recipe.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"recipe is not valid UTF-8 ({exc.reason})", path=path) from exc
    return text.lstrip("\ufeff")


def _read_escape_directive(lines: list[str], path: Path | str | None) -> str:
    escape = None
    for number, raw in enumerate(lines, start=1):
        match = _DIRECTIVE_RE.match(raw.strip())
        if not match:
            break
        name, value = match.group(1).lower(), match.group(2)
        if name != "escape":
            continue
        if escape is not None:
            raise ParseError("only one escape parser directive can be used", path=path, line=number)
        if value not in ("\\", "`"):
            raise ParseError(f"invalid escape token '{value}' does not match ` or \\", path=path, line=number)
        escape = value
    return escape or DEFAULT_ESCAPE


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")


def _join_continuations(lines: list[str], index: int, escape: str) -> tuple[str, int]:
    logical = ""
    current = lines[index]
    index += 1
    while True:
        body = current.rstrip(" \t")
        if not body.endswith(escape):
            return logical + current, index
        logical += body[: -len(escape)]
        while index < len(lines) and (not lines[index].strip() or _is_comment(lines[index])):
            index += 1
        if index >= len(lines):
            return logical, index
        current = lines[index]
        index += 1


def _split_flags(rest: str) -> tuple[tuple[str, ...], str]:
    flags: list[str] = []
    rest = rest.strip()
    while rest.startswith("--"):
        match = _FLAG_RE.match(rest)
        if match is None:
            break
        flags.append(match.group(1))
        rest = match.group(2)
    return tuple(flags), rest


def _split_args(rest: str) -> tuple[str, ...]:
    if rest.startswith("["):
        try:
            decoded = json.loads(rest)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, list) and all(isinstance(item, str) for item in decoded):
            return tuple(decoded)
    return tuple(rest.split())


def _skip_heredocs(
    args: tuple[str, ...],
    lines: list[str],
    index: int,
    path: Path | str | None,
    line_number: int,
) -> int:
    for arg in args:
        match = _HEREDOC_RE.match(arg)
        if match is None:
            continue
        strip_tabs, delimiter = match.group(1) == "-", match.group(3)
        while True:
            if index >= len(lines):
                raise ParseError(f"unterminated heredoc '{delimiter}'", path=path, line=line_number)
            body = lines[index]
            index += 1
            if strip_tabs:
                body = body.lstrip("\t")
            if body.rstrip("\r") == delimiter:
                break
    return index


def parse_recipe(recipe: bytes | str, *, path: Path | str | None = None) -> list[Instruction]:
    """Tokenize a Dockerfile into its top-level instructions."""
    lines = _decode(recipe, path).splitlines()
    escape = _read_escape_directive(lines, path)

    instructions: list[Instruction] = []
    index = 0
    while index < len(lines):
        if not lines[index].strip() or _is_comment(lines[index]):
            index += 1
            continue

        line_number = index + 1
        logical, index = _join_continuations(lines, index, escape)
        match = _VERB_RE.match(logical.strip())
        if match is None:
            continue
        verb = match.group(1).lower()
        flags, rest = _split_flags(match.group(2))
        args = _split_args(rest)

        if verb in COPY_VERBS and len(args) < 2:
            raise ParseError(f"{verb.upper()} requires at least two arguments", path=path, line=line_number)
        if verb in HEREDOC_VERBS:
            index = _skip_heredocs(args, lines, index, path, line_number)

        instructions.append(Instruction(verb=verb, flags=flags, args=args, line=line_number))

    if not instructions:
        raise ParseError("file with no instructions", path=path)
    return instructions


def _is_cross_stage(instruction: Instruction) -> bool:
    return any(flag.startswith(CROSS_STAGE_FLAG) for flag in instruction.flags)


def extract_sources(recipe: bytes | str, *, path: Path | str | None = None) -> list[str]:
    """Return the local paths copied into the image, in first-seen order.

    Cross-stage copies (``--from=...``) are skipped entirely and the last
    argument of each instruction is its destination, never a source.
    Heredoc tokens are inline content and are not reported either.
    """
    sources: list[str] = []
    seen: set[str] = set()
    for instruction in parse_recipe(recipe, path=path):
        if instruction.verb not in COPY_VERBS or _is_cross_stage(instruction):
            continue
        for source in instruction.args[:-1]:
            if source in seen or _HEREDOC_RE.match(source):
                continue
            seen.add(source)
            sources.append(source)
    return sources


def read_recipe(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ParseError(exc.strerror or str(exc), path=path) from exc
