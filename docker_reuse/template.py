from __future__ import annotations

import logging
import re
from pathlib import Path

from docker_reuse.errors import ValidationError
from docker_reuse.models import PlaceholderBinding
from docker_reuse.runtime import atomic_write_text, read_text_exact

logger = logging.getLogger(__name__)


def image_reference_pattern(image_name: str) -> re.Pattern[str]:
    # Image tags may contain letters, digits, underscores, periods and dashes.
    return re.compile(re.escape(image_name) + r"(?::[-.\w]+)?", re.ASCII)


def locate_placeholder(
    contents: str,
    image_name: str,
    placeholder: str | None = None,
    *,
    path: Path | str = "template",
) -> str:
    if placeholder:
        if placeholder not in contents:
            raise ValidationError(f"'{path}' does not contain '{placeholder}'", path=path)
        return placeholder

    references = image_reference_pattern(image_name).findall(contents)
    if not references:
        raise ValidationError(f"'{path}' does not contain references to '{image_name}'", path=path)
    first = references[0]
    if any(reference != first for reference in references[1:]):
        raise ValidationError(f"'{path}' contains inconsistent references to '{image_name}'", path=path)
    return first


def apply_tag(contents: str, placeholder: str, final_ref: str) -> tuple[str, bool]:
    if placeholder == final_ref:
        return contents, False
    updated = contents.replace(placeholder, final_ref)
    return updated, updated != contents


def load_template(path: Path, image_name: str, placeholder: str | None = None) -> PlaceholderBinding:
    try:
        contents = read_text_exact(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise ValidationError(f"unable to read '{path}': {exc}", path=path) from exc
    located = locate_placeholder(contents, image_name, placeholder, path=path)
    return PlaceholderBinding(path=path, contents=contents, placeholder=located)


def write_template(binding: PlaceholderBinding, final_ref: str) -> bool:
    updated, changed = apply_tag(binding.contents, binding.placeholder, final_ref)
    if not changed:
        logger.debug("'%s' already references %s", binding.path, final_ref)
        return False
    atomic_write_text(binding.path, updated)
    logger.info("Updated '%s': %s -> %s", binding.path, binding.placeholder, final_ref)
    return True
