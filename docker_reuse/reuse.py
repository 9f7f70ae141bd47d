from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Optional

import docker

from docker_reuse.builder import build_image, push_image, tag_image
from docker_reuse.errors import ValidationError
from docker_reuse.fingerprint import compute_fingerprint, parse_build_args
from docker_reuse.identity import make_resolver
from docker_reuse.models import Fingerprint, ReuseRequest, ReuseResponse
from docker_reuse.registry import get_docker_client, image_exists
from docker_reuse.template import load_template, write_template

logger = logging.getLogger(__name__)


def _context_dir(raw: str) -> Path:
    context_dir = Path(os.path.abspath(raw))
    if not context_dir.is_dir():
        raise ValidationError(f"Build context '{context_dir}' is not a directory.", path=context_dir)
    return context_dir


def compute_only(
    context_dir: str,
    dockerfile: Optional[str],
    build_args: Iterable[str],
    strategy: str,
    *,
    environ: Mapping[str, str] | None = None,
    quiet: bool = False,
) -> Fingerprint:
    resolver = make_resolver(strategy)
    return compute_fingerprint(
        _context_dir(context_dir),
        dockerfile,
        build_args,
        resolver,
        environ=environ,
        quiet=quiet,
    )


def find_or_build_and_push(
    request: ReuseRequest,
    client: docker.DockerClient | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ReuseResponse:
    context_dir = _context_dir(request.context_dir)

    # Validate the template before anything is built or pushed.
    binding = load_template(Path(request.template_path), request.image_name, request.placeholder)

    fingerprint = compute_only(
        request.context_dir,
        request.dockerfile,
        request.build_args,
        request.strategy,
        environ=environ,
        quiet=request.quiet,
    )
    image_ref = f"{request.image_name}:{fingerprint.digest}"
    logger.info("Target image: %s", image_ref)

    client = client or get_docker_client()
    reused = image_exists(client, image_ref)
    extra_refs: list[str] = []
    if reused:
        logger.info("Image already exists")
    else:
        dockerfile = Path(os.path.abspath(request.dockerfile)) if request.dockerfile else None
        build_args = parse_build_args(request.build_args, environ)
        build_image(client, context_dir, dockerfile, image_ref, build_args, quiet=request.quiet)
        extra_refs = tag_image(client, image_ref, request.image_name, request.extra_tags)
        for ref in [image_ref, *extra_refs]:
            push_image(client, ref, quiet=request.quiet)

    template_updated = write_template(binding, image_ref)
    return ReuseResponse(
        image_ref=image_ref,
        fingerprint=fingerprint.digest,
        lines=list(fingerprint.lines),
        reused=reused,
        template_updated=template_updated,
        extra_refs=extra_refs,
    )
