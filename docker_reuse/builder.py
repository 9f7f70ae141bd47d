from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import docker
from docker.errors import APIError, BuildError, DockerException

from docker_reuse.errors import ImageBuildError
from docker_reuse.models import BuildArg

logger = logging.getLogger(__name__)


def split_image_ref(image_ref: str) -> tuple[str, str]:
    repository, _, tag = image_ref.rpartition(":")
    if not repository or "/" in tag:
        return image_ref, "latest"
    return repository, tag


def _consume(output: Iterator[dict[str, Any]], image_ref: str, *, quiet: bool) -> None:
    for entry in output:
        if "error" in entry:
            raise ImageBuildError(str(entry["error"]).strip(), image_ref=image_ref)
        if quiet:
            continue
        if "stream" in entry:
            print(entry["stream"], end="")
        elif entry.get("status") and not entry.get("progress"):
            prefix = f"{entry['id']}: " if entry.get("id") else ""
            print(f"{prefix}{entry['status']}")


def build_image(
    client: docker.DockerClient,
    context_dir: Path,
    dockerfile: Path | None,
    image_ref: str,
    build_args: Iterable[BuildArg],
    *,
    quiet: bool = False,
) -> None:
    buildargs = {arg.name: arg.value for arg in build_args}
    logger.info("Building %s", image_ref)
    try:
        output = client.api.build(
            path=str(context_dir),
            dockerfile=str(dockerfile) if dockerfile else None,
            tag=image_ref,
            buildargs=buildargs or None,
            decode=True,
            rm=True,
            forcerm=True,
            quiet=quiet,
        )
        _consume(output, image_ref, quiet=quiet)
    except (BuildError, APIError, DockerException) as exc:
        raise ImageBuildError(f"docker build failed: {exc}", image_ref=image_ref) from exc


def tag_image(
    client: docker.DockerClient,
    image_ref: str,
    repository: str,
    extra_tags: Iterable[str],
) -> list[str]:
    tagged: list[str] = []
    try:
        image = client.images.get(image_ref)
        for tag in extra_tags:
            if not image.tag(repository, tag=tag):
                raise ImageBuildError(f"unable to tag image as {repository}:{tag}", image_ref=image_ref)
            tagged.append(f"{repository}:{tag}")
    except DockerException as exc:
        raise ImageBuildError(f"docker tag failed: {exc}", image_ref=image_ref) from exc
    return tagged


def push_image(client: docker.DockerClient, image_ref: str, *, quiet: bool = False) -> None:
    repository, tag = split_image_ref(image_ref)
    logger.info("Pushing %s", image_ref)
    try:
        output = client.api.push(repository, tag=tag, stream=True, decode=True)
        _consume(output, image_ref, quiet=quiet)
    except (APIError, DockerException) as exc:
        raise ImageBuildError(f"docker push failed: {exc}", image_ref=image_ref) from exc
