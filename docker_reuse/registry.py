from __future__ import annotations

import logging

import docker
from docker.errors import APIError, DockerException, NotFound

from docker_reuse.errors import InfrastructureError

logger = logging.getLogger(__name__)


def get_docker_client() -> docker.DockerClient:
    try:
        client = docker.from_env()
        client.ping()
        return client
    except DockerException as exc:
        raise InfrastructureError(f"Docker is not available: {exc}") from exc


def image_exists(client: docker.DockerClient, image_ref: str) -> bool:
    """Ask the registry (through the daemon) whether ``image_ref`` is published.

    Only a "not found" answer means the image is missing; any other failure
    is surfaced, never read as absence.
    """
    try:
        data = client.images.get_registry_data(image_ref)
    except NotFound:
        logger.debug("%s not found in registry", image_ref)
        return False
    except (APIError, DockerException) as exc:
        raise InfrastructureError(f"unable to query registry for {image_ref}: {exc}") from exc
    logger.debug("%s found in registry (%s)", image_ref, data.id)
    return True
