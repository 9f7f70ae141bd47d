from __future__ import annotations

from pathlib import Path


class DockerReuseError(Exception):
    """Base class for every failure surfaced to the caller."""


class ParseError(DockerReuseError):
    def __init__(self, detail: str, *, path: Path | str | None = None, line: int | None = None) -> None:
        self.path = str(path) if path is not None else None
        self.line = line
        self.detail = detail
        location = self.path or "Dockerfile"
        if line is not None:
            location = f"{location}:{line}"
        super().__init__(f"Error parsing {location}: {detail}")


class PathNotFoundError(DockerReuseError):
    def __init__(self, source: str, *, path: Path | str) -> None:
        self.source = source
        self.path = str(path)
        super().__init__(f"'{source}' not found: no such file or directory '{self.path}'")


class ResolutionError(DockerReuseError):
    def __init__(self, detail: str, *, path: Path | str) -> None:
        self.path = str(path)
        self.detail = detail
        super().__init__(f"unable to identify '{self.path}': {detail}")


class ValidationError(DockerReuseError):
    def __init__(self, detail: str, *, path: Path | str | None = None) -> None:
        self.path = str(path) if path is not None else None
        self.detail = detail
        super().__init__(detail)


class ParameterError(DockerReuseError):
    def __init__(self, detail: str, *, name: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(detail)


class InfrastructureError(DockerReuseError):
    pass


class ImageBuildError(DockerReuseError):
    def __init__(self, detail: str, *, image_ref: str) -> None:
        self.image_ref = image_ref
        self.detail = detail
        super().__init__(f"{image_ref}: {detail}")
