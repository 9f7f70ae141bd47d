from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

VERSION_CONTROL = "version-control"
CONTENT_DIGEST = "content-digest"
STRATEGIES = ("auto", VERSION_CONTROL, CONTENT_DIGEST)


@dataclass(frozen=True)
class Instruction:
    verb: str
    flags: tuple[str, ...]
    args: tuple[str, ...]
    line: int


@dataclass(frozen=True)
class IdentityToken:
    strategy: str
    value: str

    def __str__(self) -> str:
        return f"{self.strategy}:{self.value}"


@dataclass(frozen=True)
class ResolvedSource:
    declared: str
    matches: tuple[str, ...]


@dataclass(frozen=True)
class BuildArg:
    name: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


@dataclass(frozen=True)
class Fingerprint:
    digest: str
    lines: tuple[str, ...]


@dataclass(frozen=True)
class PlaceholderBinding:
    path: Path
    contents: str
    placeholder: str


class ReuseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    context_dir: str = Field(..., description="Docker build context directory")
    image_name: str = Field(..., min_length=1, description="Name of the image to find or build")
    template_path: str = Field(..., description="File to update with the new image tag")
    dockerfile: Optional[str] = Field(None, description="Dockerfile path (default: <context_dir>/Dockerfile)")
    placeholder: Optional[str] = Field(None, description="Explicit placeholder to replace in the template")
    build_args: list[str] = Field(default_factory=list, description="NAME[=VALUE] build arguments")
    extra_tags: list[str] = Field(default_factory=list, description="Additional tags for a newly built image")
    strategy: Literal["auto", "version-control", "content-digest"] = Field(
        "auto", description="Source identity strategy"
    )
    quiet: bool = Field(False, description="Suppress build output")


class ReuseResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    image_ref: str
    fingerprint: str
    lines: list[str]
    reused: bool
    template_updated: bool
    extra_refs: list[str] = Field(default_factory=list)


def model_dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump()
