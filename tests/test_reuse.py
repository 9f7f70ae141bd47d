from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from docker.errors import NotFound
from pydantic import ValidationError as RequestValidationError

from docker_reuse.errors import ParameterError, ValidationError
from docker_reuse.models import ReuseRequest
from docker_reuse.reuse import compute_only, find_or_build_and_push


class FakeImages:
    def __init__(self, exists: bool) -> None:
        self.exists = exists
        self.queries: list[str] = []
        self.tagged: list[tuple[str, str]] = []

    def get_registry_data(self, name: str) -> SimpleNamespace:
        self.queries.append(name)
        if not self.exists:
            raise NotFound("manifest unknown")
        return SimpleNamespace(id="sha256:1")

    def get(self, name: str) -> SimpleNamespace:
        def _tag(repository: str, tag: str | None = None) -> bool:
            self.tagged.append((repository, tag))
            return True

        return SimpleNamespace(tag=_tag)


class FakeAPI:
    def __init__(self) -> None:
        self.builds: list[dict] = []
        self.pushes: list[tuple[str, str]] = []

    def build(self, **kwargs):
        self.builds.append(kwargs)
        return iter([{"stream": "built\n"}])

    def push(self, repository: str, tag: str | None = None, stream: bool = False, decode: bool = False):
        self.pushes.append((repository, tag))
        return iter([{"status": "Pushed"}])


class FakeClient:
    def __init__(self, exists: bool) -> None:
        self.images = FakeImages(exists)
        self.api = FakeAPI()


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _project(root: Path) -> Path:
    _write(root / "Dockerfile", "FROM python:3.12-slim\nCOPY app.py /app/\n")
    _write(root / "app.py", "print('hi')\n")
    return _write(root / "deploy" / "k8s.yaml", "containers:\n  - image: example/app:old\n")


def _request(root: Path, template: Path, **overrides) -> ReuseRequest:
    payload = {
        "context_dir": str(root),
        "image_name": "example/app",
        "template_path": str(template),
        "strategy": "content-digest",
        "quiet": True,
    }
    payload.update(overrides)
    return ReuseRequest(**payload)


def test_existing_image_is_reused_and_template_updated(tmp_path: Path) -> None:
    template = _project(tmp_path)
    client = FakeClient(exists=True)

    response = find_or_build_and_push(_request(tmp_path, template), client)

    expected = compute_only(str(tmp_path), None, [], "content-digest", quiet=True)
    assert response.image_ref == f"example/app:{expected.digest}"
    assert response.reused is True
    assert response.template_updated is True
    assert client.images.queries == [response.image_ref]
    assert client.api.builds == []
    assert template.read_text(encoding="utf-8") == f"containers:\n  - image: {response.image_ref}\n"


def test_missing_image_is_built_tagged_and_pushed(tmp_path: Path) -> None:
    template = _project(tmp_path)
    client = FakeClient(exists=False)

    response = find_or_build_and_push(
        _request(tmp_path, template, build_args=["VERSION"], extra_tags=["latest"]),
        client,
        environ={"VERSION": "2.0"},
    )

    assert response.reused is False
    assert response.lines[-1] == "VERSION=2.0"
    assert response.extra_refs == ["example/app:latest"]
    build = client.api.builds[0]
    assert build["tag"] == response.image_ref
    assert build["path"] == str(tmp_path)
    assert build["buildargs"] == {"VERSION": "2.0"}
    assert client.images.tagged == [("example/app", "latest")]
    assert client.api.pushes == [
        ("example/app", response.fingerprint),
        ("example/app", "latest"),
    ]


def test_second_run_leaves_template_untouched(tmp_path: Path) -> None:
    template = _project(tmp_path)

    first = find_or_build_and_push(_request(tmp_path, template), FakeClient(exists=False))
    contents = template.read_bytes()
    second = find_or_build_and_push(_request(tmp_path, template), FakeClient(exists=True))

    assert first.template_updated is True
    assert second.template_updated is False
    assert second.image_ref == first.image_ref
    assert template.read_bytes() == contents


def test_inconsistent_template_fails_before_any_side_effect(tmp_path: Path) -> None:
    # No Dockerfile: validation must fail before fingerprinting starts.
    template = _write(tmp_path / "k8s.yaml", "a: example/app:v1\nb: example/app:v2\n")
    client = FakeClient(exists=False)

    with pytest.raises(ValidationError, match="inconsistent references"):
        find_or_build_and_push(_request(tmp_path, template), client)

    assert client.images.queries == []
    assert client.api.builds == []


def test_explicit_placeholder_is_replaced(tmp_path: Path) -> None:
    _project(tmp_path)
    template = _write(tmp_path / "compose.yaml", "image: __IMAGE__\n")

    response = find_or_build_and_push(
        _request(tmp_path, template, placeholder="__IMAGE__"),
        FakeClient(exists=True),
    )

    assert template.read_text(encoding="utf-8") == f"image: {response.image_ref}\n"


def test_missing_build_arg_aborts_before_registry_query(tmp_path: Path) -> None:
    template = _project(tmp_path)
    client = FakeClient(exists=False)

    with pytest.raises(ParameterError):
        find_or_build_and_push(_request(tmp_path, template, build_args=["VERSION"]), client, environ={})

    assert client.images.queries == []


def test_context_must_be_a_directory(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="is not a directory"):
        compute_only(str(tmp_path / "missing"), None, [], "content-digest")


def test_request_rejects_unknown_fields_and_strategies(tmp_path: Path) -> None:
    with pytest.raises(RequestValidationError):
        ReuseRequest(context_dir=".", image_name="x", template_path="t", unknown=True)
    with pytest.raises(RequestValidationError):
        ReuseRequest(context_dir=".", image_name="x", template_path="t", strategy="sha256")
    with pytest.raises(RequestValidationError):
        ReuseRequest(context_dir=".", image_name="", template_path="t")
