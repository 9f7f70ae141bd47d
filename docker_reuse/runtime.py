from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

_LOGGER_NAME = "docker_reuse"
_LOG_FORMAT = "%(levelname)s %(message)s"
_LOG_HANDLER_NAME = "docker_reuse.stderr"
LOG_LEVEL_ENV = "DOCKER_REUSE_LOG_LEVEL"


def configure_logging(
    log_level: str | None = None,
    *,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> logging.Logger:
    """Install the stderr handler on the ``docker_reuse`` logger.

    The level comes from ``log_level``, then ``DOCKER_REUSE_LOG_LEVEL``, then
    INFO. ``quiet`` silences the per-line fingerprint output but never drops
    below WARNING, so strategy fallbacks are still reported.
    """
    env = os.environ if environ is None else environ
    level = _parse_log_level(log_level or env.get(LOG_LEVEL_ENV, ""))
    if quiet:
        level = max(level, logging.WARNING)

    logger = logging.getLogger(_LOGGER_NAME)
    if not any(handler.get_name() == _LOG_HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_LOG_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _parse_log_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper()) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` without translating newlines."""
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
            tmp_path = Path(handle.name)
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o7777)
        os.replace(tmp_path, path)
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def read_text_exact(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True)
