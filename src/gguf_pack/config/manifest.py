"""Manifest loading.

A manifest is a TOML document whose top-level tables configure one task
each, executed in file order::

    [card]
    task = "add-model-card"
    name = "RWKV x060 1B6"
    ...

    [weights]
    task = "convert-safetensors"
    source = "model.safetensors"
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Union

from gguf_pack.errors import ConfigError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

VERSION_KEY = "manifest_version"
MANIFEST_VERSION = 0


def parse_manifest(text: str) -> dict[str, dict[str, Any]]:
    """Parse manifest text into an ordered mapping of task key to table.

    Raises:
        ConfigError: If the text is not valid TOML or not a task manifest
    """
    try:
        document = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid manifest: {e}") from e

    tasks: dict[str, dict[str, Any]] = {}
    for key, value in document.items():
        if key == VERSION_KEY:
            if isinstance(value, bool) or value != MANIFEST_VERSION:
                raise ConfigError(
                    f"unsupported {VERSION_KEY} {value!r}, expected {MANIFEST_VERSION}"
                )
            continue
        if not isinstance(value, dict):
            raise ConfigError(
                f"top-level value must be a task table, got {type(value).__name__}",
                key=key,
            )
        tasks[key] = value

    return tasks


def load_manifest(path: Union[str, Path]) -> dict[str, dict[str, Any]]:
    """Read and parse a manifest file.

    Raises:
        ConfigError: If the manifest is malformed
        OSError: If the file cannot be read
    """
    path = Path(path)
    logger.debug(f"Loading manifest from {path}")
    tasks = parse_manifest(path.read_text(encoding="utf-8"))
    logger.debug(f"Manifest declares {len(tasks)} tasks")
    return tasks
