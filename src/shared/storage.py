"""JSON persistence helpers shared by the theme index and the result store.

Writes go through a temp file plus ``os.replace`` so readers only ever see a
complete old file or a complete new one. Reads treat a corrupt record as
missing: journal text is authoritative and everything stored here can be
re-derived from it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from fishbowl.errors import PersistenceError, PersistenceErrorKind

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
D = TypeVar("D")


def atomic_write_text(path: Path, text: str) -> None:
    """Replace *path* with *text* in one step."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise PersistenceError(PersistenceErrorKind.WRITE_FAILED, path, str(exc)) from exc


def save_model(path: Path, model: BaseModel) -> None:
    atomic_write_text(path, model.model_dump_json(indent=2))


def save_model_list(path: Path, items: Sequence[BaseModel]) -> None:
    data = [item.model_dump(mode="json") for item in items]
    atomic_write_text(path, json.dumps(data, indent=2))


def _read_json(path: Path) -> object | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Corrupt record at %s, starting fresh", path)
        return None
    except OSError as exc:
        raise PersistenceError(PersistenceErrorKind.READ_FAILED, path, str(exc)) from exc


def load_model(path: Path, model_type: type[M], default_factory: Callable[[], D]) -> M | D:
    """Load a single model, falling back to ``default_factory()``."""
    data = _read_json(path)
    if data is None:
        return default_factory()
    try:
        return model_type.model_validate(data)
    except ValidationError:
        logger.warning("Invalid %s record at %s, starting fresh", model_type.__name__, path)
        return default_factory()


def load_model_list(path: Path, model_type: type[M]) -> list[M]:
    """Load a JSON array of models; a missing or corrupt file yields ``[]``."""
    data = _read_json(path)
    if data is None:
        return []
    try:
        return TypeAdapter(list[model_type]).validate_python(data)  # type: ignore[valid-type]
    except ValidationError:
        logger.warning("Invalid %s list at %s, starting fresh", model_type.__name__, path)
        return []
