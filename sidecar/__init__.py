"""Sidecar metadata store for the uploader.

Titles live in one JSON file inside the upload directory:
``{"items": {"<video id>": {"title": "..."}}}``. The file is advisory; a
missing or broken sidecar reads as an empty mapping.
"""
from __future__ import annotations

from contextlib import contextmanager
import json
import logging
import os
from pathlib import Path
import re
import threading
from typing import Dict, Iterator, Optional, Union

try:
    import fcntl as _fcntl  # type: ignore
except Exception:
    _fcntl = None  # type: ignore

_META_PATH: Path | None = None
_WRITE_LOCK = threading.Lock()

META_FILENAME = "metadata.json"
_ID_PREFIX_RE = re.compile(r"^\d+(?:-[0-9a-f]+)?__")

Items = Dict[str, Dict[str, str]]


def configure(path: Union[str, Path]) -> Path:
    """Set the sidecar location and ensure its parent directory exists."""
    resolved = Path(path).expanduser()
    if not resolved.is_absolute():
        resolved = resolved.resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    global _META_PATH
    _META_PATH = resolved
    return resolved


def path() -> Path:
    if _META_PATH is None:
        raise RuntimeError("Sidecar path not configured")
    return _META_PATH


def _lock_path() -> Path:
    p = path()
    return p.with_name(f".{p.name}.lock")


def load() -> Items:
    """Return the id -> {"title"} mapping; never raises for a bad file."""
    try:
        p = path()
        if not p.exists():
            return {}
        raw = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        logging.warning("[sidecar] unreadable metadata, using empty mapping: %s", e)
        return {}
    items = raw.get("items") if isinstance(raw, dict) else None
    if not isinstance(items, dict):
        return {}
    clean: Items = {}
    for k, v in items.items():
        if not isinstance(k, str) or not isinstance(v, dict):
            continue
        title = v.get("title")
        clean[k] = {"title": title} if isinstance(title, str) else {}
    return clean


def save(items: Items) -> None:
    """Overwrite the whole sidecar. Last writer wins; use session() to update."""
    p = path()
    tmp = p.with_name(f".{p.name}.tmp")
    tmp.write_text(json.dumps({"items": items}, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(p)


@contextmanager
def session() -> Iterator[Items]:
    """Serialized read-modify-write of the sidecar.

    Holds the in-process write lock and an advisory file lock for the whole
    block, so concurrent writers see each other's changes. Saves only when
    the block exits without an exception.
    """
    with _WRITE_LOCK:
        fd: Optional[int] = None
        try:
            fd = os.open(_lock_path(), os.O_CREAT | os.O_RDWR, 0o644)
            if _fcntl is not None:
                _fcntl.flock(fd, _fcntl.LOCK_EX)
        except OSError as e:
            logging.warning("[sidecar] file lock unavailable: %s", e)
        try:
            items = load()
            yield items
            save(items)
        finally:
            if fd is not None:
                if _fcntl is not None:
                    try:
                        _fcntl.flock(fd, _fcntl.LOCK_UN)
                    except OSError:
                        pass
                os.close(fd)


def default_title(video_id: str) -> str:
    """Title derived from an id: drop the upload prefix and the extension."""
    name = _ID_PREFIX_RE.sub("", video_id)
    stem, dot, _ext = name.rpartition(".")
    return stem if dot and stem else name


def title_for(items: Items, video_id: str) -> str:
    title = (items.get(video_id) or {}).get("title")
    if isinstance(title, str) and title.strip():
        return title
    return default_title(video_id)


__all__ = [
    "META_FILENAME",
    "configure",
    "path",
    "load",
    "save",
    "session",
    "default_title",
    "title_for",
]
