"""Naming and persistence of run artifacts (screenshots, videos, downloads)."""

import logging
import os
import re
import time
from pathlib import Path
from typing import Optional, Union

from browser_bot.config import UPLOAD_DIR, UPLOAD_URL_PREFIX

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def now_ms() -> int:
    return int(time.time() * 1000)


def safe_filename(name: str) -> str:
    """Strip path components and anything outside [A-Za-z0-9._-]."""
    base = os.path.basename(name or "").strip()
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "file"


def unique_name(prefix: str, suffix: str = "", original: Optional[str] = None) -> str:
    """
    Build a timestamp-unique artifact file name.

    >>> unique_name("screenshot", ".png")  # doctest: +SKIP
    'screenshot-1700000000000.png'
    """
    stamp = now_ms()
    if original:
        return f"{prefix}-{stamp}-{safe_filename(original)}"
    return f"{prefix}-{stamp}{suffix}"


def artifact_url(name: str, prefix: str = UPLOAD_URL_PREFIX) -> str:
    return f"{prefix.rstrip('/')}/{name}"


class ArtifactStore:
    """Directory holding the files produced by executions."""

    def __init__(self, root: Union[str, Path] = UPLOAD_DIR, url_prefix: str = UPLOAD_URL_PREFIX):
        self.root = Path(root)
        self.url_prefix = url_prefix

    def ensure(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def path_for(self, name: str) -> Path:
        return self.root / name

    def url_for(self, name: str) -> str:
        return artifact_url(name, self.url_prefix)

    def save_screenshot(self, png: bytes) -> str:
        """Write a final screenshot and return its public URL."""
        name = unique_name("screenshot", ".png")
        self.ensure()
        self.path_for(name).write_bytes(png)
        logger.debug(f"Saved screenshot {name} ({len(png)} bytes)")
        return self.url_for(name)

    def video_url(self, video_path: Optional[Union[str, Path]]) -> Optional[str]:
        """Public URL of a recorded video, or None when it was never written."""
        if not video_path:
            return None
        path = Path(video_path)
        if not path.exists():
            logger.warning(f"Recorded video not found at {path}")
            return None
        return self.url_for(path.name)
