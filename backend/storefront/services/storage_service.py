# Overview: Blob storage collaborator; stores bytes and returns a public URL.

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Protocol

from flask import Flask


SAFE_NAME = re.compile(r"[^A-Za-z0-9._/-]+")


class BlobStore(Protocol):
    def store(self, data: bytes, name: str, content_type: str) -> str:
        ...


def sanitize_blob_name(name: str) -> str:
    """Keep a relative, traversal-free key like "reports/report-1.csv"."""
    name = SAFE_NAME.sub("_", name.replace("\\", "/"))
    parts = [p for p in name.split("/") if p not in {"", ".", ".."}]
    if not parts:
        raise ValueError("Blob name is empty after sanitizing")
    return "/".join(parts)


class LocalBlobStore:
    """
    Filesystem-backed store served by the /media route.

    Keys may contain "/" to form folders (e.g. "reports/...").
    """

    def __init__(self, root: str | os.PathLike, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def path_for(self, name: str) -> Path:
        return self.root / sanitize_blob_name(name)

    def store(self, data: bytes, name: str, content_type: str) -> str:
        key = sanitize_blob_name(name)
        target = self.root / key
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".part")
        tmp.write_bytes(data)
        os.replace(tmp, target)
        return f"{self.base_url}/{key}"


def build_blob_store(app: Flask) -> LocalBlobStore:
    folder = app.config.get("UPLOAD_FOLDER", "uploads")
    if not os.path.isabs(folder):
        folder = os.path.join(app.instance_path, folder)
    return LocalBlobStore(folder, app.config.get("MEDIA_BASE_URL", "/media"))
