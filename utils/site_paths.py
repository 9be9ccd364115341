"""Shared path helpers for the knowledge site layout."""

from __future__ import annotations

import os
import posixpath
import re
from pathlib import Path
from urllib.parse import unquote

from config import BASE_DIR, BASE_DIR_ENV

SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class PathValidationError(ValueError):
    """Raised when a relative path or slug is invalid or unsafe."""


def resolve_base_dir(cli_base_dir: str | None = None) -> Path:
    """Resolve BASE_DIR with priority: CLI -> env -> config.py."""
    if cli_base_dir:
        return Path(cli_base_dir).expanduser()

    env_value = os.getenv(BASE_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser()

    return Path(BASE_DIR).expanduser()


def content_root(base_dir: Path) -> Path:
    return base_dir / "content"


def tree_file(base_dir: Path) -> Path:
    return base_dir / "categories" / "tree-structure.json"


def public_root(base_dir: Path) -> Path:
    return base_dir / "public"


def dist_root(base_dir: Path) -> Path:
    return base_dir / "dist"


def docs_root(base_dir: Path) -> Path:
    return base_dir / "docs"


def normalize_rel_path(rel_path: str) -> str:
    """Normalize a relative path and reject traversal or empties."""
    value = (rel_path or "").strip().replace("\\", "/")
    if not value:
        raise PathValidationError("Path is empty")

    value = value.lstrip("/")
    normalized = posixpath.normpath(value)

    if normalized in ("", ".", ".."):
        raise PathValidationError("Path is empty or invalid")
    if normalized.startswith("../"):
        raise PathValidationError("Path traversal is not allowed")

    return normalized


def normalize_slug(slug: str) -> str:
    """Validate a content slug: a single file stem, no separators."""
    value = unquote(slug or "").strip()
    if not value:
        raise PathValidationError("Slug is empty")
    if "/" in value or "\\" in value or not SLUG_RE.match(value) or value.startswith(".."):
        raise PathValidationError(f"Invalid slug: {slug!r}")
    return value


def resolve_inside(root: Path, rel_path: str) -> Path:
    """Resolve a relative path inside `root`, refusing anything that escapes it."""
    rel = normalize_rel_path(rel_path)
    base = root.resolve()
    target = (base / Path(rel)).resolve()
    if target == base or str(target).startswith(str(base) + os.sep):
        return target
    raise PathValidationError("Resolved path escapes the root directory")


def resolve_public_file(base_dir: Path, request_path: str) -> Path | None:
    """Map a URL path onto a file under public/, or None."""
    rel = unquote(request_path).lstrip("/")
    if not rel:
        return None
    try:
        target = resolve_inside(public_root(base_dir), rel)
    except PathValidationError:
        return None
    if target.is_dir():
        index = target / "index.html"
        return index if index.is_file() else None
    return target if target.is_file() else None
