"""Markdown content records and the tree-structure file."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from utils.markdown_utils import render_markdown, split_front_matter
from utils.site_paths import PathValidationError, normalize_slug


class ContentNotFound(LookupError):
    """Raised when no Markdown file exists for a slug (or the slug is unsafe)."""


class ContentStore:
    """Read `content/<slug>.md` files and turn them into content records."""

    def __init__(self, content_dir: Path):
        self.content_dir = content_dir

    def path_for(self, slug: str) -> Path:
        try:
            normalized = normalize_slug(slug)
        except PathValidationError as exc:
            raise ContentNotFound(str(exc)) from exc
        return self.content_dir / f"{normalized}.md"

    def load_record(self, slug: str) -> dict[str, Any]:
        path = self.path_for(slug)
        if not path.is_file():
            raise ContentNotFound(f"Content not found: {slug}")

        text = path.read_text(encoding="utf-8", errors="replace")
        metadata, body = split_front_matter(text)
        return {
            **metadata,
            "content": render_markdown(body),
            "raw": body,
        }

    # ContentSource protocol used by the content panel
    def fetch(self, identifier: str) -> dict[str, Any]:
        return self.load_record(identifier)

    def slugs(self) -> list[str]:
        if not self.content_dir.is_dir():
            return []
        return sorted(path.stem for path in self.content_dir.glob("*.md") if path.is_file())

    def list_records(self) -> list[dict[str, Any]]:
        """Front matter of every content file, with its slug."""
        records: list[dict[str, Any]] = []
        for slug in self.slugs():
            text = (self.content_dir / f"{slug}.md").read_text(encoding="utf-8", errors="replace")
            metadata, _ = split_front_matter(text)
            records.append({"slug": slug, **metadata})
        return records


def load_tree_data(path: Path) -> dict[str, Any]:
    """Read the tree-structure JSON. Errors propagate to the caller."""
    return json.loads(path.read_text(encoding="utf-8"))


def save_tree_data(path: Path, tree: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(tree, fh, indent=2, ensure_ascii=False)
            fh.write("\n")
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
