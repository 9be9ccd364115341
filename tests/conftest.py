import json
import sys
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path for absolute imports.
REPO_ROOT = Path(__file__).resolve().parents[1]
repo_root_str = str(REPO_ROOT)
if repo_root_str not in sys.path:
    sys.path.insert(0, repo_root_str)


SAMPLE_TREE = {
    "name": "Root",
    "slug": "root",
    "children": [
        {
            "name": "Interests",
            "slug": "interests",
            "children": [
                {"name": "Minerals", "slug": "minerals", "children": None},
                {"name": "Bicycles", "slug": "bicycles", "children": None},
            ],
        },
        {
            "name": "Making",
            "slug": None,
            "children": [
                {"name": "Experiments", "slug": "experiments", "children": None},
            ],
        },
        {"name": "Now", "slug": None, "children": None},
    ],
}


@pytest.fixture
def tree_data() -> dict:
    return json.loads(json.dumps(SAMPLE_TREE))


@pytest.fixture
def site_dir(tmp_path: Path, tree_data: dict) -> Path:
    """A base dir with categories/, content/ and public/ filled in."""
    base = tmp_path / "site"
    (base / "categories").mkdir(parents=True)
    (base / "categories" / "tree-structure.json").write_text(json.dumps(tree_data), encoding="utf-8")

    content = base / "content"
    content.mkdir()
    (content / "root.md").write_text(
        "---\ntitle: Welcome\ndate: 2024-05-17\n---\n\nHello world.\n\nMore text here.\n",
        encoding="utf-8",
    )
    (content / "interests.md").write_text(
        "---\ntitle: Interests\ndescription: Things I like.\n---\n\nMinerals and bicycles.\n",
        encoding="utf-8",
    )
    (content / "minerals.md").write_text("---\ntitle: Minerals\n---\n\nRocks.\n", encoding="utf-8")
    (content / "bicycles.md").write_text(
        "---\ntitle: Bicycles\nresources:\n  - https://www.example.com/page\n  - Just a note\n---\n\nRoad bikes.\n",
        encoding="utf-8",
    )

    public = base / "public"
    public.mkdir()
    (public / "robots.txt").write_text("User-agent: *\n", encoding="utf-8")
    return base
