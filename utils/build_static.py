"""Export the knowledge website as static files (dist/ or docs/).

The export holds the JSON data the API serves plus one pre-rendered page
per node, so the site works without the server:

    index.html                      landing state
    nodes/<stable_id>.html          path to the node expanded, node selected
    data/tree-structure.json
    data/content/<slug>.json
"""

from __future__ import annotations

import argparse
import json
import shutil
import sys
from pathlib import Path
from typing import Any, Callable, Optional

# Support direct execution: `python utils/build_static.py ...`
if __package__ in (None, ""):
    _REPO_ROOT = Path(__file__).resolve().parents[1]
    if str(_REPO_ROOT) not in sys.path:
        sys.path.insert(0, str(_REPO_ROOT))

import config as cfg
from app_shell import KnowledgeShell, static_tree_loader
from content_panel import ContentPanel
from tree_engine import LANDING_MODES, LandingPolicy, NodeView, TreeState, TreeStateEngine
from tree_model import TreeNode
from utils.content_store import ContentStore, load_tree_data
from utils.page_render import render_engine_page
from utils.site_paths import content_root, dist_root, docs_root, public_root, resolve_base_dir, tree_file
from utils.tree_svg import SvgTreeRenderer

NODES_DIR = "nodes"
DATA_DIR = "data"


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _reset_output_dir(out_dir: Path) -> None:
    if out_dir.exists():
        shutil.rmtree(out_dir)
    out_dir.mkdir(parents=True)


def node_state(node: TreeNode) -> TreeState:
    """State shown on a node's page: its path open and the node selected."""
    expanded = {ancestor.stable_id for ancestor in node.ancestors() if ancestor is not node}
    if node.children:
        expanded.add(node.stable_id)
    return TreeState(frozenset(expanded), node.stable_id if node.has_content else None)


def _node_href(prefix: str) -> Callable[[NodeView], Optional[str]]:
    return lambda view: f"{prefix}{view.stable_id}.html"


class StaticSiteBuilder:
    def __init__(
        self,
        tree_data: Any,
        store: ContentStore,
        *,
        landing: LandingPolicy,
        dimensions: tuple[float, float] = (cfg.CONTAINER_WIDTH, cfg.CONTAINER_HEIGHT),
    ):
        self.tree_data = tree_data
        self.store = store
        self.landing = landing
        self.dimensions = dimensions

    def new_view(self) -> tuple[KnowledgeShell, SvgTreeRenderer]:
        # A fresh engine numbers the nodes the same way every time, so the
        # ids used in file names stay valid from page to page.
        engine = TreeStateEngine(landing=self.landing)
        engine.initialize(self.dimensions)
        renderer = SvgTreeRenderer()
        engine.add_renderer(renderer)
        shell = KnowledgeShell(engine, ContentPanel(self.store))
        shell.bootstrap(static_tree_loader(self.tree_data))
        return shell, renderer

    def render_index(self) -> str:
        shell, renderer = self.new_view()
        shell.engine.settle()
        return render_engine_page(
            shell.engine,
            shell.panel,
            renderer,
            href_for_node=_node_href(f"{NODES_DIR}/"),
            close_href="index.html",
        )

    def node_ids(self) -> list[int]:
        shell, _ = self.new_view()
        root = shell.engine.root
        return [node.stable_id for node in root.iter_all()] if root is not None else []

    def render_node(self, stable_id: int) -> str:
        shell, renderer = self.new_view()
        engine = shell.engine
        node = engine.node_by_id(stable_id)
        if node is None:
            raise KeyError(stable_id)
        engine.restore(node_state(node), notify=True)
        return render_engine_page(
            engine,
            shell.panel,
            renderer,
            href_for_node=_node_href(""),
            close_href="../index.html",
        )


def build_static_site(
    base_dir: Path,
    out_dir: Path,
    *,
    landing: Optional[LandingPolicy] = None,
) -> dict[str, int]:
    """Write the static site into `out_dir` (recreated from scratch)."""
    tree_data = load_tree_data(tree_file(base_dir))
    store = ContentStore(content_root(base_dir))

    _reset_output_dir(out_dir)

    public_dir = public_root(base_dir)
    if public_dir.is_dir():
        shutil.copytree(public_dir, out_dir, dirs_exist_ok=True)

    _write_json(out_dir / DATA_DIR / "tree-structure.json", tree_data)
    content_count = 0
    for slug in store.slugs():
        try:
            record = store.load_record(slug)
        except Exception as exc:
            print(f"⚠️  Skipping content '{slug}': {exc}")
            continue
        _write_json(out_dir / DATA_DIR / "content" / f"{slug}.json", record)
        content_count += 1

    builder = StaticSiteBuilder(tree_data, store, landing=landing or LandingPolicy.expanded())
    (out_dir / "index.html").write_text(builder.render_index(), encoding="utf-8")

    page_count = 0
    nodes_dir = out_dir / NODES_DIR
    nodes_dir.mkdir(parents=True, exist_ok=True)
    for stable_id in builder.node_ids():
        (nodes_dir / f"{stable_id}.html").write_text(builder.render_node(stable_id), encoding="utf-8")
        page_count += 1

    return {"content": content_count, "pages": page_count + 1}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export the knowledge website as static files.")
    parser.add_argument("--base-dir", help="Directory holding content/, categories/ and public/")
    parser.add_argument("--github", action="store_true", help="Write to docs/ (GitHub Pages) instead of dist/")
    parser.add_argument("--landing", choices=LANDING_MODES, help="Initial tree state")
    parser.add_argument("--path", help="Landing path for --landing path, e.g. 'Making > Experiments'")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    base_dir = resolve_base_dir(args.base_dir)
    out_dir = docs_root(base_dir) if args.github else dist_root(base_dir)

    names = cfg.parse_path_setting(args.path) if args.path is not None else cfg.DEFAULT_PATH
    try:
        landing = LandingPolicy.from_settings(args.landing or cfg.DEFAULT_LANDING, names)
    except ValueError as exc:
        print(f"❌ {exc}")
        return 2

    print(f"🏗️  Building static site from {base_dir}")
    try:
        counts = build_static_site(base_dir, out_dir, landing=landing)
    except (OSError, ValueError) as exc:
        print(f"❌ Build failed: {exc}")
        return 1

    print(f"✅ Wrote {counts['pages']} pages and {counts['content']} content files to {out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
