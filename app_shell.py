#!/usr/bin/env python3
"""Wire the tree engine and the content panel together.

The shell owns bootstrap (loading the tree data) and the global close
gestures: a click outside both the tree and the panel, or the Escape key,
hides the panel and clears the selection.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import requests

from content_panel import ContentPanel
from tree_engine import TreeStateEngine
from utils.content_store import load_tree_data

TreeLoader = Callable[[], Any]

REGION_TREE = "tree"
REGION_CONTENT = "content"
REGION_OUTSIDE = "outside"


def http_tree_loader(base_url: str, *, timeout: float = 10.0) -> TreeLoader:
    def _load() -> Any:
        res = requests.get(f"{base_url.rstrip('/')}/api/tree", timeout=timeout)
        res.raise_for_status()
        return res.json()

    return _load


def file_tree_loader(path: Path) -> TreeLoader:
    return lambda: load_tree_data(path)


def static_tree_loader(payload: Any) -> TreeLoader:
    return lambda: payload


class KnowledgeShell:
    def __init__(self, engine: TreeStateEngine, panel: ContentPanel, *, background_fetch: bool = False):
        self.engine = engine
        self.panel = panel
        self.background_fetch = background_fetch
        self._unsubscribe = engine.bus.subscribe(self.handle_node_select)

    def handle_node_select(self, identifier: str, name: str) -> None:
        if self.background_fetch:
            self.panel.request_content(identifier, name)
        else:
            self.panel.load_content(identifier, name)

    def bootstrap(self, loader: TreeLoader) -> bool:
        """Fetch the tree and load it; any failure leaves an empty tree."""
        try:
            data = loader()
        except Exception as exc:
            print(f"❌ Failed to load tree data: {exc}")
            data = None
        return self.engine.load_tree(data)

    def handle_click(self, region: str) -> bool:
        """Close the panel when a click lands outside the tree and the panel."""
        if region == REGION_OUTSIDE and self.panel.is_visible():
            self.close()
            return True
        return False

    def handle_key(self, key: str) -> bool:
        if key == "Escape" and self.panel.is_visible():
            self.close()
            return True
        return False

    def close(self) -> None:
        self.panel.hide()
        self.engine.clear_selection()

    def dispose(self) -> None:
        self._unsubscribe()
        self.engine.dispose()
        self.panel.hide()


def build_shell(
    *,
    engine: Optional[TreeStateEngine] = None,
    panel: Optional[ContentPanel] = None,
    dimensions: tuple[float, float] = (960, 420),
    background_fetch: bool = False,
) -> KnowledgeShell:
    engine = engine or TreeStateEngine()
    if not engine.initialized:
        engine.initialize(dimensions)
    return KnowledgeShell(engine, panel or ContentPanel(), background_fetch=background_fetch)
