"""Server-side page for the knowledge tree: SVG tree plus the content panel.

Interaction state travels in the query string (`e` = expanded branch ids,
`s` = selected id), so every node can link to the state its click produces.
"""

from __future__ import annotations

import html
from typing import Callable, Optional
from urllib.parse import parse_qs, urlencode

from content_panel import ContentPanel
from tree_engine import NodeView, TreeState, TreeStateEngine
from utils.tree_svg import SvgTreeRenderer

PAGE_CSS = """
:root { --ink: #222; --muted: #888; --active: #c0392b; }
body { margin: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: var(--ink); }
#tree-section { padding: 12px; overflow-x: auto; }
#tree-section.has-content { border-bottom: 1px solid #eee; }
svg.tree .link { fill: none; stroke: #ccc; stroke-width: 1.5px; stroke-linecap: round; }
svg.tree .link--active { stroke: var(--active); }
svg.tree .node-shape { fill: #fff; stroke: var(--ink); stroke-width: 1.5px; }
svg.tree .node--has-children .node-shape { fill: var(--ink); }
svg.tree .node--active .node-shape { stroke: var(--active); }
svg.tree .node--active text { fill: var(--active); }
svg.tree text { font-size: 12px; }
svg.tree a { cursor: pointer; }
.content-section { display: none; max-width: 760px; margin: 0 auto; padding: 24px; position: relative; }
.content-section.visible { display: block; }
.content-close { position: absolute; right: 12px; top: 8px; text-decoration: none; color: var(--muted); font-size: 20px; }
#content-meta .content-meta-item { color: var(--muted); margin-right: 12px; }
#content-description { font-size: 1.1em; }
.content-image { max-width: 100%; }
.content-references-label { text-transform: uppercase; font-size: 11px; color: var(--muted); }
""".strip()


def encode_state(state: TreeState) -> str:
    params = {"e": ",".join(str(node_id) for node_id in sorted(state.expanded))}
    if state.selected is not None:
        params["s"] = str(state.selected)
    return urlencode(params, safe=",")


def _parse_ids(raw: str) -> list[int]:
    ids: list[int] = []
    for token in raw.split(","):
        token = token.strip()
        if token.isdigit():
            ids.append(int(token))
    return ids


def decode_state(query: str) -> Optional[TreeState]:
    """Parse `e`/`s` from a query string; None when no state was given."""
    params = parse_qs(query or "", keep_blank_values=True)
    if "e" not in params:
        return None
    expanded = frozenset(_parse_ids(params["e"][0]))
    selected_ids = _parse_ids(params.get("s", [""])[0])
    return TreeState(expanded, selected_ids[0] if selected_ids else None)


def render_page(*, title: str, tree_svg: str, panel_html: str, has_content: bool) -> str:
    tree_class = "has-content" if has_content else ""
    return (
        "<!DOCTYPE html>\n"
        "<html lang=\"en\">\n<head>\n<meta charset=\"UTF-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n"
        f"<title>{html.escape(title)}</title>\n"
        f"<style>{PAGE_CSS}</style>\n"
        "</head>\n<body>\n"
        f"<div id=\"tree-section\" class=\"{tree_class}\"><div id=\"tree-container\">{tree_svg}</div></div>\n"
        f"{panel_html}\n"
        "</body>\n</html>\n"
    )


def render_engine_page(
    engine: TreeStateEngine,
    panel: ContentPanel,
    renderer: SvgTreeRenderer,
    *,
    href_for_node: Callable[[NodeView], Optional[str]],
    close_href: Optional[str],
    title: Optional[str] = None,
) -> str:
    page_title = title or (engine.root.name if engine.root is not None else "Knowledge")
    return render_page(
        title=page_title,
        tree_svg=renderer.to_svg(href_for_node),
        panel_html=panel.to_html(close_href=close_href),
        has_content=panel.is_visible(),
    )


def state_href_builder(engine: TreeStateEngine, prefix: str = "/?") -> Callable[[NodeView], Optional[str]]:
    """Link each drawn node to the state produced by clicking it."""
    def _href(view: NodeView) -> Optional[str]:
        node = engine.node_by_id(view.stable_id)
        if node is None:
            return None
        return prefix + encode_state(engine.preview_click(node))

    return _href
