"""Render tree engine frames as static SVG markup."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from tree_engine import LinkView, NodeView, RenderFrame

HrefFor = Callable[[NodeView], Optional[str]]

LABEL_CHAR_WIDTH = 6.5
LABEL_HEIGHT = 14
LABEL_PADDING = 1


@dataclass
class FrameStats:
    entered: int = 0
    updated: int = 0
    exited: int = 0


class SvgTreeRenderer:
    """Keep the drawn nodes/links keyed by stable id and serialize them to SVG.

    Entering elements are added, known ones are updated in place and exiting
    ones are dropped, mirroring an enter/update/exit join. The SVG shows the
    end state of each transition.
    """

    def __init__(self) -> None:
        self.nodes: Dict[int, NodeView] = {}
        self.links: Dict[int, LinkView] = {}
        self.frame: Optional[RenderFrame] = None
        self.stats = FrameStats()

    def render(self, frame: RenderFrame) -> None:
        stats = FrameStats()
        for view in frame.nodes:
            if view.stable_id in self.nodes:
                stats.updated += 1
            else:
                stats.entered += 1
            self.nodes[view.stable_id] = view
        for link in frame.links:
            self.links[link.stable_id] = link
        for exit_view in frame.exiting_nodes:
            if self.nodes.pop(exit_view.stable_id, None) is not None:
                stats.exited += 1
        for exit_view in frame.exiting_links:
            self.links.pop(exit_view.stable_id, None)

        self.frame = frame
        self.stats = stats

    def to_svg(self, href_for: Optional[HrefFor] = None) -> str:
        frame = self.frame
        width = frame.width if frame else 0
        height = frame.height if frame else 0
        transform = frame.transform if frame else "translate(0, 0)"

        parts = [
            f'<svg class="tree" xmlns="http://www.w3.org/2000/svg" '
            f'width="{width:g}" height="{height:g}" viewBox="0 0 {width:g} {height:g}">',
            f'<g transform="{transform}">',
        ]
        for link in sorted(self.links.values(), key=lambda item: item.stable_id):
            cls = "link link--active" if link.active else "link"
            parts.append(f'<path class="{cls}" data-id="{link.stable_id}" d="{link.path}"/>')
        for view in sorted(self.nodes.values(), key=lambda item: item.stable_id):
            parts.append(self._node_markup(view, href_for))
        parts.append("</g></svg>")
        return "".join(parts)

    @staticmethod
    def _node_markup(view: NodeView, href_for: Optional[HrefFor]) -> str:
        label = html.escape(view.name)
        label_width = len(view.name) * LABEL_CHAR_WIDTH
        bg_x = view.label_x if view.label_anchor == "start" else view.label_x - label_width
        hidden = "" if view.label_visible else ' style="opacity: 0"'

        inner = (
            f'<circle class="node-shape" r="{view.radius:g}"/>'
            f'<rect class="label-bg" fill="white" rx="1" ry="1"{hidden} '
            f'x="{bg_x - LABEL_PADDING:.1f}" y="{-LABEL_HEIGHT / 2 - LABEL_PADDING:.1f}" '
            f'width="{label_width + LABEL_PADDING * 2:.1f}" height="{LABEL_HEIGHT + LABEL_PADDING * 2:.1f}"/>'
            f'<text dy=".35em" x="{view.label_x:g}" text-anchor="{view.label_anchor}"{hidden}>{label}</text>'
        )
        href = href_for(view) if href_for else None
        if href:
            inner = f'<a href="{html.escape(href, quote=True)}">{inner}</a>'
        return (
            f'<g class="{view.class_name}" data-id="{view.stable_id}" '
            f'transform="{view.transform}">{inner}</g>'
        )
