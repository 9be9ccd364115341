#!/usr/bin/env python3
"""Tidy node-link layout for the visible part of the category tree.

Breadth positions come from the Reingold-Tilford algorithm in the
linear-time form described by Buchheim, Jünger and Leipert; the depth axis
is spread over the available width with at least four columns so that a
shallow tree does not stretch across the whole container.

BREAKPOINTS (3 fixed sizes):
- Desktop: > 1024px
- Tablet: 481px - 1024px
- Mobile: <= 480px
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tree_model import TreeNode

DESKTOP = "desktop"
TABLET = "tablet"
MOBILE = "mobile"


@dataclass(frozen=True)
class Margin:
    top: int
    right: int
    bottom: int
    left: int


@dataclass(frozen=True)
class LayoutConfig:
    duration: float = 0.4  # seconds
    tablet_breakpoint: int = 1024
    mobile_breakpoint: int = 480
    min_depth_columns: int = 4
    node_radius: float = 5
    node_radius_collapsed: float = 8
    label_offset: float = 12
    margin: Margin = field(default_factory=lambda: Margin(20, 150, 20, 120))
    margin_tablet: Margin = field(default_factory=lambda: Margin(15, 120, 15, 100))
    margin_mobile: Margin = field(default_factory=lambda: Margin(10, 100, 10, 10))
    # mobile while only the root column is shown, so the root label fits
    margin_mobile_collapsed: Margin = field(default_factory=lambda: Margin(10, 100, 10, 100))


@dataclass
class LayoutResult:
    margin: Margin
    breakpoint: str
    inner_width: float
    inner_height: float
    depth_width: float
    max_depth: int
    positions: Dict[int, Tuple[float, float]]


def breakpoint_for(width: float, config: LayoutConfig) -> str:
    if width > config.tablet_breakpoint:
        return DESKTOP
    if width > config.mobile_breakpoint:
        return TABLET
    return MOBILE


def margin_for(width: float, max_visible_depth: int, config: LayoutConfig) -> Margin:
    breakpoint = breakpoint_for(width, config)
    if breakpoint == DESKTOP:
        return config.margin
    if breakpoint == TABLET:
        return config.margin_tablet
    if max_visible_depth <= 1:
        return config.margin_mobile_collapsed
    return config.margin_mobile


def max_visible_depth(root: Optional[TreeNode]) -> int:
    if root is None:
        return 0
    return max(node.depth - root.depth for node in root.iter_visible())


class _Walker:
    """Per-node bookkeeping for the Buchheim walk (prelim, mod, thread, ...)."""

    __slots__ = ("node", "parent", "children", "index", "ancestor", "prelim",
                 "mod", "change", "shift", "thread", "apportion_ancestor")

    def __init__(self, node: Optional[TreeNode], index: int):
        self.node = node
        self.parent: Optional[_Walker] = None
        self.children: List[_Walker] = []
        self.index = index
        self.ancestor: _Walker = self
        self.prelim = 0.0
        self.mod = 0.0
        self.change = 0.0
        self.shift = 0.0
        self.thread: Optional[_Walker] = None
        self.apportion_ancestor: Optional[_Walker] = None


def _separation(a: _Walker, b: _Walker) -> float:
    return 1.0 if a.node.parent is b.node.parent else 2.0


def _next_left(v: _Walker) -> Optional[_Walker]:
    return v.children[0] if v.children else v.thread


def _next_right(v: _Walker) -> Optional[_Walker]:
    return v.children[-1] if v.children else v.thread


def _move_subtree(wm: _Walker, wp: _Walker, shift: float) -> None:
    change = shift / (wp.index - wm.index)
    wp.change -= change
    wp.shift += shift
    wm.change += change
    wp.prelim += shift
    wp.mod += shift


def _execute_shifts(v: _Walker) -> None:
    shift = 0.0
    change = 0.0
    for w in reversed(v.children):
        w.prelim += shift
        w.mod += shift
        change += w.change
        shift += w.shift + change


def _next_ancestor(vim: _Walker, v: _Walker, ancestor: _Walker) -> _Walker:
    return vim.ancestor if vim.ancestor.parent is v.parent else ancestor


def _apportion(v: _Walker, w: Optional[_Walker], ancestor: _Walker) -> _Walker:
    if w is None:
        return ancestor

    vip = vop = v
    vim = w
    vom = v.parent.children[0]
    sip, sop, sim, som = vip.mod, vop.mod, vim.mod, vom.mod

    vim = _next_right(vim)
    vip = _next_left(vip)
    while vim is not None and vip is not None:
        vom = _next_left(vom)
        vop = _next_right(vop)
        vop.ancestor = v
        shift = vim.prelim + sim - vip.prelim - sip + _separation(vim, vip)
        if shift > 0:
            _move_subtree(_next_ancestor(vim, v, ancestor), v, shift)
            sip += shift
            sop += shift
        sim += vim.mod
        sip += vip.mod
        som += vom.mod
        sop += vop.mod
        vim = _next_right(vim)
        vip = _next_left(vip)

    if vim is not None and _next_right(vop) is None:
        vop.thread = vim
        vop.mod += sim - sop
    if vip is not None and _next_left(vom) is None:
        vom.thread = vip
        vom.mod += sop - som
        ancestor = v
    return ancestor


def _build_walkers(root: TreeNode) -> Tuple[_Walker, List[_Walker]]:
    top = _Walker(root, 0)
    order = [top]
    stack = [top]
    while stack:
        walker = stack.pop()
        for index, child in enumerate(walker.node.visible_children()):
            child_walker = _Walker(child, index)
            child_walker.parent = walker
            walker.children.append(child_walker)
            order.append(child_walker)
        stack.extend(reversed(walker.children))

    sentinel = _Walker(None, 0)
    sentinel.children = [top]
    top.parent = sentinel
    return top, order


def _first_walk(v: _Walker) -> None:
    siblings = v.parent.children
    w = siblings[v.index - 1] if v.index else None
    if v.children:
        _execute_shifts(v)
        midpoint = (v.children[0].prelim + v.children[-1].prelim) / 2
        if w is not None:
            v.prelim = w.prelim + _separation(v, w)
            v.mod = v.prelim - midpoint
        else:
            v.prelim = midpoint
    elif w is not None:
        v.prelim = w.prelim + _separation(v, w)
    v.parent.apportion_ancestor = _apportion(v, w, v.parent.apportion_ancestor or siblings[0])


def _postorder(top: _Walker) -> List[_Walker]:
    """Left-to-right post-order, so each node sees its left sibling finished."""
    order: List[_Walker] = []
    stack: List[Tuple[_Walker, bool]] = [(top, False)]
    while stack:
        walker, done = stack.pop()
        if done:
            order.append(walker)
            continue
        stack.append((walker, True))
        for child in reversed(walker.children):
            stack.append((child, False))
    return order


def tidy_breadth(root: TreeNode) -> Dict[int, float]:
    """Return unnormalised breadth coordinates keyed by stable id."""
    top, top_down = _build_walkers(root)

    for walker in _postorder(top):
        _first_walk(walker)
    top.parent.mod = -top.prelim

    breadth: Dict[int, float] = {}
    for walker in top_down:
        breadth[walker.node.stable_id] = walker.prelim + walker.parent.mod
        walker.mod += walker.parent.mod
    return breadth


def _scale_breadth(root: TreeNode, breadth: Dict[int, float], extent: float) -> Dict[int, float]:
    nodes = list(root.iter_visible())
    left = min(nodes, key=lambda n: breadth[n.stable_id])
    right = max(nodes, key=lambda n: breadth[n.stable_id])
    if left is right:
        s = 1.0
    else:
        s = (1.0 if left.parent is right.parent else 2.0) / 2
    tx = s - breadth[left.stable_id]
    kx = extent / (breadth[right.stable_id] + s + tx)
    return {node_id: (value + tx) * kx for node_id, value in breadth.items()}


def compute_layout(root: TreeNode, width: float, height: float, config: LayoutConfig) -> LayoutResult:
    """
    Position every visible node.

    `x` is the breadth coordinate (vertical on screen) and `y` the depth
    coordinate (horizontal), both relative to the margin box. The values are
    also written onto the nodes.
    """
    depth = max_visible_depth(root)
    margin = margin_for(width, depth, config)
    inner_width = max(width - margin.left - margin.right, 0)
    inner_height = max(height - margin.top - margin.bottom, 0)
    depth_width = inner_width / max(depth, config.min_depth_columns)

    breadth = _scale_breadth(root, tidy_breadth(root), inner_height)

    positions: Dict[int, Tuple[float, float]] = {}
    for node in root.iter_visible():
        node.x = breadth[node.stable_id]
        node.y = (node.depth - root.depth) * depth_width
        positions[node.stable_id] = (node.x, node.y)

    return LayoutResult(
        margin=margin,
        breakpoint=breakpoint_for(width, config),
        inner_width=inner_width,
        inner_height=inner_height,
        depth_width=depth_width,
        max_depth=depth,
        positions=positions,
    )


def diagonal(source: Tuple[float, float], target: Tuple[float, float]) -> str:
    """Cubic curve between two (x, y) layout points, drawn depth-horizontal."""
    sx, sy = source
    tx, ty = target
    mid = (sy + ty) / 2
    return f"M {sy:.2f} {sx:.2f} C {mid:.2f} {sx:.2f}, {mid:.2f} {tx:.2f}, {ty:.2f} {tx:.2f}"
