#!/usr/bin/env python3
"""Tree state engine: expand/collapse/select state, layout and render frames.

One engine owns one loaded tree for its whole life:

    engine = TreeStateEngine(landing=LandingPolicy.expanded())
    engine.initialize((width, height), on_select)
    engine.load_tree(data)
    engine.click(node)          # any number of interactions
    engine.dispose()

Every state change produces a RenderFrame. Nodes and links are keyed by
their stable id so a renderer can match them against the previous frame:
entering nodes start from the last position of their nearest ancestor that
was already on screen, exiting nodes move to the new position of their
nearest ancestor that is still visible.

DEFAULT LANDING STATE:
- 'collapsed': only the root node is visible
- 'expanded': full tree expanded, root content selected once settled
- 'path': expand towards a node given by names, e.g. ('Making', 'Experiments'),
  and select it once settled
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from selection_bus import SelectionBus, SelectionEvent, SelectionHandler
from tree_layout import MOBILE, LayoutConfig, Margin, compute_layout, diagonal, margin_for
from tree_model import MalformedTreeError, TreeNode, build_tree

COLLAPSED = "collapsed"
EXPANDED = "expanded"
PATH = "path"
LANDING_MODES = (COLLAPSED, EXPANDED, PATH)

MIN_HEIGHT = 300
SETTLE_GRACE = 0.05  # seconds after the transition before auto-selecting

Point = Tuple[float, float]
Scheduler = Callable[[float, Callable[[], None]], None]


@dataclass(frozen=True)
class LandingPolicy:
    mode: str = COLLAPSED
    path: Tuple[str, ...] = ()

    @classmethod
    def collapsed(cls) -> "LandingPolicy":
        return cls(COLLAPSED)

    @classmethod
    def expanded(cls) -> "LandingPolicy":
        return cls(EXPANDED)

    @classmethod
    def to_path(cls, names: Iterable[str]) -> "LandingPolicy":
        return cls(PATH, tuple(names))

    @classmethod
    def from_settings(cls, mode: str, path: Sequence[str] = ()) -> "LandingPolicy":
        value = (mode or "").strip().lower()
        if value not in LANDING_MODES:
            raise ValueError(f"Unknown landing mode: {mode!r} (expected one of {', '.join(LANDING_MODES)})")
        return cls(value, tuple(path) if value == PATH else ())


@dataclass(frozen=True)
class TreeState:
    """Serializable interaction state: expanded branch ids and the selected id."""

    expanded: FrozenSet[int] = frozenset()
    selected: Optional[int] = None


@dataclass(frozen=True)
class NodeView:
    stable_id: int
    name: str
    identifier: Optional[str]
    x: float
    y: float
    start: Point
    classes: Tuple[str, ...]
    radius: float
    label_x: float
    label_anchor: str
    label_visible: bool
    entering: bool

    @property
    def class_name(self) -> str:
        return " ".join(self.classes)

    @property
    def transform(self) -> str:
        return f"translate({self.y:.2f},{self.x:.2f})"


@dataclass(frozen=True)
class LinkView:
    stable_id: int  # id of the child end
    parent_id: int
    path: str
    start_path: str
    active: bool
    entering: bool


@dataclass(frozen=True)
class ExitView:
    stable_id: int
    target: Point
    path: str


@dataclass(frozen=True)
class RenderFrame:
    sequence: int
    width: float
    height: float
    margin: Margin
    duration: float
    nodes: Tuple[NodeView, ...]
    links: Tuple[LinkView, ...]
    exiting_nodes: Tuple[ExitView, ...]
    exiting_links: Tuple[ExitView, ...]

    @property
    def transform(self) -> str:
        return f"translate({self.margin.left}, {self.margin.top})"

    def node(self, stable_id: int) -> Optional[NodeView]:
        for view in self.nodes:
            if view.stable_id == stable_id:
                return view
        return None


class TreeRenderer(Protocol):
    def render(self, frame: RenderFrame) -> None:
        ...


class TreeStateEngine:
    def __init__(
        self,
        *,
        landing: Optional[LandingPolicy] = None,
        layout_config: Optional[LayoutConfig] = None,
        scheduler: Optional[Scheduler] = None,
        bus: Optional[SelectionBus] = None,
    ) -> None:
        self.landing = landing or LandingPolicy.collapsed()
        self.layout_config = layout_config or LayoutConfig()
        self.bus = bus or SelectionBus()
        self._scheduler = scheduler
        self._ids = itertools.count()
        self._frames = itertools.count(1)
        self._renderers: List[TreeRenderer] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self._pending: List[Callable[[], None]] = []
        self._generation = 0

        self.width: float = 0
        self.height: float = MIN_HEIGHT
        self.initialized = False

        self.root: Optional[TreeNode] = None
        self.selected: Optional[TreeNode] = None
        self._index: Dict[int, TreeNode] = {}
        self._active_ids: Set[int] = set()
        self._rendered_nodes: Dict[int, TreeNode] = {}
        self._rendered_links: Set[int] = set()
        self.last_frame: Optional[RenderFrame] = None

    # -------- lifecycle --------
    def initialize(self, dimensions: Tuple[float, float], selection_callback: Optional[SelectionHandler] = None) -> None:
        """Prepare the render surface; no tree is loaded yet."""
        width, height = dimensions
        self.width = width
        self.height = max(height, MIN_HEIGHT)
        if selection_callback is not None:
            self._unsubscribers.append(self.bus.subscribe(selection_callback))
        self.initialized = True

    def add_renderer(self, renderer: TreeRenderer) -> None:
        self._renderers.append(renderer)

    def load_tree(self, data: object) -> bool:
        """Build the node graph, apply the landing policy and render.

        A malformed payload leaves an empty render and returns False.
        """
        self._generation += 1
        self._pending.clear()
        self.selected = None
        self._active_ids = set()

        try:
            root = build_tree(data, self._ids)
        except MalformedTreeError as exc:
            print(f"⚠️  Could not load tree: {exc}")
            self.root = None
            self._index = {}
            self._render(None)
            return False

        root.previous_position = (self.height / 2, 0.0)
        self.root = root
        self._index = {node.stable_id: node for node in root.iter_all()}

        self._apply_landing_state()
        self._render(root)
        self._schedule_landing_selection()
        return True

    def settle(self) -> int:
        """Run callbacks waiting for the current transition to finish."""
        ran = 0
        while self._pending:
            callback = self._pending.pop(0)
            callback()
            ran += 1
        return ran

    def resize(self, width: float, height: float) -> Optional[RenderFrame]:
        self.width = width
        self.height = height
        if self.root is None:
            return None
        return self._render(self.root)

    def dispose(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._renderers.clear()
        self._pending.clear()
        self._generation += 1
        self.root = None
        self.selected = None
        self._index = {}
        self._active_ids = set()
        self._rendered_nodes = {}
        self._rendered_links = set()
        self.initialized = False

    # -------- queries --------
    def node_by_id(self, stable_id: int) -> Optional[TreeNode]:
        return self._index.get(stable_id)

    def find_by_path(self, names: Sequence[str]) -> Optional[TreeNode]:
        """Resolve child names from the root, ignoring expand state."""
        node = self.root
        for name in names:
            if node is None:
                return None
            node = node.child_named(name)
        return node

    def visible_nodes(self) -> List[TreeNode]:
        return list(self.root.iter_visible()) if self.root is not None else []

    def active_path(self) -> List[TreeNode]:
        if self.selected is None:
            return []
        return list(reversed(self.selected.ancestors()))

    def is_collapsed(self) -> bool:
        return self.root is None or not self.root.visible_children()

    def snapshot(self) -> TreeState:
        if self.root is None:
            return TreeState()
        expanded = frozenset(n.stable_id for n in self.root.iter_all() if n.children and n.expanded)
        return TreeState(expanded, self.selected.stable_id if self.selected else None)

    # -------- interaction --------
    def select_node(self, node: TreeNode) -> None:
        if not self._owns(node):
            print(f"⚠️  Ignoring selection of a node outside the loaded tree: {node.name}")
            return
        self._set_selection(node)
        self._render(node)
        self._publish(node)

    def clear_selection(self) -> None:
        self.selected = None
        self._active_ids = set()
        if self.root is not None:
            self._render(self.root)

    def click(self, node: TreeNode) -> None:
        """Handle a click on a node.

        The first click on the root while the tree is collapsed only expands
        it, so the visitor sees the tree before any content opens.
        """
        if not self._owns(node):
            return
        toggle, select = self._click_outcome(node)
        if select:
            self._set_selection(node)
        if toggle:
            node.toggle()
        if toggle or select:
            self._render(node)
        if select:
            self._publish(node)

    def preview_click(self, node: TreeNode) -> TreeState:
        """Return the state `click(node)` would produce, without applying it."""
        current = self.snapshot()
        toggle, select = self._click_outcome(node)
        expanded = set(current.expanded)
        if toggle:
            expanded ^= {node.stable_id}
        selected = node.stable_id if select else current.selected
        return TreeState(frozenset(expanded), selected)

    def toggle(self, node: TreeNode) -> None:
        if not self._owns(node) or not node.children:
            return
        node.toggle()
        self._render(node)

    def expand_all(self) -> None:
        if self.root is None:
            return
        for node in self.root.iter_all():
            node.expand()
        self._render(self.root)

    def collapse_all(self) -> None:
        if self.root is None:
            return
        for node in self.root.iter_all():
            node.collapse()
        self._render(self.root)

    def restore(self, state: TreeState, *, notify: bool = False) -> None:
        """Apply a snapshot; unknown ids are ignored.

        A restored state replaces the landing state, so a pending landing
        auto-selection is dropped.
        """
        if self.root is None:
            return
        self._pending.clear()
        self._generation += 1
        for node in self.root.iter_all():
            if node.stable_id in state.expanded:
                node.expand()
            else:
                node.collapse()
        target = self.node_by_id(state.selected) if state.selected is not None else None
        if target is None:
            self.selected = None
            self._active_ids = set()
        else:
            self._set_selection(target)
        self._render(self.root)
        if notify and target is not None:
            self._publish(target)

    # -------- internals --------
    def _owns(self, node: TreeNode) -> bool:
        return self._index.get(node.stable_id) is node

    def _click_outcome(self, node: TreeNode) -> Tuple[bool, bool]:
        if node.is_root and node.children and self.is_collapsed():
            return True, False
        return bool(node.children), node.has_content

    def _set_selection(self, node: TreeNode) -> None:
        self.selected = node
        self._recompute_active_path()

    def _recompute_active_path(self) -> None:
        self._active_ids = {n.stable_id for n in self.selected.ancestors()} if self.selected else set()

    def _publish(self, node: TreeNode) -> None:
        if node.has_content:
            self.bus.publish(SelectionEvent(node.identifier, node.name))

    def _apply_landing_state(self) -> None:
        mode = self.landing.mode
        for node in self.root.iter_all():
            if mode == EXPANDED:
                node.expand()
            else:
                node.collapse()
        if mode == PATH:
            self._expand_path(self.landing.path)

    def _expand_path(self, names: Sequence[str]) -> TreeNode:
        node = self.root
        for name in names:
            node.expand()
            child = node.child_named(name)
            if child is None:
                break
            node = child
        return node

    def _schedule_landing_selection(self) -> None:
        target: Optional[TreeNode] = None
        if self.landing.mode == EXPANDED:
            target = self.root
        elif self.landing.mode == PATH and self.landing.path:
            target = self.find_by_path(self.landing.path)

        if target is None or not target.has_content:
            return

        generation = self._generation

        def _select_when_settled() -> None:
            if generation == self._generation and self._owns(target):
                self.select_node(target)

        delay = self.layout_config.duration + SETTLE_GRACE
        if self._scheduler is not None:
            self._scheduler(delay, _select_when_settled)
        else:
            self._pending.append(_select_when_settled)

    def _node_classes(self, node: TreeNode) -> Tuple[str, ...]:
        classes = ["node"]
        if node.is_root:
            classes.append("node--root")
            if node.visible_children():
                classes.append("expanded")
            if self.is_collapsed():
                classes.append("node--collapsed")
        elif node.is_leaf:
            classes.append("node--leaf")
        else:
            classes.append("node--parent")

        if node.children and not node.expanded:
            classes.append("node--has-children")
        if node.stable_id in self._active_ids:
            classes.append("node--active")
        return tuple(classes)

    def _nearest_ancestor_in(self, node: TreeNode, ids: Iterable[int]) -> Optional[TreeNode]:
        members = ids if isinstance(ids, (set, frozenset, dict)) else set(ids)
        current = node.parent
        while current is not None:
            if current.stable_id in members:
                return current
            current = current.parent
        return None

    def _render(self, source: Optional[TreeNode]) -> RenderFrame:
        cfg = self.layout_config
        self._recompute_active_path()

        if self.root is None:
            margin = margin_for(self.width, 0, cfg)
            visible: List[TreeNode] = []
            label_root = True
        else:
            layout = compute_layout(self.root, self.width, self.height, cfg)
            margin = layout.margin
            visible = list(self.root.iter_visible())
            label_root = not (layout.breakpoint == MOBILE and layout.max_depth > 1)

        visible_ids = {node.stable_id for node in visible}
        fallback_prev: Point = (self.height / 2, 0.0)
        if source is not None and source.previous_position is not None:
            fallback_prev = source.previous_position
        fallback_now = (source.x, source.y) if source is not None and source.stable_id in visible_ids else fallback_prev

        collapsed_root = self.is_collapsed()
        node_views: List[NodeView] = []
        link_views: List[LinkView] = []
        for node in visible:
            entering = node.stable_id not in self._rendered_nodes
            if entering:
                anchor = self._nearest_ancestor_in(node, self._rendered_nodes)
                start = anchor.previous_position if anchor and anchor.previous_position else fallback_prev
            else:
                start = node.previous_position or (node.x, node.y)

            leaf_label = node.is_leaf and not node.is_root
            radius = cfg.node_radius_collapsed if node.is_root and collapsed_root else cfg.node_radius
            node_views.append(
                NodeView(
                    stable_id=node.stable_id,
                    name=node.name,
                    identifier=node.identifier,
                    x=node.x,
                    y=node.y,
                    start=start,
                    classes=self._node_classes(node),
                    radius=radius,
                    label_x=cfg.label_offset if leaf_label else -cfg.label_offset,
                    label_anchor="start" if leaf_label else "end",
                    label_visible=label_root or not node.is_root,
                    entering=entering,
                )
            )

            if node.parent is None:
                continue
            link_entering = node.stable_id not in self._rendered_links
            if link_entering:
                start_path = diagonal(start, start)
            else:
                parent_prev = node.parent.previous_position or (node.parent.x, node.parent.y)
                start_path = diagonal(start, parent_prev)
            link_views.append(
                LinkView(
                    stable_id=node.stable_id,
                    parent_id=node.parent.stable_id,
                    path=diagonal((node.x, node.y), (node.parent.x, node.parent.y)),
                    start_path=start_path,
                    active=node.stable_id in self._active_ids and node.parent.stable_id in self._active_ids,
                    entering=link_entering,
                )
            )

        exiting_nodes: List[ExitView] = []
        exiting_links: List[ExitView] = []
        for stable_id, node in self._rendered_nodes.items():
            if stable_id in visible_ids:
                continue
            anchor = self._nearest_ancestor_in(node, visible_ids)
            target = (anchor.x, anchor.y) if anchor is not None else fallback_now
            exit_view = ExitView(stable_id=stable_id, target=target, path=diagonal(target, target))
            exiting_nodes.append(exit_view)
            if stable_id in self._rendered_links:
                exiting_links.append(exit_view)

        for node in visible:
            node.previous_position = (node.x, node.y)
        self._rendered_nodes = {node.stable_id: node for node in visible}
        self._rendered_links = {node.stable_id for node in visible if node.parent is not None}

        frame = RenderFrame(
            sequence=next(self._frames),
            width=self.width,
            height=self.height,
            margin=margin,
            duration=cfg.duration,
            nodes=tuple(node_views),
            links=tuple(link_views),
            exiting_nodes=tuple(exiting_nodes),
            exiting_links=tuple(exiting_links),
        )
        self.last_frame = frame
        for renderer in list(self._renderers):
            try:
                renderer.render(frame)
            except Exception as exc:
                print(f"❌ Renderer failed on frame {frame.sequence}: {exc}")
        return frame
