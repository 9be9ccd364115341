#!/usr/bin/env python3
"""In-memory node graph for the category tree.

Expand/collapse is a flag on each node; children are always kept in the
model and what is visible is derived from the flags of the ancestors.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple


class MalformedTreeError(ValueError):
    """Raised when a tree payload does not follow the {name, slug, children} contract."""


class ExpandState(str, Enum):
    EXPANDED = "expanded"
    COLLAPSED = "collapsed"


@dataclass(eq=False)
class TreeNode:
    name: str
    identifier: Optional[str] = None
    children: List["TreeNode"] = field(default_factory=list)
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    depth: int = 0
    stable_id: int = -1
    state: ExpandState = ExpandState.COLLAPSED
    x: float = 0.0
    y: float = 0.0
    previous_position: Optional[Tuple[float, float]] = None

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def has_content(self) -> bool:
        return self.identifier is not None

    @property
    def expanded(self) -> bool:
        return self.state is ExpandState.EXPANDED

    def expand(self) -> None:
        self.state = ExpandState.EXPANDED

    def collapse(self) -> None:
        self.state = ExpandState.COLLAPSED

    def toggle(self) -> None:
        self.state = ExpandState.COLLAPSED if self.expanded else ExpandState.EXPANDED

    def visible_children(self) -> List["TreeNode"]:
        return self.children if self.expanded else []

    def ancestors(self) -> List["TreeNode"]:
        """Return this node followed by its parents up to the root."""
        chain: List[TreeNode] = []
        node: Optional[TreeNode] = self
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain

    def path_names(self) -> List[str]:
        return [node.name for node in reversed(self.ancestors())]

    def iter_all(self) -> Iterator["TreeNode"]:
        """Pre-order walk over every node, regardless of expand state."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_visible(self) -> Iterator["TreeNode"]:
        """Pre-order walk over the nodes reachable through expanded nodes."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.visible_children()))

    def child_named(self, name: str) -> Optional["TreeNode"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def to_data(self) -> dict:
        """Serialize back to the JSON contract (runtime fields are dropped)."""
        return {
            "name": self.name,
            "slug": self.identifier,
            "children": [child.to_data() for child in self.children] or None,
        }


def _is_valid_payload(data: object) -> bool:
    return isinstance(data, dict) and isinstance(data.get("name"), str)


def _identifier_from(data: dict) -> Optional[str]:
    slug = data.get("slug")
    if slug is None or slug == "":
        return None
    return str(slug)


def build_tree(data: object, counter: Optional[Iterator[int]] = None) -> TreeNode:
    """
    Build a node graph from nested tree data.

    Stable ids are drawn from `counter` in pre-order. Every node starts
    collapsed; landing policies decide what to expand.
    """
    if not _is_valid_payload(data):
        raise MalformedTreeError("Tree data must be an object with a string 'name'")

    root = TreeNode(name=data["name"], identifier=_identifier_from(data))

    stack: List[Tuple[TreeNode, dict]] = [(root, data)]
    while stack:
        node, raw = stack.pop()
        raw_children = raw.get("children") or []
        if not isinstance(raw_children, list):
            print(f"⚠️  Ignoring non-list children of '{node.name}'")
            raw_children = []

        for raw_child in raw_children:
            if not _is_valid_payload(raw_child):
                print(f"⚠️  Skipping malformed child of '{node.name}': {raw_child!r}")
                continue
            child = TreeNode(
                name=raw_child["name"],
                identifier=_identifier_from(raw_child),
                parent=node,
                depth=node.depth + 1,
            )
            node.children.append(child)
            stack.append((child, raw_child))

    ids = counter if counter is not None else itertools.count()
    for node in root.iter_all():
        node.stable_id = next(ids)
    return root
