import pytest

from tree_layout import (
    DESKTOP,
    MOBILE,
    TABLET,
    LayoutConfig,
    breakpoint_for,
    compute_layout,
    diagonal,
    margin_for,
    max_visible_depth,
)
from tree_model import build_tree


@pytest.fixture
def config():
    return LayoutConfig()


def _expanded(tree_data):
    root = build_tree(tree_data)
    for node in root.iter_all():
        node.expand()
    return root


def test_breakpoints(config):
    assert breakpoint_for(1200, config) == DESKTOP
    assert breakpoint_for(1024, config) == TABLET
    assert breakpoint_for(600, config) == TABLET
    assert breakpoint_for(480, config) == MOBILE


def test_mobile_margin_depends_on_visible_depth(config):
    assert margin_for(400, 0, config) == config.margin_mobile_collapsed
    assert margin_for(400, 1, config) == config.margin_mobile_collapsed
    assert margin_for(400, 2, config) == config.margin_mobile
    assert margin_for(1200, 3, config) == config.margin


def test_single_root_is_centered(config, tree_data):
    root = build_tree(tree_data)
    result = compute_layout(root, 1200, 420, config)

    assert result.max_depth == 0
    assert root.x == pytest.approx(result.inner_height / 2)
    assert root.y == 0


def test_depth_columns_use_minimum_of_four(config, tree_data):
    root = _expanded(tree_data)
    result = compute_layout(root, 1200, 420, config)

    assert max_visible_depth(root) == 2
    assert result.depth_width == pytest.approx(result.inner_width / 4)
    bicycles = root.child_named("Interests").child_named("Bicycles")
    assert bicycles.y == pytest.approx(2 * result.depth_width)


def test_siblings_keep_order_and_parent_is_centered(config):
    root = build_tree({"name": "R", "children": [{"name": "A"}, {"name": "B"}]})
    root.expand()
    result = compute_layout(root, 1200, 420, config)

    a, b = root.children
    assert a.x < root.x < b.x
    assert root.x == pytest.approx(result.inner_height / 2)
    assert root.x - a.x == pytest.approx(b.x - root.x)


def test_layout_fits_inside_inner_height(config, tree_data):
    root = _expanded(tree_data)
    result = compute_layout(root, 800, 500, config)

    xs = [node.x for node in root.iter_visible()]
    assert min(xs) > 0
    assert max(xs) < result.inner_height
    assert set(result.positions) == {node.stable_id for node in root.iter_visible()}


def test_subtrees_do_not_overlap(config, tree_data):
    root = _expanded(tree_data)
    compute_layout(root, 1200, 420, config)

    depth_two = [node for node in root.iter_visible() if node.depth == 2]
    xs = [node.x for node in depth_two]
    assert xs == sorted(xs)
    assert len(set(xs)) == len(xs)


def test_diagonal_draws_depth_horizontally():
    assert diagonal((10, 0), (30, 100)) == "M 0.00 10.00 C 50.00 10.00, 50.00 30.00, 100.00 30.00"
