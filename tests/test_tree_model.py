import itertools

import pytest

from tree_model import ExpandState, MalformedTreeError, build_tree


def test_build_tree_assigns_preorder_ids_and_parents(tree_data):
    root = build_tree(tree_data)

    names = [node.name for node in root.iter_all()]
    assert names == ["Root", "Interests", "Minerals", "Bicycles", "Making", "Experiments", "Now"]
    assert [node.stable_id for node in root.iter_all()] == list(range(7))

    bicycles = root.children[0].children[1]
    assert bicycles.parent is root.children[0]
    assert bicycles.depth == 2
    assert bicycles.path_names() == ["Root", "Interests", "Bicycles"]


def test_build_tree_draws_ids_from_shared_counter(tree_data):
    counter = itertools.count(100)
    first = build_tree(tree_data, counter)
    second = build_tree(tree_data, counter)

    first_ids = {node.stable_id for node in first.iter_all()}
    second_ids = {node.stable_id for node in second.iter_all()}
    assert first_ids.isdisjoint(second_ids)
    assert min(first_ids) == 100


def test_null_or_empty_slug_means_no_content(tree_data):
    tree_data["children"][2]["slug"] = ""
    root = build_tree(tree_data)

    making = root.child_named("Making")
    now = root.child_named("Now")
    assert making.identifier is None
    assert making.has_content is False
    assert now.identifier is None
    assert root.has_content is True


def test_nodes_start_collapsed_and_toggle(tree_data):
    root = build_tree(tree_data)
    assert all(node.state is ExpandState.COLLAPSED for node in root.iter_all())
    assert list(root.iter_visible()) == [root]

    root.toggle()
    assert root.expanded
    assert [n.name for n in root.iter_visible()] == ["Root", "Interests", "Making", "Now"]


def test_collapsing_keeps_descendant_flags(tree_data):
    root = build_tree(tree_data)
    for node in root.iter_all():
        node.expand()
    interests = root.child_named("Interests")

    interests.collapse()
    visible = {n.name for n in root.iter_visible()}
    assert "Minerals" not in visible
    assert "Bicycles" not in visible
    # descendants keep their own flags
    assert interests.children[0].expanded

    interests.expand()
    assert {"Minerals", "Bicycles"} <= {n.name for n in root.iter_visible()}


def test_malformed_payload_raises():
    with pytest.raises(MalformedTreeError):
        build_tree(None)
    with pytest.raises(MalformedTreeError):
        build_tree({"slug": "x"})
    with pytest.raises(MalformedTreeError):
        build_tree(["Root"])


def test_malformed_children_are_skipped(capsys):
    root = build_tree(
        {
            "name": "Root",
            "children": [{"slug": "no-name"}, "text", {"name": "Ok", "children": "oops"}],
        }
    )

    assert [child.name for child in root.children] == ["Ok"]
    assert root.children[0].children == []
    assert "Skipping malformed child" in capsys.readouterr().out


def test_to_data_round_trips_the_contract(tree_data):
    root = build_tree(tree_data)
    assert root.to_data() == tree_data
