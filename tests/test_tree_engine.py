import pytest

from tree_engine import (
    MIN_HEIGHT,
    LandingPolicy,
    TreeState,
    TreeStateEngine,
)
from tree_model import build_tree


def _engine(tree_data, landing=None, **kwargs):
    selections = []
    engine = TreeStateEngine(landing=landing or LandingPolicy.collapsed(), **kwargs)
    engine.initialize((1200, 420), lambda identifier, name: selections.append((identifier, name)))
    assert engine.load_tree(tree_data) is True
    return engine, selections


def _names(nodes):
    return [node.name for node in nodes]


def _node(engine, *names):
    node = engine.find_by_path(names)
    assert node is not None
    return node


def test_initialize_enforces_minimum_height():
    engine = TreeStateEngine()
    engine.initialize((800, 120))
    assert engine.height == MIN_HEIGHT
    assert engine.initialized


def test_collapsed_landing_shows_only_root(tree_data):
    engine, selections = _engine(tree_data)

    assert _names(engine.visible_nodes()) == ["Root"]
    assert engine.is_collapsed()
    assert engine.settle() == 0
    assert engine.selected is None
    assert selections == []

    root_view = engine.last_frame.node(engine.root.stable_id)
    assert "node--collapsed" in root_view.classes
    assert "node--has-children" in root_view.classes
    assert root_view.radius == engine.layout_config.node_radius_collapsed


def test_first_click_on_collapsed_root_only_expands(tree_data):
    engine, selections = _engine(tree_data)

    engine.click(engine.root)

    assert _names(engine.visible_nodes()) == ["Root", "Interests", "Making", "Now"]
    assert engine.selected is None
    assert selections == []


def test_second_click_on_root_collapses_and_selects(tree_data):
    engine, selections = _engine(tree_data)
    engine.click(engine.root)

    engine.click(engine.root)

    assert _names(engine.visible_nodes()) == ["Root"]
    assert engine.selected is engine.root
    assert selections == [("root", "Root")]


def test_click_on_leaf_with_content_selects_and_notifies(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.expanded())
    engine.settle()
    selections.clear()

    engine.expand_all()
    bicycles = _node(engine, "Interests", "Bicycles")
    engine.click(bicycles)

    assert engine.selected is bicycles
    assert _names(engine.active_path()) == ["Root", "Interests", "Bicycles"]
    assert selections == [("bicycles", "Bicycles")]


def test_click_on_branch_without_content_only_toggles(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.expanded())
    engine.settle()
    selections.clear()
    making = _node(engine, "Making")
    assert making.expanded

    engine.click(making)

    assert not making.expanded
    assert engine.selected is engine.root
    assert selections == []


def test_visible_nodes_are_reachable_through_expanded_nodes(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())

    for node in engine.visible_nodes():
        for ancestor in node.ancestors()[1:]:
            assert ancestor.expanded


def test_toggle_twice_restores_visible_set(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    before = _names(engine.visible_nodes())
    interests = _node(engine, "Interests")

    engine.toggle(interests)
    assert "Minerals" not in _names(engine.visible_nodes())
    engine.toggle(interests)

    assert _names(engine.visible_nodes()) == before


def test_collapse_preserves_descendant_flags(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    interests = _node(engine, "Interests")

    engine.toggle(engine.root)

    assert _names(engine.visible_nodes()) == ["Root"]
    assert interests.expanded
    engine.toggle(engine.root)
    assert "Bicycles" in _names(engine.visible_nodes())


def test_select_and_clear_active_path(tree_data):
    engine, selections = _engine(tree_data)
    minerals = _node(engine, "Interests", "Minerals")

    engine.select_node(minerals)
    assert _names(engine.active_path()) == ["Root", "Interests", "Minerals"]
    assert selections == [("minerals", "Minerals")]

    engine.clear_selection()
    assert engine.active_path() == []
    assert engine.selected is None


def test_active_classes_and_links_follow_selection(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    engine.settle()
    minerals = _node(engine, "Interests", "Minerals")

    engine.select_node(minerals)
    frame = engine.last_frame

    active_nodes = {view.name for view in frame.nodes if "node--active" in view.classes}
    assert active_nodes == {"Root", "Interests", "Minerals"}
    active_links = {link.stable_id for link in frame.links if link.active}
    assert active_links == {_node(engine, "Interests").stable_id, minerals.stable_id}


def test_select_node_ignores_foreign_nodes(tree_data):
    engine, selections = _engine(tree_data)
    stranger = build_tree(tree_data)

    engine.select_node(stranger)

    assert engine.selected is None
    assert selections == []


def test_expanded_landing_selects_root_after_settle(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.expanded())

    assert engine.selected is None
    assert engine.settle() == 1
    assert engine.selected is engine.root
    assert selections == [("root", "Root")]
    assert len(engine.visible_nodes()) == 7


def test_expanded_landing_without_root_content_selects_nothing(tree_data):
    tree_data["slug"] = None
    engine, selections = _engine(tree_data, LandingPolicy.expanded())

    assert engine.settle() == 0
    assert engine.selected is None
    assert selections == []


def test_path_landing_selects_target(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.to_path(["Interests", "Bicycles"]))

    assert _names(engine.visible_nodes()) == ["Root", "Interests", "Minerals", "Bicycles", "Making", "Now"]
    engine.settle()

    assert engine.selected is _node(engine, "Interests", "Bicycles")
    assert selections == [("bicycles", "Bicycles")]


def test_path_landing_with_missing_name_stops_and_selects_nothing(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.to_path(["Interests", "Kites"]))

    assert _node(engine, "Interests").expanded
    assert engine.settle() == 0
    assert engine.selected is None
    assert selections == []


def test_empty_path_landing_behaves_like_collapsed(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.to_path([]))

    assert _names(engine.visible_nodes()) == ["Root"]
    assert engine.settle() == 0


def test_from_settings_validates_mode():
    assert LandingPolicy.from_settings("Path", ["A"]) == LandingPolicy.to_path(["A"])
    assert LandingPolicy.from_settings("expanded", ["ignored"]).path == ()
    with pytest.raises(ValueError):
        LandingPolicy.from_settings("sideways")


def test_injected_scheduler_receives_settle_delay(tree_data):
    scheduled = []
    engine, selections = _engine(
        tree_data,
        LandingPolicy.expanded(),
        scheduler=lambda delay, callback: scheduled.append((delay, callback)),
    )

    assert len(scheduled) == 1
    delay, callback = scheduled[0]
    assert delay == pytest.approx(engine.layout_config.duration + 0.05)
    callback()
    assert engine.selected is engine.root
    assert selections == [("root", "Root")]


def test_stale_landing_callback_is_ignored_after_reload(tree_data):
    scheduled = []
    engine, selections = _engine(
        tree_data,
        LandingPolicy.expanded(),
        scheduler=lambda delay, callback: scheduled.append(callback),
    )

    engine.load_tree(tree_data)
    scheduled[0]()

    assert engine.selected is None
    assert selections == []


def test_landing_callback_is_ignored_after_dispose(tree_data):
    scheduled = []
    engine, selections = _engine(
        tree_data,
        LandingPolicy.expanded(),
        scheduler=lambda delay, callback: scheduled.append(callback),
    )

    engine.dispose()
    scheduled[0]()

    assert selections == []
    assert engine.root is None
    assert not engine.initialized


def test_malformed_tree_renders_empty(tree_data, capsys):
    engine = TreeStateEngine()
    engine.initialize((960, 420))

    assert engine.load_tree({"children": []}) is False
    assert engine.root is None
    assert engine.last_frame.nodes == ()
    assert engine.visible_nodes() == []
    assert "Could not load tree" in capsys.readouterr().out


def test_entering_nodes_start_from_parent_previous_position(tree_data):
    engine, _ = _engine(tree_data)
    root_before = engine.last_frame.node(engine.root.stable_id)

    engine.click(engine.root)
    frame = engine.last_frame

    entering = [view for view in frame.nodes if view.entering]
    assert _names(entering) == ["Interests", "Making", "Now"]
    for view in entering:
        assert view.start == (root_before.x, root_before.y)
    assert frame.exiting_nodes == ()


def test_deep_entering_nodes_use_nearest_rendered_ancestor(tree_data):
    engine, _ = _engine(tree_data)
    root_before = engine.last_frame.node(engine.root.stable_id)

    engine.expand_all()
    minerals = engine.last_frame.node(_node(engine, "Interests", "Minerals").stable_id)

    assert minerals.entering
    assert minerals.start == (root_before.x, root_before.y)


def test_exiting_nodes_move_to_nearest_visible_ancestor(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    interests = _node(engine, "Interests")

    engine.toggle(interests)
    frame = engine.last_frame
    interests_view = frame.node(interests.stable_id)

    exiting = {view.stable_id: view for view in frame.exiting_nodes}
    assert set(exiting) == {child.stable_id for child in interests.children}
    for view in exiting.values():
        assert view.target == (interests_view.x, interests_view.y)
    assert {view.stable_id for view in frame.exiting_links} == set(exiting)


def test_updated_nodes_are_not_entering(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    engine.toggle(_node(engine, "Interests"))

    frame = engine.last_frame
    assert not any(view.entering for view in frame.nodes)
    assert frame.sequence > 1


def test_leaf_labels_sit_right_and_branch_labels_left(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    frame = engine.last_frame

    now = frame.node(_node(engine, "Now").stable_id)
    making = frame.node(_node(engine, "Making").stable_id)
    assert (now.label_anchor, now.label_x) == ("start", engine.layout_config.label_offset)
    assert (making.label_anchor, making.label_x) == ("end", -engine.layout_config.label_offset)
    assert "node--leaf" in now.classes
    assert "node--parent" in making.classes


def test_root_label_hidden_on_mobile_when_tree_is_deep(tree_data):
    engine = TreeStateEngine(landing=LandingPolicy.expanded())
    engine.initialize((400, 420))
    engine.load_tree(tree_data)

    root_view = engine.last_frame.node(engine.root.stable_id)
    assert root_view.label_visible is False


def test_resize_rerenders_with_new_width(tree_data):
    engine, _ = _engine(tree_data, LandingPolicy.expanded())
    frame = engine.resize(700, 500)

    assert frame is engine.last_frame
    assert frame.width == 700
    assert frame.margin == engine.layout_config.margin_tablet


def test_renderers_receive_frames_and_failures_are_contained(tree_data, capsys):
    engine = TreeStateEngine()
    engine.initialize((960, 420))
    received = []

    class Broken:
        def render(self, frame):
            raise RuntimeError("boom")

    class Recorder:
        def render(self, frame):
            received.append(frame.sequence)

    engine.add_renderer(Broken())
    engine.add_renderer(Recorder())
    engine.load_tree(tree_data)

    assert received == [engine.last_frame.sequence]
    assert "Renderer failed" in capsys.readouterr().out


def test_snapshot_and_restore(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.expanded())
    engine.settle()
    engine.toggle(_node(engine, "Making"))
    bicycles = _node(engine, "Interests", "Bicycles")
    engine.select_node(bicycles)
    state = engine.snapshot()

    other, other_selections = _engine(tree_data)
    other.restore(state, notify=True)

    assert _names(other.visible_nodes()) == _names(engine.visible_nodes())
    assert other.selected.name == "Bicycles"
    assert other_selections == [("bicycles", "Bicycles")]


def test_restore_drops_pending_landing_selection(tree_data):
    engine, selections = _engine(tree_data, LandingPolicy.expanded())

    engine.restore(TreeState(frozenset({engine.root.stable_id}), None))

    assert engine.settle() == 0
    assert engine.selected is None
    assert selections == []


def test_restore_ignores_unknown_ids(tree_data):
    engine, _ = _engine(tree_data)

    engine.restore(TreeState(frozenset({999}), 998))

    assert _names(engine.visible_nodes()) == ["Root"]
    assert engine.selected is None


def test_preview_click_does_not_change_state(tree_data):
    engine, selections = _engine(tree_data)
    before = engine.snapshot()

    preview = engine.preview_click(engine.root)

    assert engine.snapshot() == before
    assert preview == TreeState(frozenset({engine.root.stable_id}), None)
    assert selections == []

    engine.click(engine.root)
    assert engine.snapshot() == preview


def test_expand_all_and_collapse_all(tree_data):
    engine, _ = _engine(tree_data)

    engine.expand_all()
    assert len(engine.visible_nodes()) == 7

    engine.collapse_all()
    assert _names(engine.visible_nodes()) == ["Root"]
    assert engine.is_collapsed()
    assert engine.snapshot() == TreeState()
