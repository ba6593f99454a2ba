from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from shapekit.canvas import Group, Item
from shapekit.errors import ShapeDefinitionError, ShapeRegistryError
from shapekit.shape import (
    SHAPE_FRAMEWORK,
    ItemType,
    ShapeRegistry,
    _CLASS_NAME_CACHE,
    class_name_for,
)


def _draw_returning(handle):
    return lambda shape, cfg, group: handle


class ShapeRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = ShapeRegistry()
        self.registry.register_factory("node", {"default_shape_type": "circle"})
        self.nodes = self.registry.get_factory("node")

    def test_unknown_type_resolves_to_default_type(self) -> None:
        circle = self.registry.register_node("circle", {"draw": _draw_returning("H1")})
        self.assertIs(self.nodes.get_shape("missing"), circle)
        self.assertIs(self.nodes.get_shape(), circle)
        self.assertFalse(self.nodes.should_update("circle"))
        self.assertEqual(self.nodes.draw("missing", {}, Group()), "H1")

    def test_exact_match_wins_over_default(self) -> None:
        self.registry.register_node("circle", {"draw": _draw_returning("circle")})
        rect = self.registry.register_node("rect", {"draw": _draw_returning("rect")})
        self.assertIs(self.nodes.get_shape("rect"), rect)

    def test_universal_fallback_when_default_missing(self) -> None:
        fallback = self.registry.register_node("simple-circle", {"draw": _draw_returning("fallback")})
        self.assertIs(self.nodes.get_shape("anything"), fallback)

    def test_no_fallback_registered_raises(self) -> None:
        with self.assertRaises(ShapeRegistryError) as ctx:
            self.nodes.get_shape("anything")
        self.assertEqual(ctx.exception.code, "E_SHAPE_MISSING")

    def test_extension_inherits_unset_fields(self) -> None:
        f_a = mock.Mock(name="fA")
        g_a = mock.Mock(name="gA")
        f_b = mock.Mock(name="fB")
        self.registry.register_node("A", {"draw": f_a, "get_control_points": g_a})
        shape_b = self.registry.register_node("B", {"draw": f_b}, "A")
        self.assertIs(shape_b.draw, f_b)
        self.assertIs(shape_b.get_control_points, g_a)
        self.assertEqual(shape_b.type, "B")
        self.assertIs(shape_b.item_type, ItemType.NODE)

    def test_extension_is_a_snapshot(self) -> None:
        self.registry.register_node("A", {"options": {"k": 1}, "label_position": "top"})
        shape_b = self.registry.register_node("B", {}, "A")
        self.registry.register_node("A", {"options": {"k": 2}})
        self.assertEqual(shape_b.options, {"k": 1})
        self.assertEqual(shape_b.extra("label_position"), "top")
        self.assertEqual(self.nodes.get_shape("A").options, {"k": 2})

    def test_extension_does_not_mutate_base(self) -> None:
        shape_a = self.registry.register_node("A", {"helper": 1})
        self.registry.register_node("B", {"helper": 2, "other": 3}, "A")
        self.assertEqual(dict(shape_a.extras), {"helper": 1})
        self.assertEqual(shape_a.type, "A")

    def test_reregistration_replaces_previous_shape(self) -> None:
        self.registry.register_node("t", {"draw": _draw_returning(1), "label_position": "top"})
        replacement = self.registry.register_node("t", {"draw": _draw_returning(2)})
        self.assertIs(self.nodes.get_shape("t"), replacement)
        self.assertIsNone(replacement.extra("label_position"))

    def test_extending_unknown_type_extends_default(self) -> None:
        circle = self.registry.register_node(
            "circle",
            {"draw": mock.Mock(), "update": mock.Mock(), "options": {"size": 40}},
        )
        ghost = self.registry.register_node("from-ghost", {}, "ghost")
        direct = self.registry.register_node("from-circle", {}, "circle")
        for shape in (ghost, direct):
            self.assertIs(shape.draw, circle.draw)
            self.assertIs(shape.update, circle.update)
            self.assertEqual(shape.options, {"size": 40})

    def test_definition_without_base_uses_framework(self) -> None:
        shape = self.registry.register_node("plain", {})
        self.assertIs(shape.draw, SHAPE_FRAMEWORK.draw)
        self.assertIs(shape.set_state, SHAPE_FRAMEWORK.set_state)
        self.assertIsNone(shape.update)
        self.assertIsNone(self.nodes.draw("plain", {}, Group()))

    def test_draw_calls_after_draw_once_with_result(self) -> None:
        calls = []

        def draw(shape, cfg, group):
            calls.append("draw")
            return "handle"

        after_draw = mock.Mock(side_effect=lambda *args: calls.append("after_draw"))
        shape = self.registry.register_node("n", {"draw": draw, "after_draw": after_draw})
        group = Group()
        group.shape_map["stale"] = object()
        cfg = {"id": "n1"}

        result = self.nodes.draw("n", cfg, group)

        self.assertEqual(result, "handle")
        self.assertEqual(calls, ["draw", "after_draw"])
        after_draw.assert_called_once_with(shape, cfg, group, "handle")
        self.assertEqual(group.shape_map, {})

    def test_base_update_is_noop_without_update(self) -> None:
        after_update = mock.Mock()
        get_options = mock.Mock()
        self.registry.register_node(
            "static",
            {"draw": mock.Mock(), "after_update": after_update, "get_options": get_options},
        )
        self.assertFalse(self.nodes.should_update("static"))
        self.nodes.base_update("static", {}, mock.sentinel.item)
        after_update.assert_not_called()
        get_options.assert_not_called()

    def test_base_update_computes_merge_style_before_update(self) -> None:
        seen = []

        def get_options(shape, cfg, update_type):
            return {"fill": cfg["fill"], "update_type": update_type}

        def update(shape, cfg, item, update_type):
            seen.append(("update", dict(shape.merge_style)))

        def after_update(shape, cfg, item):
            seen.append(("after_update", item))

        self.registry.register_node(
            "live",
            {"update": update, "after_update": after_update, "get_options": get_options},
        )
        self.assertTrue(self.nodes.should_update("live"))

        self.nodes.base_update("live", {"fill": "red"}, "item-1", "style")
        self.nodes.base_update("live", {"fill": "blue"}, "item-1")

        self.assertEqual(
            seen,
            [
                ("update", {"fill": "red", "update_type": "style"}),
                ("after_update", "item-1"),
                ("update", {"fill": "blue", "update_type": None}),
                ("after_update", "item-1"),
            ],
        )

    def test_merge_style_is_reset_without_get_options(self) -> None:
        observed = []
        shape = self.registry.register_node(
            "bare-update",
            {"update": lambda shape, cfg, item, update_type: observed.append(shape.merge_style)},
        )
        shape.merge_style = {"stale": True}
        self.nodes.base_update("bare-update", {}, None)
        self.assertEqual(observed, [None])

    def test_set_state_delegates_to_shape(self) -> None:
        set_state = mock.Mock()
        shape = self.registry.register_node("s", {"set_state": set_state})
        item = Item("node", {"id": "a"}, Group())
        self.nodes.set_state("s", "selected", True, item)
        set_state.assert_called_once_with(shape, "selected", True, item)

    def test_framework_set_state_is_noop(self) -> None:
        self.registry.register_node("plain", {})
        self.assertIsNone(self.nodes.set_state("plain", "hover", True, Item("node", {}, Group())))

    def test_framework_anchor_and_control_points(self) -> None:
        self.registry.register_node("anchored", {"options": {"anchor_points": [[0, 0.5]]}})
        self.assertEqual(self.nodes.get_anchor_points("anchored", {}), [[0, 0.5]])
        self.assertEqual(
            self.nodes.get_anchor_points("anchored", {"anchor_points": [[1, 1]]}),
            [[1, 1]],
        )
        self.assertEqual(self.nodes.get_anchor_points("anchored", {"anchor_points": []}), [])
        points = [{"x": 1, "y": 2}]
        self.assertEqual(self.nodes.get_control_points("anchored", {"control_points": points}), points)
        self.assertIsNone(self.nodes.get_control_points("anchored", {}))

    def test_definition_must_be_mapping(self) -> None:
        self.registry.register_factory("edge")
        with self.assertRaises(ShapeDefinitionError) as ctx:
            self.registry.register_edge("bad", ["draw"])
        self.assertEqual(ctx.exception.code, "E_DEFINITION")

    def test_required_hooks_are_validated(self) -> None:
        with self.assertRaises(ShapeDefinitionError):
            self.registry.register_node("broken", {"draw": None})
        with self.assertRaises(ShapeDefinitionError):
            self.registry.register_node("broken", {"set_state": "nope"})
        self.assertNotIn("broken", self.nodes)


class ShapeFactoryDirectoryTests(unittest.TestCase):
    def test_factory_names_are_normalized(self) -> None:
        registry = ShapeRegistry()
        factory = registry.register_factory("node", {"default_shape_type": "circle"})
        self.assertEqual(factory.class_name, "Node")
        self.assertIs(registry.get_factory("node"), factory)
        self.assertIs(registry.get_factory("Node"), factory)
        self.assertIsNone(registry.get_factory("edge"))
        self.assertEqual(registry.families(), ["Node"])

    def test_default_shape_type_default(self) -> None:
        factory = ShapeRegistry().register_factory("combo")
        self.assertEqual(factory.default_shape_type, "default_type")

    def test_extra_factory_settings_are_kept(self) -> None:
        factory = ShapeRegistry().register_factory("edge", {"default_shape_type": "line", "arrow": True})
        self.assertEqual(factory.default_shape_type, "line")
        self.assertEqual(dict(factory.settings), {"arrow": True})

    def test_recreating_factory_drops_registered_types(self) -> None:
        registry = ShapeRegistry()
        registry.register_factory("node")
        registry.register_node("kept?", {})
        fresh = registry.register_factory("node")
        self.assertIs(registry.get_factory("node"), fresh)
        self.assertNotIn("kept?", fresh)

    def test_registering_into_missing_factory_raises(self) -> None:
        with self.assertRaises(ShapeRegistryError) as ctx:
            ShapeRegistry().register_combo("c", {})
        self.assertEqual(ctx.exception.code, "E_FACTORY_MISSING")

    def test_families_are_isolated(self) -> None:
        registry = ShapeRegistry()
        registry.register_factory("node", {"default_shape_type": "circle"})
        registry.register_factory("combo", {"default_shape_type": "circle"})
        node = registry.register_node("circle", {"draw": _draw_returning("node")})
        combo = registry.register_combo("circle", {"draw": _draw_returning("combo")})
        self.assertIsNot(node, combo)
        self.assertIs(node.item_type, ItemType.NODE)
        self.assertIs(combo.item_type, ItemType.COMBO)
        self.assertEqual(registry.get_factory("combo").draw("circle", {}, Group()), "combo")
        self.assertEqual(registry.get_factory("node").shape_types(), ["circle"])

    def test_class_name_is_memoized(self) -> None:
        self.assertEqual(class_name_for("grouping"), "Grouping")
        self.assertEqual(_CLASS_NAME_CACHE["grouping"], "Grouping")
        self.assertEqual(class_name_for(""), "")


if __name__ == "__main__":
    unittest.main()
