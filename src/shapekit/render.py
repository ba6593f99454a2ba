"""Render graph data to SVG through a shape registry."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .builtins import item_size
from .canvas import Group, Item, _fmt, _q, apply_attrs, pretty_xml
from .errors import GraphDataError
from .shape import ItemType, ShapeFactory, ShapeRegistry

LOG = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]


@dataclass
class RenderedGraph:
    svg_root: ET.Element
    nodes: Dict[str, Item] = field(default_factory=dict)
    edges: List[Item] = field(default_factory=list)
    combos: Dict[str, Item] = field(default_factory=dict)

    def to_svg(self) -> str:
        return pretty_xml(self.svg_root)


def render_graph(data: Mapping[str, Any], registry: ShapeRegistry, *, padding: float = 20.0) -> str:
    """Draw ``{"nodes": [...], "edges": [...], "combos": [...]}`` as SVG text."""
    return draw_graph(data, registry, padding=padding).to_svg()


def draw_graph(data: Mapping[str, Any], registry: ShapeRegistry, *, padding: float = 20.0) -> RenderedGraph:
    node_factory = _factory(registry, ItemType.NODE)
    edge_factory = _factory(registry, ItemType.EDGE)
    combo_factory = _factory(registry, ItemType.COMBO)

    svg_root = ET.Element(_q("svg"))
    graph = RenderedGraph(svg_root)
    combo_layer = Group.attach(svg_root, {"class": "combos"})
    edge_layer = Group.attach(svg_root, {"class": "edges"})
    node_layer = Group.attach(svg_root, {"class": "nodes"})

    node_models = [_with_id(model, "node", idx) for idx, model in enumerate(data.get("nodes") or [])]
    combo_models = [_with_id(model, "combo", idx) for idx, model in enumerate(data.get("combos") or [])]
    _check_unique_ids(node_models, "node")
    _check_unique_ids(combo_models, "combo")
    bounds: Optional[BBox] = None

    boxes: Dict[str, BBox] = {}
    for model in node_models:
        boxes[model["id"]] = _item_box(node_factory, model)

    for combo in combo_models:
        members = [boxes[m["id"]] for m in node_models if m.get("combo_id") == combo["id"]]
        combo_model = _fit_combo(combo, members)
        item = draw_item(combo_factory, ItemType.COMBO, combo_model, combo_layer)
        graph.combos[combo["id"]] = item
        bounds = _merge_bbox(bounds, _item_box(combo_factory, combo_model))

    for model in node_models:
        graph.nodes[model["id"]] = draw_item(node_factory, ItemType.NODE, model, node_layer)
        bounds = _merge_bbox(bounds, boxes[model["id"]])

    for idx, edge in enumerate(data.get("edges") or []):
        edge_model = _connect_edge(_with_id(edge, "edge", idx), graph.nodes)
        graph.edges.append(draw_item(edge_factory, ItemType.EDGE, edge_model, edge_layer))

    _apply_root_bounds(svg_root, bounds, padding)
    return graph


def draw_item(factory: ShapeFactory, item_type: ItemType, model: Mapping[str, Any], layer: Group) -> Item:
    attrs: Dict[str, Any] = {"id": model.get("id"), "class": item_type.value}
    if item_type is not ItemType.EDGE:
        attrs["transform"] = _translate(model)
    group = Group.attach(layer.element, attrs)
    item = Item(item_type.value, model, group)
    item.keyshape = factory.draw(model.get("type"), item.model, group)
    for state in model.get("states") or []:
        factory.set_state(model.get("type"), state, True, item)
    return item


def update_item(
    factory: ShapeFactory,
    item: Item,
    changes: Mapping[str, Any],
    update_type: Optional[str] = None,
) -> None:
    """Apply model ``changes``, patching in place when the shape allows it."""
    shape_type = changes.get("type", item.model.get("type"))
    type_changed = shape_type != item.model.get("type")
    item.model.update(changes)
    if "x" in changes or "y" in changes:
        apply_attrs(item.group.element, {"transform": _translate(item.model)})
    if not type_changed and factory.should_update(shape_type):
        factory.base_update(shape_type, item.model, item, update_type)
        return
    LOG.debug("Redrawing %r, shape %r has no in-place update", item.id, shape_type)
    item.group.clear()
    item.origin_style.clear()
    item.keyshape = factory.draw(shape_type, item.model, item.group)
    for state in list(item.states):
        factory.set_state(shape_type, state, True, item)


def set_item_state(factory: ShapeFactory, item: Item, name: str, value: Any) -> None:
    factory.set_state(item.model.get("type"), name, value, item)


def _factory(registry: ShapeRegistry, item_type: ItemType) -> ShapeFactory:
    factory = registry.get_factory(item_type.value)
    if factory is None:
        raise GraphDataError(
            "E_FACTORY_MISSING",
            f"registry has no {item_type.value} factory",
        )
    return factory


def _with_id(model: Mapping[str, Any], prefix: str, idx: int) -> Dict[str, Any]:
    if not isinstance(model, Mapping):
        raise GraphDataError("E_GRAPH_DATA", f"{prefix} #{idx} must be an object")
    result = dict(model)
    if result.get("id") is None:
        result["id"] = f"{prefix}-{idx}"
    result["id"] = str(result["id"])
    return result


def _check_unique_ids(models: List[Dict[str, Any]], prefix: str) -> None:
    seen = set()
    for model in models:
        item_id = model["id"]
        if item_id in seen:
            raise GraphDataError("E_GRAPH_DATA", f"duplicate {prefix} id {item_id!r}")
        seen.add(item_id)


def _translate(model: Mapping[str, Any]) -> str:
    return f"translate({_fmt(float(model.get('x', 0)))}, {_fmt(float(model.get('y', 0)))})"


def _item_box(factory: ShapeFactory, model: Mapping[str, Any]) -> BBox:
    shape = factory.get_shape(model.get("type"))
    options = shape.get_options(shape, model, None) if shape.get_options else dict(shape.options)
    geometry = shape.extra("geometry")
    if geometry is not None:
        _, _, (width, height) = geometry(options)
    else:
        width, height = item_size(options)
    x = float(model.get("x", 0))
    y = float(model.get("y", 0))
    return x - width / 2, y - height / 2, x + width / 2, y + height / 2


def _fit_combo(combo: Dict[str, Any], members: List[BBox]) -> Dict[str, Any]:
    if not members:
        return combo
    bbox: Optional[BBox] = None
    for member in members:
        bbox = _merge_bbox(bbox, member)
    left, top, right, bottom = bbox
    fitted = dict(combo)
    fitted.setdefault("x", (left + right) / 2)
    fitted.setdefault("y", (top + bottom) / 2)
    fitted.setdefault("size", [right - left, bottom - top])
    return fitted


def _connect_edge(edge: Dict[str, Any], nodes: Mapping[str, Item]) -> Dict[str, Any]:
    for end, key in (("source", "start_point"), ("target", "end_point")):
        if key in edge:
            continue
        node_id = edge.get(end)
        node = nodes.get(str(node_id)) if node_id is not None else None
        if node is None:
            raise GraphDataError(
                "E_EDGE_ENDPOINT",
                f"edge {edge['id']!r} {end} {node_id!r} is not a node in the graph",
            )
        edge[key] = {"x": float(node.model.get("x", 0)), "y": float(node.model.get("y", 0))}
    return edge


def _merge_bbox(current: Optional[BBox], new: Optional[BBox]) -> Optional[BBox]:
    if new is None:
        return current
    if current is None:
        return new
    return (
        min(current[0], new[0]),
        min(current[1], new[1]),
        max(current[2], new[2]),
        max(current[3], new[3]),
    )


def _apply_root_bounds(svg_root: ET.Element, bbox: Optional[BBox], padding: float) -> None:
    if bbox is None:
        bbox = (0.0, 0.0, 0.0, 0.0)
    left, top, right, bottom = bbox
    width = max(right - left + 2 * padding, 1.0)
    height = max(bottom - top + 2 * padding, 1.0)
    svg_root.set(
        "viewBox",
        f"{_fmt(left - padding)} {_fmt(top - padding)} {_fmt(width)} {_fmt(height)}",
    )
    svg_root.set("width", _fmt(width))
    svg_root.set("height", _fmt(height))
