"""Built-in node, edge and combo shapes."""
from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .canvas import Group, Item, _fmt, apply_attrs, point_xy
from .errors import GraphDataError
from .shape import Shape, ShapeRegistry
from .text import DEFAULT_FONT_FAMILY, TEXT_MEASURER

LOG = logging.getLogger(__name__)

LABEL_SHAPE = "text-shape"
LABEL_BG_SHAPE = "text-bg-shape"

Point = Tuple[float, float]

_CFG_OPTION_KEYS = (
    "size",
    "style",
    "label_cfg",
    "state_styles",
    "padding",
    "curve_offset",
    "curve_position",
)

LABEL_STYLE = {"fill": "#000000", "font-size": 12, "font-family": DEFAULT_FONT_FAMILY}

NODE_STYLE = {"fill": "#C6E5FF", "stroke": "#5B8FF9", "stroke-width": 1}
EDGE_STYLE = {"stroke": "#A3B1BF", "stroke-width": 1, "fill": "none"}
COMBO_STYLE = {"fill": "#F3F9FF", "stroke": "#5B8FF9", "stroke-width": 1, "fill-opacity": 0.6}

STATE_STYLES = {
    "selected": {"stroke-width": 3},
    "active": {"stroke": "#1890FF"},
    "inactive": {"opacity": 0.3},
}


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def parse_length(value: Any, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(r"^-?\d+(?:\.\d+)?", str(value))
    if match:
        return float(match.group(0))
    return default


def item_size(options: Mapping[str, Any], default: float = 40.0) -> Tuple[float, float]:
    size = options.get("size", default)
    if isinstance(size, (int, float)):
        return float(size), float(size)
    if len(size) == 1:
        return float(size[0]), float(size[0])
    return float(size[0]), float(size[1])


def item_padding(options: Mapping[str, Any]) -> Tuple[float, float, float, float]:
    """Padding as (top, right, bottom, left), CSS style."""
    padding = options.get("padding", 0)
    if isinstance(padding, (int, float)):
        return (float(padding),) * 4
    values = [float(v) for v in padding]
    if len(values) == 2:
        return values[0], values[1], values[0], values[1]
    if len(values) == 4:
        return values[0], values[1], values[2], values[3]
    return (values[0],) * 4


def get_options(shape: Shape, cfg: Mapping[str, Any], update_type: Optional[str] = None) -> Dict[str, Any]:
    """Shape defaults deep-merged with the style keys of the model cfg.

    A ``"move"`` update only changes the item position, so it needs no
    style snapshot.
    """
    if update_type == "move":
        return {}
    overrides = {key: cfg[key] for key in _CFG_OPTION_KEYS if cfg.get(key) is not None}
    return deep_merge(shape.options, overrides)


def keyshape_name(shape: Shape) -> str:
    return f"{shape.type}-keyshape"


# -- labels -----------------------------------------------------------------


def draw_label(
    group: Group,
    text: str,
    x: float,
    y: float,
    label_cfg: Mapping[str, Any],
    anchor: str = "middle",
) -> ET.Element:
    style = {**LABEL_STYLE, **label_cfg.get("style", {})}
    background = label_cfg.get("background")
    if background:
        font_size = parse_length(style.get("font-size"), 12.0)
        width, height = TEXT_MEASURER.bbox(text, font_size, style.get("font-family"))
        padding = float(background.get("padding", 2))
        if anchor == "start":
            left = x
        elif anchor == "end":
            left = x - width
        else:
            left = x - width / 2
        bg_attrs = {key: value for key, value in background.items() if key != "padding"}
        group.add_shape(
            "rect",
            {
                "x": left - padding,
                "y": y - height / 2 - padding,
                "width": width + 2 * padding,
                "height": height + 2 * padding,
                **bg_attrs,
            },
            name=LABEL_BG_SHAPE,
        )
    attrs = {"x": x, "y": y, "text-anchor": anchor, "dominant-baseline": "middle", **style}
    return group.add_shape("text", attrs, name=LABEL_SHAPE, text=text)


def _node_label_point(position: str, width: float, height: float, offset: float) -> Tuple[float, float, str]:
    if position == "top":
        return 0.0, -height / 2 - offset, "middle"
    if position == "bottom":
        return 0.0, height / 2 + offset, "middle"
    if position == "left":
        return -width / 2 - offset, 0.0, "end"
    if position == "right":
        return width / 2 + offset, 0.0, "start"
    return 0.0, 0.0, "middle"


def _draw_node_label(shape: Shape, options: Mapping[str, Any], cfg: Mapping[str, Any], group: Group) -> None:
    label = cfg.get("label")
    if label in (None, ""):
        return
    label_cfg = options.get("label_cfg", {})
    _, _, (width, height) = shape.extra("geometry")(options)
    x, y, anchor = _node_label_point(
        label_cfg.get("position", "center"), width, height, float(label_cfg.get("offset", 5))
    )
    draw_label(group, str(label), x, y, label_cfg, anchor)


def _refresh_label(group: Group) -> None:
    group.remove(LABEL_SHAPE)
    group.remove(LABEL_BG_SHAPE)


# -- states -----------------------------------------------------------------


def restyle_states(item: Item, state_styles: Mapping[str, Mapping[str, Any]]) -> None:
    """Apply the styles of ``item.states`` over the keyshape's own style."""
    keyshape = item.keyshape
    if keyshape is None:
        return
    active: Dict[str, Any] = {}
    for state in item.states:
        active.update(state_styles.get(state, {}))
    for key in active:
        item.origin_style.setdefault(key, keyshape.get(key))
    restore = {key: value for key, value in item.origin_style.items() if key not in active}
    apply_attrs(keyshape, restore)
    for key in restore:
        del item.origin_style[key]
    apply_attrs(keyshape, active)


def _set_state(shape: Shape, name: str, value: Any, item: Item) -> None:
    item.set_state_flag(name, value)
    options = shape.get_options(shape, item.model, None)
    restyle_states(item, options.get("state_styles", {}))


# -- nodes and combos -------------------------------------------------------


def _circle_geometry(options: Mapping[str, Any]):
    width, _ = item_size(options)
    return "circle", {"cx": 0, "cy": 0, "r": width / 2}, (width, width)


def _rect_geometry(options: Mapping[str, Any]):
    width, height = item_size(options)
    return "rect", {"x": -width / 2, "y": -height / 2, "width": width, "height": height}, (width, height)


def _ellipse_geometry(options: Mapping[str, Any]):
    width, height = item_size(options)
    return "ellipse", {"cx": 0, "cy": 0, "rx": width / 2, "ry": height / 2}, (width, height)


def _diamond_geometry(options: Mapping[str, Any]):
    width, height = item_size(options)
    hw, hh = width / 2, height / 2
    points = f"0,{_fmt(-hh)} {_fmt(hw)},0 0,{_fmt(hh)} {_fmt(-hw)},0"
    return "polygon", {"points": points}, (width, height)


def _combo_circle_geometry(options: Mapping[str, Any]):
    width, height = item_size(options)
    r = max(width, height) / 2 + max(item_padding(options))
    return "circle", {"cx": 0, "cy": 0, "r": r}, (2 * r, 2 * r)


def _combo_rect_geometry(options: Mapping[str, Any]):
    width, height = item_size(options)
    top, right, bottom, left = item_padding(options)
    full_width = width + left + right
    full_height = height + top + bottom
    attrs = {"x": -width / 2 - left, "y": -height / 2 - top, "width": full_width, "height": full_height}
    return "rect", attrs, (full_width, full_height)


def _node_draw_shape(shape: Shape, cfg: Mapping[str, Any], group: Group) -> ET.Element:
    options = shape.get_options(shape, cfg, None)
    tag, geometry, _ = shape.extra("geometry")(options)
    return group.add_shape(tag, {**geometry, **options.get("style", {})}, name=keyshape_name(shape))


def _node_draw(shape: Shape, cfg: Mapping[str, Any], group: Group) -> ET.Element:
    keyshape = shape.draw_shape(shape, cfg, group)
    _draw_node_label(shape, shape.get_options(shape, cfg, None), cfg, group)
    return keyshape


def _node_update(shape: Shape, cfg: Mapping[str, Any], item: Item, update_type: Optional[str] = None) -> None:
    options = shape.merge_style
    if not options:
        return
    if item.keyshape is not None:
        _, geometry, _ = shape.extra("geometry")(options)
        item.origin_style.clear()
        apply_attrs(item.keyshape, {**geometry, **options.get("style", {})})
        restyle_states(item, options.get("state_styles", {}))
    _refresh_label(item.group)
    _draw_node_label(shape, options, cfg, item.group)


SINGLE_NODE = {
    "options": {
        "size": 40,
        "label_cfg": {"position": "center", "offset": 5, "style": {}},
        "state_styles": STATE_STYLES,
    },
    "draw": _node_draw,
    "draw_shape": _node_draw_shape,
    "update": _node_update,
    "set_state": _set_state,
    "get_options": get_options,
    "geometry": _circle_geometry,
}

SINGLE_COMBO = {
    **SINGLE_NODE,
    "options": {
        "size": 40,
        "padding": [25, 20, 15, 20],
        "style": COMBO_STYLE,
        "label_cfg": {"position": "top", "offset": 5, "style": {}},
        "state_styles": STATE_STYLES,
    },
    "geometry": _combo_circle_geometry,
}


def _node_options(**overrides: Any) -> Dict[str, Any]:
    return deep_merge(SINGLE_NODE["options"], {"style": NODE_STYLE, **overrides})


# -- edges ------------------------------------------------------------------


def _control_point(start: Point, end: Point, percent: float, offset: float) -> Dict[str, float]:
    sx, sy = start
    ex, ey = end
    px = sx + (ex - sx) * percent
    py = sy + (ey - sy) * percent
    length = math.hypot(ex - sx, ey - sy)
    if length == 0:
        return {"x": px, "y": py}
    return {"x": px - (ey - sy) / length * offset, "y": py + (ex - sx) / length * offset}


def _endpoints(cfg: Mapping[str, Any]) -> Tuple[Point, Point]:
    try:
        return point_xy(cfg["start_point"]), point_xy(cfg["end_point"])
    except (KeyError, TypeError, IndexError) as exc:
        raise GraphDataError(
            "E_EDGE_POINTS",
            f"edge {cfg.get('id')!r} needs start_point and end_point",
        ) from exc


def edge_points(shape: Shape, cfg: Mapping[str, Any]) -> List[Point]:
    start, end = _endpoints(cfg)
    controls = shape.get_control_points(shape, cfg) or []
    return [start, *(point_xy(p) for p in controls), end]


def _point_along(points: Sequence[Point], ratio: float) -> Point:
    segments = list(zip(points, points[1:]))
    lengths = [math.hypot(b[0] - a[0], b[1] - a[1]) for a, b in segments]
    total = sum(lengths)
    if total == 0:
        return points[0]
    remaining = total * min(max(ratio, 0.0), 1.0)
    for (a, b), length in zip(segments, lengths):
        if remaining <= length and length > 0:
            t = remaining / length
            return a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t
        remaining -= length
    return points[-1]


_EDGE_LABEL_RATIO = {"start": 0.0, "middle": 0.5, "end": 1.0}


def _draw_edge_label(points: Sequence[Point], options: Mapping[str, Any], cfg: Mapping[str, Any], group: Group) -> None:
    label = cfg.get("label")
    if label in (None, ""):
        return
    label_cfg = options.get("label_cfg", {})
    x, y = _point_along(points, _EDGE_LABEL_RATIO.get(label_cfg.get("position", "middle"), 0.5))
    x += float(label_cfg.get("ref_x", 0))
    y += float(label_cfg.get("ref_y", 0))
    draw_label(group, str(label), x, y, label_cfg)


def _polyline_path(points: Sequence[Point]) -> str:
    head, *rest = points
    parts = [f"M {_fmt(head[0])} {_fmt(head[1])}"]
    parts.extend(f"L {_fmt(x)} {_fmt(y)}" for x, y in rest)
    return " ".join(parts)


def _quadratic_path(points: Sequence[Point]) -> str:
    if len(points) < 3:
        return _polyline_path(points)
    (sx, sy), (cx, cy), (ex, ey) = points[0], points[1], points[-1]
    return f"M {_fmt(sx)} {_fmt(sy)} Q {_fmt(cx)} {_fmt(cy)} {_fmt(ex)} {_fmt(ey)}"


def _cubic_path(points: Sequence[Point]) -> str:
    if len(points) < 4:
        return _quadratic_path(points)
    (sx, sy), (c1x, c1y), (c2x, c2y), (ex, ey) = points[0], points[1], points[2], points[-1]
    return (
        f"M {_fmt(sx)} {_fmt(sy)} C {_fmt(c1x)} {_fmt(c1y)} "
        f"{_fmt(c2x)} {_fmt(c2y)} {_fmt(ex)} {_fmt(ey)}"
    )


def _edge_draw_shape(shape: Shape, cfg: Mapping[str, Any], group: Group) -> ET.Element:
    options = shape.get_options(shape, cfg, None)
    path = shape.extra("get_path")(edge_points(shape, cfg))
    return group.add_shape("path", {"d": path, **options.get("style", {})}, name=keyshape_name(shape))


def _edge_draw(shape: Shape, cfg: Mapping[str, Any], group: Group) -> ET.Element:
    keyshape = shape.draw_shape(shape, cfg, group)
    _draw_edge_label(edge_points(shape, cfg), shape.get_options(shape, cfg, None), cfg, group)
    return keyshape


def _edge_update(shape: Shape, cfg: Mapping[str, Any], item: Item, update_type: Optional[str] = None) -> None:
    # Endpoints follow the nodes, so even a "move" redraws the path.
    options = shape.merge_style or get_options(shape, cfg)
    points = edge_points(shape, cfg)
    if item.keyshape is not None:
        item.origin_style.clear()
        apply_attrs(item.keyshape, {"d": shape.extra("get_path")(points), **options.get("style", {})})
        restyle_states(item, options.get("state_styles", {}))
    _refresh_label(item.group)
    _draw_edge_label(points, options, cfg, item.group)


def _no_control_points(shape: Shape, cfg: Mapping[str, Any]) -> None:
    return None


def _quadratic_control_points(shape: Shape, cfg: Mapping[str, Any]):
    if cfg.get("control_points"):
        return cfg["control_points"]
    start, end = _endpoints(cfg)
    position = float(cfg.get("curve_position", shape.options.get("curve_position", 0.5)))
    offset = float(cfg.get("curve_offset", shape.options.get("curve_offset", -20)))
    return [_control_point(start, end, position, offset)]


def _cubic_control_points(shape: Shape, cfg: Mapping[str, Any]):
    if cfg.get("control_points"):
        return cfg["control_points"]
    start, end = _endpoints(cfg)
    positions = cfg.get("curve_position", shape.options.get("curve_position", [0.5, 0.5]))
    offsets = cfg.get("curve_offset", shape.options.get("curve_offset", [-20, 20]))
    if isinstance(positions, (int, float)):
        positions = [positions, positions]
    if isinstance(offsets, (int, float)):
        offsets = [offsets, -offsets]
    return [
        _control_point(start, end, float(positions[0]), float(offsets[0])),
        _control_point(start, end, float(positions[1]), float(offsets[1])),
    ]


SINGLE_EDGE = {
    "options": {
        "style": EDGE_STYLE,
        "label_cfg": {"position": "middle", "style": {}},
        "state_styles": {"selected": {"stroke-width": 2}, "active": {"stroke": "#1890FF"}},
    },
    "draw": _edge_draw,
    "draw_shape": _edge_draw_shape,
    "update": _edge_update,
    "set_state": _set_state,
    "get_options": get_options,
    "get_path": _polyline_path,
}


def register_builtin_shapes(registry: ShapeRegistry) -> None:
    """Register the stock node, edge and combo types into ``registry``."""
    registry.register_node("single-node", SINGLE_NODE)
    registry.register_node("circle", {"options": _node_options(size=40)}, "single-node")
    registry.register_node("simple-circle", {}, "circle")
    registry.register_node(
        "rect",
        {
            "options": _node_options(size=[100, 40], anchor_points=[[0, 0.5], [1, 0.5]]),
            "geometry": _rect_geometry,
        },
        "single-node",
    )
    registry.register_node(
        "ellipse",
        {"options": _node_options(size=[80, 40]), "geometry": _ellipse_geometry},
        "single-node",
    )
    registry.register_node(
        "diamond",
        {
            "options": _node_options(
                size=[80, 80], anchor_points=[[0.5, 0], [1, 0.5], [0.5, 1], [0, 0.5]]
            ),
            "geometry": _diamond_geometry,
        },
        "single-node",
    )

    registry.register_edge("single-edge", SINGLE_EDGE)
    registry.register_edge("line", {"get_control_points": _no_control_points}, "single-edge")
    registry.register_edge("polyline", {}, "single-edge")
    registry.register_edge(
        "quadratic",
        {
            "options": deep_merge(SINGLE_EDGE["options"], {"curve_position": 0.5, "curve_offset": -20}),
            "get_control_points": _quadratic_control_points,
            "get_path": _quadratic_path,
        },
        "single-edge",
    )
    registry.register_edge(
        "cubic",
        {
            "options": deep_merge(
                SINGLE_EDGE["options"], {"curve_position": [0.5, 0.5], "curve_offset": [-20, 20]}
            ),
            "get_control_points": _cubic_control_points,
            "get_path": _cubic_path,
        },
        "single-edge",
    )

    registry.register_combo("single-combo", SINGLE_COMBO)
    registry.register_combo("circle", {}, "single-combo")
    registry.register_combo("rect", {"geometry": _combo_rect_geometry}, "single-combo")
    LOG.debug("Registered built-in shapes into %s", registry.families())


def create_default_registry(*, builtins: bool = True) -> ShapeRegistry:
    """Registry with the node, edge and combo factories set up.

    Defaults: nodes ``circle``, edges ``line``, combos ``circle``.
    """
    registry = ShapeRegistry()
    registry.register_factory("node", {"default_shape_type": "circle"})
    registry.register_factory("edge", {"default_shape_type": "line"})
    registry.register_factory("combo", {"default_shape_type": "circle"})
    if builtins:
        register_builtin_shapes(registry)
    return registry
