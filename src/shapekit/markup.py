"""Compile SVG-like node markup into shape hooks.

Markup is a small XML dialect::

    <group anchor-points="0,0.5 1,0.5">
      <rect name="box" keyshape="true" x="-40" y="-15" width="80" height="30"
            fill="{{style.fill}}"/>
      <text name="title" text-anchor="middle" y="5">{{label}}</text>
    </group>

``{{ path }}`` placeholders in attributes and text are read from the model
cfg using dotted paths. The element marked ``keyshape="true"`` (or else the
first drawn element) becomes the keyshape.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .canvas import Group, format_value, local_name
from .errors import MarkupError

MarkupSource = Union[str, Callable[[Mapping[str, Any]], str]]

DRAWABLE_TAGS = frozenset(
    {"rect", "circle", "ellipse", "text", "path", "line", "polyline", "polygon", "image"}
)
CONTAINER_TAG = "group"
_MARKUP_ATTRS = frozenset({"name", "keyshape", "anchor-points"})
_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][\w-]*(?:\.[\w-]+)*)\s*\}\}")


def compile_markup(source: MarkupSource) -> Dict[str, Any]:
    """Return a partial shape definition drawing ``source``.

    ``source`` is markup text or a callable that builds markup text from the
    model cfg. Static text is validated immediately.
    """
    if isinstance(source, str):
        _check_tree(_parse_markup(source))

        def render_source(cfg: Mapping[str, Any]) -> str:
            return source

    elif callable(source):
        render_source = source
    else:
        raise MarkupError(
            "E_MARKUP",
            f"markup must be a string or a callable, got {type(source).__name__}",
        )

    def markup_tree(cfg: Mapping[str, Any]) -> ET.Element:
        text = render_source(cfg)
        if not isinstance(text, str):
            raise MarkupError(
                "E_MARKUP",
                f"markup callable returned {type(text).__name__}, expected str",
            )
        root = _parse_markup(text)
        _check_tree(root)
        return root

    def draw(shape, cfg: Mapping[str, Any], group: Group) -> ET.Element:
        return _draw_tree(markup_tree(cfg), cfg, group)

    def update(shape, cfg: Mapping[str, Any], item, update_type: Optional[str] = None) -> None:
        group = item.group
        group.clear()
        item.keyshape = _draw_tree(markup_tree(cfg), cfg, group)
        # The keyshape is a new element, so state styles go on again.
        item.origin_style.clear()
        for state in list(item.states):
            shape.set_state(shape, state, True, item)

    def get_anchor_points(shape, cfg: Mapping[str, Any]):
        if cfg.get("anchor_points") is not None:
            return cfg["anchor_points"]
        declared = markup_tree(cfg).get("anchor-points")
        if declared:
            return parse_anchor_points(declared)
        return shape.options.get("anchor_points")

    return {"draw": draw, "update": update, "get_anchor_points": get_anchor_points}


def parse_anchor_points(value: str) -> List[List[float]]:
    """Parse ``"0,0.5 1,0.5"`` into ``[[0.0, 0.5], [1.0, 0.5]]``."""
    points: List[List[float]] = []
    for pair in value.split():
        parts = pair.split(",")
        try:
            x, y = (float(part) for part in parts)
        except ValueError as exc:
            raise MarkupError(
                "E_MARKUP_ANCHOR",
                f"invalid anchor point {pair!r}; expected 'x,y' with numbers in [0, 1]",
            ) from exc
        points.append([x, y])
    return points


def _parse_markup(text: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        line, column = getattr(exc, "position", (None, None))
        location = (
            f" at line {line}, column {column}" if line is not None and column is not None else ""
        )
        raise MarkupError(
            "E_MARKUP_PARSE",
            "Failed to parse node markup. Ensure XML entities like &, <, > are escaped "
            f"(use &amp;, &lt;, &gt;){location}",
            line=line,
            column=column,
        ) from exc


def _check_tree(root: ET.Element) -> None:
    drawable = 0
    for elem in root.iter():
        tag = local_name(elem.tag)
        if tag == CONTAINER_TAG:
            continue
        if tag not in DRAWABLE_TAGS:
            raise MarkupError("E_MARKUP_TAG", f"unsupported markup element <{tag}>")
        if len(elem):
            raise MarkupError("E_MARKUP_TAG", f"<{tag}> cannot contain child elements")
        drawable += 1
    if not drawable:
        raise MarkupError("E_MARKUP_EMPTY", "node markup does not draw any shape")


def _draw_tree(root: ET.Element, cfg: Mapping[str, Any], group: Group) -> ET.Element:
    drawn: List[ET.Element] = []
    marked: List[ET.Element] = []

    def _walk(node: ET.Element, target: Group, *, is_root: bool) -> None:
        tag = local_name(node.tag)
        attrs = {
            local_name(key): _interpolate(value, cfg)
            for key, value in node.attrib.items()
            if local_name(key) not in _MARKUP_ATTRS
        }
        name = node.get("name")
        if tag == CONTAINER_TAG:
            # The root group is the item's own group.
            child_target = target if is_root else target.add_group(attrs, name=name)
            for child in node:
                _walk(child, child_target, is_root=False)
            return
        text = (_interpolate(node.text, cfg).strip() or None) if node.text else None
        elem = target.add_shape(tag, attrs, name=name, text=text)
        if (node.get("keyshape") or "").lower() == "true":
            marked.append(elem)
        drawn.append(elem)

    _walk(root, group, is_root=True)
    return marked[0] if marked else drawn[0]


def _interpolate(value: str, cfg: Mapping[str, Any]) -> str:
    return _PLACEHOLDER_RE.sub(lambda match: _lookup(cfg, match.group(1)), value)


def _lookup(cfg: Mapping[str, Any], path: str) -> str:
    current: Any = cfg
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            current = None
        if current is None:
            return ""
    return format_value(current)
