"""SVG drawing container and item handles used by shape hooks."""
from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Mapping, Optional, Tuple

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def _fmt(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _fmt(float(value))
    return str(value)


def apply_attrs(elem: ET.Element, attrs: Optional[Mapping[str, Any]]) -> None:
    """Set SVG attributes on ``elem``; ``None`` values remove the attribute."""
    if not attrs:
        return
    for key, value in attrs.items():
        if value is None:
            elem.attrib.pop(key, None)
        else:
            elem.set(key, format_value(value))


def local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


class Group:
    """An SVG ``<g>`` that shape hooks draw into.

    ``shape_map`` is scratch space keyed by sub-shape name. It belongs to the
    group, is reset by every factory ``draw`` call, and is shared with nested
    groups created through :meth:`add_group`.
    """

    def __init__(self, element: Optional[ET.Element] = None, attrs: Optional[Mapping[str, Any]] = None) -> None:
        self.element = element if element is not None else ET.Element(_q("g"))
        apply_attrs(self.element, attrs)
        self.shape_map: Dict[str, ET.Element] = {}

    @classmethod
    def attach(cls, parent: ET.Element, attrs: Optional[Mapping[str, Any]] = None) -> "Group":
        return cls(ET.SubElement(parent, _q("g")), attrs)

    def add_shape(
        self,
        tag: str,
        attrs: Optional[Mapping[str, Any]] = None,
        *,
        name: Optional[str] = None,
        text: Optional[str] = None,
    ) -> ET.Element:
        elem = ET.SubElement(self.element, _q(tag))
        apply_attrs(elem, attrs)
        if text is not None:
            elem.text = text
        if name:
            elem.set("data-name", name)
            self.shape_map[name] = elem
        return elem

    def add_group(self, attrs: Optional[Mapping[str, Any]] = None, *, name: Optional[str] = None) -> "Group":
        child = Group(ET.SubElement(self.element, _q("g")), attrs)
        child.shape_map = self.shape_map
        if name:
            child.element.set("data-name", name)
            self.shape_map[name] = child.element
        return child

    def find(self, name: str) -> Optional[ET.Element]:
        return self.shape_map.get(name)

    def remove(self, name: str) -> None:
        elem = self.shape_map.pop(name, None)
        if elem is None:
            return
        for parent in self.element.iter():
            if elem in list(parent):
                parent.remove(elem)
                return

    def clear(self) -> None:
        """Remove every drawn child, keeping the group's own attributes."""
        for child in list(self.element):
            self.element.remove(child)
        self.shape_map.clear()

    def children(self) -> List[ET.Element]:
        return list(self.element)

    def to_svg(self) -> str:
        return ET.tostring(self.element, encoding="unicode")


class Item:
    """Rendered node, edge or combo: the model, its group and its keyshape."""

    def __init__(self, item_type: str, model: Mapping[str, Any], group: Group) -> None:
        self.item_type = item_type
        self.model: Dict[str, Any] = dict(model)
        self.group = group
        self.keyshape: Optional[ET.Element] = None
        self.states: List[str] = []
        # keyshape attribute values as they were before any state style
        self.origin_style: Dict[str, Optional[str]] = {}

    @property
    def id(self) -> Optional[str]:
        return self.model.get("id")

    @property
    def shape_type(self) -> Optional[str]:
        return self.model.get("type")

    def has_state(self, name: str) -> bool:
        return name in self.states

    def set_state_flag(self, name: str, value: Any) -> None:
        if value and name not in self.states:
            self.states.append(name)
        elif not value and name in self.states:
            self.states.remove(name)

    def __repr__(self) -> str:
        return f"Item({self.item_type!r}, id={self.id!r}, type={self.shape_type!r})"


def pretty_xml(element: ET.Element) -> str:
    for text_node in element.iter(_q("text")):
        if text_node.text:
            text_node.text = text_node.text.strip()
    ET.indent(element, space="  ")
    return ET.tostring(element, encoding="unicode")


def point_xy(point: Any) -> Tuple[float, float]:
    """Accept ``{"x": .., "y": ..}`` mappings or ``(x, y)`` pairs."""
    if isinstance(point, Mapping):
        return float(point.get("x", 0.0)), float(point.get("y", 0.0))
    x, y = point[0], point[1]
    return float(x), float(y)
