"""Public API for shapekit."""
from .builtins import create_default_registry, register_builtin_shapes
from .canvas import Group, Item
from .errors import GraphDataError, MarkupError, ShapeDefinitionError, ShapekitError, ShapeRegistryError
from .markup import compile_markup
from .render import draw_graph, render_graph, set_item_state, update_item
from .shape import SHAPE_FRAMEWORK, ItemType, Shape, ShapeFactory, ShapeRegistry

__all__ = [
    "SHAPE_FRAMEWORK",
    "GraphDataError",
    "Group",
    "Item",
    "ItemType",
    "MarkupError",
    "Shape",
    "ShapeDefinitionError",
    "ShapeFactory",
    "ShapeRegistry",
    "ShapeRegistryError",
    "ShapekitError",
    "compile_markup",
    "create_default_registry",
    "draw_graph",
    "register_builtin_shapes",
    "render_graph",
    "set_item_state",
    "update_item",
]
