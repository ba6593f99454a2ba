"""Shape registry: pluggable node, edge and combo types.

A :class:`Shape` bundles the hooks that draw, update and restyle one
visual type. Shapes live in a :class:`ShapeFactory` (one per item family)
and factories live in a :class:`ShapeRegistry` that the application builds
during setup and hands to its rendering code.

Every hook receives the resolved shape as its first argument::

    def draw(shape, cfg, group):
        return group.add_shape("rect", {"width": 10, "height": 10, **shape.options["style"]})

Registration is a shallow merge of a definition mapping over a base shape,
either the framework defaults or another registered type::

    registry.register_node("tag", {"draw": draw})
    registry.register_node("big-tag", {"options": {...}}, "tag")

Lookups never fail for an unknown type name. They fall back to the factory's
``default_shape_type`` and then to ``"simple-circle"``.
"""
from __future__ import annotations

import dataclasses
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .canvas import Group, Item
from .errors import ShapeDefinitionError, ShapeRegistryError
from .markup import MarkupSource, compile_markup

LOG = logging.getLogger(__name__)

UNIVERSAL_FALLBACK_TYPE = "simple-circle"
MARKUP_BASE_TYPE = "single-node"

Hook = Callable[..., Any]
Definition = Mapping[str, Any]


class ItemType(str, Enum):
    NODE = "node"
    EDGE = "edge"
    COMBO = "combo"


@dataclass(eq=False)
class Shape:
    """Behavior bundle for one registered type.

    Only ``merge_style`` changes after registration: the factory writes it
    right before each ``update`` call.
    """

    type: Optional[str] = None
    item_type: Optional[ItemType] = None
    options: Mapping[str, Any] = field(default_factory=dict)
    draw: Optional[Hook] = None
    draw_shape: Optional[Hook] = None
    after_draw: Optional[Hook] = None
    update: Optional[Hook] = None
    after_update: Optional[Hook] = None
    set_state: Optional[Hook] = None
    get_control_points: Optional[Hook] = None
    get_anchor_points: Optional[Hook] = None
    get_options: Optional[Hook] = None
    extras: Mapping[str, Any] = field(default_factory=dict)
    merge_style: Optional[Dict[str, Any]] = field(default=None, repr=False)

    def extend(self, definition: Definition) -> "Shape":
        """Return a new shape with ``definition`` shallow-merged over this one.

        Known hook names replace the inherited hook wholesale; any other key
        lands in ``extras``. ``self`` is left untouched.
        """
        overrides: Dict[str, Any] = {}
        extras = dict(self.extras)
        for key, value in definition.items():
            if key in _DEFINITION_FIELDS:
                overrides[key] = value
            else:
                extras[key] = value
        return dataclasses.replace(
            self, **overrides, extras=MappingProxyType(extras), merge_style=None
        )

    def extra(self, name: str, default: Any = None) -> Any:
        return self.extras.get(name, default)


_DEFINITION_FIELDS = frozenset(
    f.name for f in dataclasses.fields(Shape) if f.name not in ("extras", "merge_style")
)


def _framework_draw(shape: Shape, cfg: Mapping[str, Any], group: Group) -> Optional[ET.Element]:
    return shape.draw_shape(shape, cfg, group)


def _framework_draw_shape(shape: Shape, cfg: Mapping[str, Any], group: Group) -> None:
    return None


def _framework_after_draw(shape: Shape, cfg: Mapping[str, Any], group: Group, keyshape: Any) -> None:
    return None


def _framework_after_update(shape: Shape, cfg: Mapping[str, Any], item: Item) -> None:
    return None


def _framework_set_state(shape: Shape, name: str, value: Any, item: Item) -> None:
    return None


def _framework_get_control_points(shape: Shape, cfg: Mapping[str, Any]):
    return cfg.get("control_points")


def _framework_get_anchor_points(shape: Shape, cfg: Mapping[str, Any]):
    anchor_points = cfg.get("anchor_points")
    if anchor_points is None:
        anchor_points = shape.options.get("anchor_points")
    return anchor_points


# Base for every registration that does not extend a registered type.
# ``update`` is left undefined so such types are redrawn instead of patched.
SHAPE_FRAMEWORK = Shape(
    options=MappingProxyType({}),
    draw=_framework_draw,
    draw_shape=_framework_draw_shape,
    after_draw=_framework_after_draw,
    after_update=_framework_after_update,
    set_state=_framework_set_state,
    get_control_points=_framework_get_control_points,
    get_anchor_points=_framework_get_anchor_points,
    extras=MappingProxyType({}),
)

FACTORY_DEFAULTS: Mapping[str, Any] = MappingProxyType({"default_shape_type": "default_type"})

_CLASS_NAME_CACHE: Dict[str, str] = {}


def class_name_for(factory_type: str) -> str:
    """Capitalize the first letter of a family label, memoized."""
    cached = _CLASS_NAME_CACHE.get(factory_type)
    if cached is None:
        cached = factory_type[:1].upper() + factory_type[1:]
        _CLASS_NAME_CACHE[factory_type] = cached
    return cached


class ShapeFactory:
    """Shapes of one item family plus the lifecycle calls made on them."""

    def __init__(
        self,
        class_name: Optional[str] = None,
        default_shape_type: str = FACTORY_DEFAULTS["default_shape_type"],
        settings: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.class_name = class_name
        self.default_shape_type = default_shape_type
        self.settings: Mapping[str, Any] = MappingProxyType(dict(settings or {}))
        self._shapes: Dict[str, Shape] = {}

    def __contains__(self, shape_type: object) -> bool:
        return shape_type in self._shapes

    def __repr__(self) -> str:
        return (
            f"ShapeFactory({self.class_name!r}, default_shape_type={self.default_shape_type!r}, "
            f"shapes={len(self._shapes)})"
        )

    def shape_types(self) -> List[str]:
        return sorted(self._shapes)

    def add(self, shape: Shape) -> None:
        if shape.type in self._shapes:
            LOG.debug("Replacing %s shape %r", self.class_name, shape.type)
        self._shapes[shape.type] = shape

    def get_shape(self, shape_type: Optional[str] = None) -> Shape:
        shapes = self._shapes
        if shape_type is not None:
            shape = shapes.get(shape_type)
            if shape is not None:
                return shape
            LOG.debug(
                "%s shape %r is not registered, falling back to %r",
                self.class_name,
                shape_type,
                self.default_shape_type,
            )
        shape = shapes.get(self.default_shape_type)
        if shape is None:
            shape = shapes.get(UNIVERSAL_FALLBACK_TYPE)
        if shape is None:
            raise ShapeRegistryError(
                "E_SHAPE_MISSING",
                f"{self.class_name} factory has neither {self.default_shape_type!r} "
                f"nor {UNIVERSAL_FALLBACK_TYPE!r} registered",
            )
        return shape

    def draw(self, shape_type: Optional[str], cfg: Mapping[str, Any], group: Group):
        shape = self.get_shape(shape_type)
        group.shape_map = {}
        keyshape = shape.draw(shape, cfg, group)
        if shape.after_draw is not None:
            shape.after_draw(shape, cfg, group, keyshape)
        return keyshape

    def base_update(
        self,
        shape_type: Optional[str],
        cfg: Mapping[str, Any],
        item: Item,
        update_type: Optional[str] = None,
    ) -> None:
        shape = self.get_shape(shape_type)
        # Without ``update`` the caller redraws; no hook runs here.
        if shape.update is None:
            return
        if shape.get_options is not None:
            shape.merge_style = shape.get_options(shape, cfg, update_type)
        else:
            shape.merge_style = None
        shape.update(shape, cfg, item, update_type)
        if shape.after_update is not None:
            shape.after_update(shape, cfg, item)

    def set_state(self, shape_type: Optional[str], name: str, value: Any, item: Item) -> None:
        shape = self.get_shape(shape_type)
        shape.set_state(shape, name, value, item)

    def should_update(self, shape_type: Optional[str]) -> bool:
        return self.get_shape(shape_type).update is not None

    def get_control_points(self, shape_type: Optional[str], cfg: Mapping[str, Any]):
        shape = self.get_shape(shape_type)
        return shape.get_control_points(shape, cfg)

    def get_anchor_points(self, shape_type: Optional[str], cfg: Mapping[str, Any]):
        shape = self.get_shape(shape_type)
        return shape.get_anchor_points(shape, cfg)


class ShapeRegistry:
    """Directory of shape factories keyed by normalized family name.

    Not thread-safe: register factories and shapes during setup, before
    rendering starts.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ShapeFactory] = {}

    def register_factory(self, factory_type: str, cfg: Optional[Mapping[str, Any]] = None) -> ShapeFactory:
        """Create the factory for ``factory_type``.

        Calling this again for the same family replaces the factory and every
        shape registered in it.
        """
        class_name = class_name_for(factory_type)
        settings = {**FACTORY_DEFAULTS, **(cfg or {})}
        default_shape_type = settings.pop("default_shape_type")
        if class_name in self._factories:
            LOG.debug("Replacing shape factory %r", class_name)
        factory = ShapeFactory(class_name, default_shape_type, settings)
        self._factories[class_name] = factory
        return factory

    def get_factory(self, factory_type: str) -> Optional[ShapeFactory]:
        return self._factories.get(class_name_for(factory_type))

    def families(self) -> List[str]:
        return list(self._factories)

    def register_node(
        self,
        shape_type: str,
        definition: Union[Definition, MarkupSource],
        extend_shape_type: Optional[str] = None,
    ) -> Shape:
        factory = self._require_factory(ItemType.NODE)
        if isinstance(definition, str) or callable(definition):
            compiled = compile_markup(definition)
            shape = factory.get_shape(MARKUP_BASE_TYPE).extend(compiled)
        elif isinstance(definition, Mapping) and definition.get("markup") is not None:
            compiled = compile_markup(definition["markup"])
            shape = factory.get_shape(MARKUP_BASE_TYPE).extend(compiled).extend(definition)
        else:
            shape = self._base_shape(factory, extend_shape_type).extend(
                self._check_definition(ItemType.NODE, shape_type, definition)
            )
        return self._store(factory, ItemType.NODE, shape_type, shape)

    def register_edge(
        self,
        shape_type: str,
        definition: Definition,
        extend_shape_type: Optional[str] = None,
    ) -> Shape:
        return self._register(ItemType.EDGE, shape_type, definition, extend_shape_type)

    def register_combo(
        self,
        shape_type: str,
        definition: Definition,
        extend_shape_type: Optional[str] = None,
    ) -> Shape:
        return self._register(ItemType.COMBO, shape_type, definition, extend_shape_type)

    def _register(
        self,
        item_type: ItemType,
        shape_type: str,
        definition: Definition,
        extend_shape_type: Optional[str],
    ) -> Shape:
        factory = self._require_factory(item_type)
        shape = self._base_shape(factory, extend_shape_type).extend(
            self._check_definition(item_type, shape_type, definition)
        )
        return self._store(factory, item_type, shape_type, shape)

    def _require_factory(self, item_type: ItemType) -> ShapeFactory:
        factory = self.get_factory(item_type.value)
        if factory is None:
            raise ShapeRegistryError(
                "E_FACTORY_MISSING",
                f"no {item_type.value} factory registered; call register_factory({item_type.value!r}) first",
            )
        return factory

    @staticmethod
    def _base_shape(factory: ShapeFactory, extend_shape_type: Optional[str]) -> Shape:
        if extend_shape_type:
            return factory.get_shape(extend_shape_type)
        return SHAPE_FRAMEWORK

    @staticmethod
    def _check_definition(item_type: ItemType, shape_type: str, definition: Any) -> Definition:
        if not isinstance(definition, Mapping):
            raise ShapeDefinitionError(
                "E_DEFINITION",
                f"{item_type.value} shape {shape_type!r} definition must be a mapping, "
                f"got {type(definition).__name__}",
            )
        return definition

    @staticmethod
    def _store(factory: ShapeFactory, item_type: ItemType, shape_type: str, shape: Shape) -> Shape:
        shape = dataclasses.replace(shape, type=shape_type, item_type=item_type)
        required = (("draw", shape.draw), ("set_state", shape.set_state))
        for hook_name, hook in required:
            if not callable(hook):
                raise ShapeDefinitionError(
                    "E_DEFINITION",
                    f"{item_type.value} shape {shape_type!r} has no callable {hook_name!r} hook",
                )
        factory.add(shape)
        return shape
